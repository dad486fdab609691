"""
BinderKeep services.

Business logic for collection storage, pricing, sharing, and transfer.
"""

from binderkeep.services.card_catalog import CardCatalog, PokemonTcgCatalog
from binderkeep.services.collection_cache import CollectionCache, KeyedMutationQueue
from binderkeep.services.collection_store import CollectionStore, coerce_collection_type
from binderkeep.services.import_export import ImportExport, parse_document
from binderkeep.services.price_resolver import (
    NO_PRICE_LABEL,
    PriceCache,
    PriceRecord,
    PriceResolver,
    PriceSource,
    market_price_from_payload,
)
from binderkeep.services.sharing import SharingService, check_password, hash_password

__all__ = [
    # Catalog
    "CardCatalog",
    "PokemonTcgCatalog",
    # Collection store
    "CollectionCache",
    "CollectionStore",
    "KeyedMutationQueue",
    "coerce_collection_type",
    # Prices
    "NO_PRICE_LABEL",
    "PriceCache",
    "PriceRecord",
    "PriceResolver",
    "PriceSource",
    "market_price_from_payload",
    # Sharing
    "SharingService",
    "check_password",
    "hash_password",
    # Import / export
    "ImportExport",
    "parse_document",
]

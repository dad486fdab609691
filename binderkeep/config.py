from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "BinderKeep"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "postgresql+asyncpg://localhost:5432/binderkeep"

    # Collection read cache freshness window
    collection_cache_ttl_seconds: float = 300.0

    # Minimum spacing between backend calls on the same item key
    mutation_debounce_seconds: float = 0.0

    # Robust price tier survives restarts through this file
    price_cache_path: Path = Path(__file__).parent.parent / "data" / "price-cache.json"

    pokemon_tcg_api_url: str = "https://api.pokemontcg.io/v2"
    pokemon_tcg_api_key: str = ""

    # Origin used to build share URLs
    public_origin: str = "http://localhost:3000"
    default_share_days: float = 7.0
    max_share_days: float = 3650.0


settings = Settings()


# =============================================================================
# COLLECTION CONSTANTS
# =============================================================================

DEFAULT_GROUP_NAME = "Default"
DEFAULT_GROUP_DESCRIPTION = "Default collection group"

# Upper bound on a single add/import quantity
MAX_ITEM_QUANTITY = 9999

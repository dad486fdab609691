from binderkeep.db.database import get_session, init_db, session_scope
from binderkeep.db.operations import (
    create_group,
    delete_group,
    delete_item,
    delete_share,
    get_group,
    get_item,
    get_or_create_group,
    get_share,
    group_to_model,
    insert_item,
    insert_share,
    item_to_model,
    list_card_ids,
    list_groups,
    list_items,
    list_shares,
    list_user_ids,
    load_prices,
    record_share_view,
    rename_group,
    set_market_price,
    share_to_model,
    store_group_value,
    update_item_quantity,
    upsert_prices,
)

__all__ = [
    "create_group",
    "delete_group",
    "delete_item",
    "delete_share",
    "get_group",
    "get_item",
    "get_or_create_group",
    "get_session",
    "get_share",
    "group_to_model",
    "init_db",
    "insert_item",
    "insert_share",
    "item_to_model",
    "list_card_ids",
    "list_groups",
    "list_items",
    "list_shares",
    "list_user_ids",
    "load_prices",
    "record_share_view",
    "rename_group",
    "session_scope",
    "set_market_price",
    "share_to_model",
    "store_group_value",
    "update_item_quantity",
    "upsert_prices",
]

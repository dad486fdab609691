from binderkeep.api.collection import router as collection_router
from binderkeep.api.groups import router as groups_router
from binderkeep.api.health import router as health_router
from binderkeep.api.shares import router as shares_router

__all__ = [
    "collection_router",
    "groups_router",
    "health_router",
    "shares_router",
]

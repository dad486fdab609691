from binderkeep.models.card import CardRecord
from binderkeep.models.collection import (
    CollectionItem,
    CollectionType,
    Group,
    GroupCollections,
    GroupedCollections,
    GroupValue,
    ItemKey,
    empty_grouped_collections,
)
from binderkeep.models.failure import (
    STATUS_BY_KIND,
    ApiError,
    AuthenticationRequiredError,
    BackendError,
    CacheMiss,
    FailureDetail,
    FailureKind,
    InvalidPasswordError,
    KnownError,
    NotFoundError,
    PasswordRequiredError,
    ShareExpiredError,
    ValidationError,
)
from binderkeep.models.results import (
    AddItemResult,
    MoveItemResult,
    OperationResult,
    RemoveItemResult,
)
from binderkeep.models.share import (
    ShareCreated,
    ShareOptions,
    SharePermission,
    ShareScope,
    ShareSnapshot,
    ShareState,
    ShareSummary,
)
from binderkeep.models.transfer import (
    EXPORT_FORMAT_VERSION,
    ExistingGroup,
    ExportDocument,
    ExportItem,
    ImportFailure,
    ImportResult,
    ImportTarget,
    NewGroup,
)

__all__ = [
    "AddItemResult",
    "ApiError",
    "AuthenticationRequiredError",
    "BackendError",
    "CacheMiss",
    "CardRecord",
    "CollectionItem",
    "CollectionType",
    "EXPORT_FORMAT_VERSION",
    "ExistingGroup",
    "ExportDocument",
    "ExportItem",
    "FailureDetail",
    "FailureKind",
    "Group",
    "GroupCollections",
    "GroupValue",
    "GroupedCollections",
    "ImportFailure",
    "ImportResult",
    "ImportTarget",
    "InvalidPasswordError",
    "ItemKey",
    "KnownError",
    "MoveItemResult",
    "NewGroup",
    "NotFoundError",
    "OperationResult",
    "PasswordRequiredError",
    "RemoveItemResult",
    "STATUS_BY_KIND",
    "ShareCreated",
    "ShareExpiredError",
    "ShareOptions",
    "SharePermission",
    "ShareScope",
    "ShareSnapshot",
    "ShareState",
    "ShareSummary",
    "ValidationError",
    "empty_grouped_collections",
]

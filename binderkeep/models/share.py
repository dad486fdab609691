from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ShareScope(str, Enum):
    """What part of a group a snapshot copies."""

    HAVE = "have"
    WANT = "want"
    GROUP = "group"


class SharePermission(str, Enum):
    READ = "read"
    WRITE = "write"


class ShareState(str, Enum):
    """
    Snapshot lifecycle.

    ACTIVE -> EXPIRED is the only transition; EXPIRED is terminal and is
    evaluated lazily on access.
    """

    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class ShareOptions:
    """
    Options for a new snapshot.

    Collaborative editing is not supported yet: `collaborative` and the
    write permission are recorded on the snapshot but grant no editing.
    """

    permission: SharePermission = SharePermission.READ
    password_protected: bool = False
    password: str | None = None
    collaborative: bool = False
    collection_name: str | None = None


@dataclass
class ShareSnapshot:
    """An immutable, time-boxed copy of collection data."""

    share_id: str
    group_name: str
    collection_name: str
    scope: ShareScope
    items: list[dict[str, Any]]
    created_at: datetime
    expires_at: datetime
    permission: SharePermission = SharePermission.READ
    password_hash: str | None = field(default=None, repr=False)
    collaborative: bool = False
    view_count: int = 0

    def __post_init__(self) -> None:
        if self.expires_at <= self.created_at:
            raise ValueError("Snapshot must expire after it is created")

    @property
    def password_protected(self) -> bool:
        return self.password_hash is not None

    def state(self, now: datetime) -> ShareState:
        """Current lifecycle state at `now`."""
        if now >= self.expires_at:
            return ShareState.EXPIRED
        return ShareState.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.state(now) == ShareState.EXPIRED


@dataclass(frozen=True)
class ShareCreated:
    """Handle returned to the owner of a new snapshot."""

    share_id: str
    share_url: str
    expires_at: datetime


@dataclass(frozen=True)
class ShareSummary:
    """One of the caller's snapshots as listed back to its owner."""

    share_id: str
    share_url: str
    group_name: str
    collection_name: str
    scope: ShareScope
    state: ShareState
    created_at: datetime
    expires_at: datetime
    password_protected: bool
    item_count: int
    view_count: int = 0

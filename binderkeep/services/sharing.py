"""
Sharing: time-boxed, read-only snapshots of collection data.

A snapshot copies a group's items at creation time; later edits to the
collection never reach it. Snapshots move from ACTIVE to EXPIRED when
`expires_at` passes. Expiry is checked on every access and expired
snapshots are never served, but they are not purged.

Passwords are stored only as bcrypt hashes.
"""

import asyncio
import logging
import math
import secrets
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from sqlalchemy.exc import SQLAlchemyError

from binderkeep.config import settings
from binderkeep.db.database import session_scope
from binderkeep.db.operations import (
    delete_share,
    get_share,
    insert_share,
    list_shares,
    record_share_view,
    share_to_model,
)
from binderkeep.models.collection import CollectionItem, CollectionType
from binderkeep.models.failure import (
    GROUP_NOT_FOUND_MESSAGE,
    AuthenticationRequiredError,
    BackendError,
    InvalidPasswordError,
    NotFoundError,
    PasswordRequiredError,
    ShareExpiredError,
    ValidationError,
)
from binderkeep.models.share import (
    ShareCreated,
    ShareOptions,
    ShareScope,
    ShareSnapshot,
    ShareSummary,
)
from binderkeep.services.collection_store import CollectionStore

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
SHARE_ID_BYTES = 16
SHARE_NOT_FOUND_MESSAGE = "Share not found"


def hash_password(password: str) -> str:
    """Generate a bcrypt hash for a share password."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    """Verify a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def share_url(share_id: str, origin: str | None = None) -> str:
    base = (origin or settings.public_origin).rstrip("/")
    return f"{base}/shared/{share_id}"


def snapshot_item(item: CollectionItem) -> dict[str, Any]:
    """Copy one collection item into a snapshot payload."""
    return {
        "card_id": item.card_id,
        "card_name": item.card_name,
        "card_image_small": item.card_image_small,
        "quantity": item.quantity,
        "market_price": item.market_price,
        "collection_type": item.collection_type.value,
    }


_SCOPE_TYPES: dict[ShareScope, CollectionType | None] = {
    ShareScope.HAVE: CollectionType.HAVE,
    ShareScope.WANT: CollectionType.WANT,
    ShareScope.GROUP: None,
}


class SharingService:
    """Creates and serves snapshots for the owner of `store`."""

    def __init__(
        self,
        store: CollectionStore,
        now: Callable[[], datetime] | None = None,
        origin: str | None = None,
    ) -> None:
        self.store = store
        self._now = now or (lambda: datetime.now(UTC))
        self._origin = origin

    async def create_snapshot(
        self,
        group_name: str,
        scope: ShareScope | str,
        expires_in_days: float | None = None,
        options: ShareOptions | None = None,
    ) -> ShareCreated:
        """
        Copy the current items of a group into a new snapshot.

        Args:
            group_name: Group to copy
            scope: have, want, or group (both sides)
            expires_in_days: Lifetime in days, fractions allowed
            options: Permission, password and display name

        Raises:
            AuthenticationRequiredError: If the store is unauthenticated
            ValidationError: Unknown group, bad scope, a duration that is not
                positive or beyond max_share_days, or protection requested
                without a password
            BackendError: If the snapshot cannot be stored
        """
        options = options or ShareOptions()
        user_id = self.store.user_id
        if user_id is None:
            raise AuthenticationRequiredError()
        try:
            scope = ShareScope(scope)
        except ValueError as e:
            raise ValidationError("Share scope must be have, want, or group") from e

        days = settings.default_share_days if expires_in_days is None else expires_in_days
        if not math.isfinite(days) or days <= 0:
            raise ValidationError(
                "Share duration must be positive", detail=f"expires_in_days={days}"
            )
        if days > settings.max_share_days:
            raise ValidationError(
                f"Share duration cannot exceed {settings.max_share_days:g} days",
                detail=f"expires_in_days={days}",
            )
        created_at = self._now()
        expires_at = created_at + timedelta(days=days)
        if expires_at <= created_at:
            raise ValidationError(
                "Share duration is too short", detail=f"expires_in_days={days}"
            )

        password_hash: str | None = None
        if options.password_protected:
            if not options.password:
                raise ValidationError("A password is required for a protected share")
            password_hash = await asyncio.to_thread(hash_password, options.password)

        try:
            items = await self.store.load_group_items(group_name, _SCOPE_TYPES[scope])
        except NotFoundError as e:
            raise ValidationError(GROUP_NOT_FOUND_MESSAGE, detail=group_name) from e

        snapshot = ShareSnapshot(
            share_id=secrets.token_urlsafe(SHARE_ID_BYTES),
            group_name=group_name,
            collection_name=options.collection_name or group_name,
            scope=scope,
            items=[snapshot_item(item) for item in items],
            created_at=created_at,
            expires_at=expires_at,
            permission=options.permission,
            password_hash=password_hash,
            collaborative=options.collaborative,
        )

        try:
            async with session_scope(self.store.session_factory) as session:
                await insert_share(session, user_id, snapshot)
        except SQLAlchemyError as e:
            logger.error("Failed to store share for %s: %s", group_name, e)
            raise BackendError(str(e)) from e

        logger.info(
            "SHARE_CREATED",
            extra={
                "share_id": snapshot.share_id,
                "group": group_name,
                "scope": scope.value,
                "items": len(snapshot.items),
                "protected": snapshot.password_protected,
            },
        )
        return ShareCreated(
            share_id=snapshot.share_id,
            share_url=share_url(snapshot.share_id, self._origin),
            expires_at=snapshot.expires_at,
        )

    async def get_snapshot(self, share_id: str, password: str | None = None) -> ShareSnapshot:
        """
        Serve a snapshot to anyone holding its id.

        Each successful read counts one view; expired or refused reads do
        not.

        Raises:
            NotFoundError: Unknown share id
            ShareExpiredError: The snapshot has expired
            PasswordRequiredError: Protected and no password given
            InvalidPasswordError: Protected and the password is wrong
        """
        snapshot = await self._load_active(share_id)
        if snapshot.password_hash is not None:
            if not password:
                raise PasswordRequiredError(share_id)
            if not await asyncio.to_thread(check_password, password, snapshot.password_hash):
                raise InvalidPasswordError(share_id)
        return await self._record_view(snapshot)

    async def verify_password(self, share_id: str, password: str) -> bool:
        """
        Check a password for a protected snapshot.

        Raises:
            NotFoundError, ShareExpiredError: As for get_snapshot
            ValidationError: The snapshot is not password protected
            InvalidPasswordError: The password is wrong
        """
        snapshot = await self._load_active(share_id)
        if snapshot.password_hash is None:
            raise ValidationError("This share is not password protected")
        if not await asyncio.to_thread(check_password, password, snapshot.password_hash):
            raise InvalidPasswordError(share_id)
        return True

    async def list_shares(self) -> list[ShareSummary]:
        """The caller's snapshots, newest first, with their current state."""
        user_id = self.store.user_id
        if user_id is None:
            return []

        try:
            async with session_scope(self.store.session_factory) as session:
                rows = await list_shares(session, user_id)
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e

        now = self._now()
        summaries = []
        for row in rows:
            snapshot = share_to_model(row)
            summaries.append(
                ShareSummary(
                    share_id=snapshot.share_id,
                    share_url=share_url(snapshot.share_id, self._origin),
                    group_name=snapshot.group_name,
                    collection_name=snapshot.collection_name,
                    scope=snapshot.scope,
                    state=snapshot.state(now),
                    created_at=snapshot.created_at,
                    expires_at=snapshot.expires_at,
                    password_protected=snapshot.password_protected,
                    item_count=len(snapshot.items),
                    view_count=snapshot.view_count,
                )
            )
        return summaries

    async def revoke_share(self, share_id: str) -> None:
        """
        Delete one of the caller's snapshots.

        Raises:
            AuthenticationRequiredError: If the store is unauthenticated
            NotFoundError: Unknown id or owned by someone else
        """
        user_id = self.store.user_id
        if user_id is None:
            raise AuthenticationRequiredError()

        try:
            async with session_scope(self.store.session_factory) as session:
                deleted = await delete_share(session, user_id, share_id)
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e

        if not deleted:
            raise NotFoundError(SHARE_NOT_FOUND_MESSAGE, detail=share_id)
        logger.info("SHARE_REVOKED", extra={"share_id": share_id})

    async def _record_view(self, snapshot: ShareSnapshot) -> ShareSnapshot:
        try:
            async with session_scope(self.store.session_factory) as session:
                views = await record_share_view(session, snapshot.share_id)
        except SQLAlchemyError as e:
            logger.warning("Could not count view of share %s: %s", snapshot.share_id, e)
            return snapshot
        return replace(snapshot, view_count=views)

    async def _load_active(self, share_id: str) -> ShareSnapshot:
        try:
            async with session_scope(self.store.session_factory) as session:
                row = await get_share(session, share_id)
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e

        if row is None:
            raise NotFoundError(SHARE_NOT_FOUND_MESSAGE, detail=share_id)

        snapshot = share_to_model(row)
        if snapshot.is_expired(self._now()):
            raise ShareExpiredError(share_id)
        return snapshot

"""
Sharing endpoints.

Owners create, list and revoke snapshots under /shares. Anyone holding a
share id reads the snapshot under /shared/{share_id}; the owner's user id
is never exposed there.
"""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Header, Response, status
from pydantic import BaseModel, Field

from binderkeep.api.deps import SharingDep
from binderkeep.models.share import (
    ShareOptions,
    SharePermission,
    ShareScope,
    ShareState,
)

router = APIRouter(tags=["shares"])


class CreateShareRequest(BaseModel):
    """Request model for a new snapshot."""

    group_name: str
    scope: ShareScope = ShareScope.GROUP
    expires_in_days: float | None = Field(
        default=None,
        description="Lifetime in days (fractions allowed); defaults to the configured lifetime",
    )
    permission: SharePermission = SharePermission.READ
    password: str | None = Field(
        default=None,
        description="Protect the snapshot with this password",
    )
    collaborative: bool = False
    collection_name: str | None = None


class ShareCreatedResponse(BaseModel):
    share_id: str
    share_url: str
    expires_at: datetime


class ShareSummaryResponse(BaseModel):
    """One of the caller's snapshots."""

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
    view_count: int


class SharedCollectionResponse(BaseModel):
    """Public view of a snapshot."""

    share_id: str
    group_name: str
    collection_name: str
    scope: ShareScope
    permission: SharePermission
    collaborative: bool
    created_at: datetime
    expires_at: datetime
    items: list[dict[str, Any]]


class VerifyPasswordRequest(BaseModel):
    password: str = Field(..., min_length=1)


class VerifyPasswordResponse(BaseModel):
    share_id: str
    verified: bool


@router.post(
    "/shares",
    response_model=ShareCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_share(request: CreateShareRequest, sharing: SharingDep) -> ShareCreatedResponse:
    """Snapshot a group (or one side of it) behind a random share id."""
    created = await sharing.create_snapshot(
        request.group_name,
        request.scope,
        request.expires_in_days,
        ShareOptions(
            permission=request.permission,
            password_protected=request.password is not None,
            password=request.password,
            collaborative=request.collaborative,
            collection_name=request.collection_name,
        ),
    )
    return ShareCreatedResponse(
        share_id=created.share_id,
        share_url=created.share_url,
        expires_at=created.expires_at,
    )


@router.get("/shares/mine", response_model=list[ShareSummaryResponse])
async def list_my_shares(sharing: SharingDep) -> list[ShareSummaryResponse]:
    """The caller's snapshots, newest first, including expired ones."""
    return [
        ShareSummaryResponse(
            share_id=s.share_id,
            share_url=s.share_url,
            group_name=s.group_name,
            collection_name=s.collection_name,
            scope=s.scope,
            state=s.state,
            created_at=s.created_at,
            expires_at=s.expires_at,
            password_protected=s.password_protected,
            item_count=s.item_count,
            view_count=s.view_count,
        )
        for s in await sharing.list_shares()
    ]


@router.get("/shared/{share_id}", response_model=SharedCollectionResponse)
async def get_shared_collection(
    share_id: str,
    sharing: SharingDep,
    x_share_password: Annotated[str | None, Header(alias="X-Share-Password")] = None,
) -> SharedCollectionResponse:
    """
    Read a snapshot.

    Protected snapshots need the password in the X-Share-Password header.
    Expired snapshots answer 410.
    """
    snapshot = await sharing.get_snapshot(share_id, password=x_share_password)
    return SharedCollectionResponse(
        share_id=snapshot.share_id,
        group_name=snapshot.group_name,
        collection_name=snapshot.collection_name,
        scope=snapshot.scope,
        permission=snapshot.permission,
        collaborative=snapshot.collaborative,
        created_at=snapshot.created_at,
        expires_at=snapshot.expires_at,
        items=snapshot.items,
    )


@router.post("/shared/{share_id}/verify", response_model=VerifyPasswordResponse)
async def verify_share_password(
    share_id: str, request: VerifyPasswordRequest, sharing: SharingDep
) -> VerifyPasswordResponse:
    """Check a password for a protected snapshot."""
    verified = await sharing.verify_password(share_id, request.password)
    return VerifyPasswordResponse(share_id=share_id, verified=verified)


@router.delete("/shares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_share(share_id: str, sharing: SharingDep) -> Response:
    """Delete one of the caller's snapshots."""
    await sharing.revoke_share(share_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

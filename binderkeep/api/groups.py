"""
Collection group endpoints.
"""

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from binderkeep.api.deps import StoreDep, check_result
from binderkeep.models.failure import ValidationError
from binderkeep.models.results import OperationResult

router = APIRouter(prefix="/groups", tags=["groups"])


class GroupResponse(BaseModel):
    """A group with its last computed values."""

    name: str
    description: str | None = None
    have_value: float = 0.0
    want_value: float = 0.0
    total_value: float = 0.0


class CreateGroupRequest(BaseModel):
    name: str = Field(..., examples=["Trade Binder"])
    description: str | None = None


class RenameGroupRequest(BaseModel):
    new_name: str
    description: str | None = Field(
        default=None,
        description="New description; omit to keep the current one",
    )


@router.get("", response_model=list[GroupResponse])
async def list_groups(store: StoreDep) -> list[GroupResponse]:
    """List the caller's groups, creating Default on first use."""
    groups = await store.list_groups()
    return [
        GroupResponse(
            name=g.name,
            description=g.description,
            have_value=g.have_value,
            want_value=g.want_value,
            total_value=g.total_value,
        )
        for g in groups
    ]


@router.post("", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
async def create_group(request: CreateGroupRequest, store: StoreDep) -> OperationResult:
    """Create an empty group."""
    return check_result(await store.create_group(request.name, request.description))


@router.patch("/{name}", response_model=OperationResult)
async def rename_group(name: str, request: RenameGroupRequest, store: StoreDep) -> OperationResult:
    """Rename a group; its items move with it."""
    result = await store.rename_group(name, request.new_name, request.description)
    return check_result(result)


@router.delete("/{name}", response_model=OperationResult)
async def delete_group(name: str, store: StoreDep, confirm: bool = False) -> OperationResult:
    """
    Delete a group and every item in it.

    Requires confirm=true.
    """
    if not confirm:
        raise ValidationError(
            "Deleting a group removes all of its cards and requires confirmation",
            detail="pass confirm=true",
        )
    return check_result(await store.delete_group(name))


@router.post("/{name}/value", response_model=OperationResult)
async def compute_group_value(name: str, store: StoreDep) -> OperationResult:
    """Recompute and store a group's have, want and total values."""
    return check_result(await store.compute_group_value(name))

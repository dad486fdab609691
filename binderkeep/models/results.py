"""
Typed results returned by the collection store.

The store never lets an exception escape to its callers. Every operation
returns one of these models; failures carry `status="error"`, a fixed
user-facing `message`, and the `kind` used to pick an HTTP status.
"""

from typing import Literal

from pydantic import BaseModel, Field

from binderkeep.models.collection import GroupValue
from binderkeep.models.failure import FailureKind, KnownError


class AddItemResult(BaseModel):
    """Outcome of adding copies of a card."""

    status: Literal["added", "updated", "error"]
    new_quantity: int | None = None
    message: str | None = None
    kind: FailureKind | None = None

    @classmethod
    def failed(cls, error: KnownError) -> "AddItemResult":
        return cls(status="error", message=error.message, kind=error.kind)


class RemoveItemResult(BaseModel):
    """Outcome of decrementing or removing a card."""

    status: Literal["decremented", "removed", "not_found", "error"]
    new_quantity: int | None = None
    message: str | None = None
    kind: FailureKind | None = None

    @classmethod
    def failed(cls, error: KnownError) -> "RemoveItemResult":
        return cls(status="error", message=error.message, kind=error.kind)


class MoveItemResult(BaseModel):
    """Outcome of moving copies of a card between groups."""

    status: Literal["moved", "not_found", "error"]
    moved_quantity: int = 0
    source_quantity: int = 0
    target_quantity: int = 0
    message: str | None = None
    kind: FailureKind | None = None

    @classmethod
    def failed(cls, error: KnownError) -> "MoveItemResult":
        return cls(status="error", message=error.message, kind=error.kind)


class OperationResult(BaseModel):
    """Outcome of a group operation."""

    status: Literal["ok", "error"]
    group_name: str | None = None
    message: str | None = None
    kind: FailureKind | None = None
    value: GroupValue | None = Field(
        default=None,
        description="Aggregate value, present for value computations",
    )

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(
        cls, group_name: str | None = None, value: GroupValue | None = None
    ) -> "OperationResult":
        return cls(status="ok", group_name=group_name, value=value)

    @classmethod
    def failed(cls, error: KnownError) -> "OperationResult":
        return cls(status="error", message=error.message, kind=error.kind)

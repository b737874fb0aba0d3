"""Schema building blocks shared by the billing listings."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field, computed_field

ItemT = TypeVar("ItemT")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    """One page of a listing plus the size of the unpaged result."""

    items: list[ItemT]
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    skip: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return self.skip + len(self.items) < self.total

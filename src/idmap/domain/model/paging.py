"""Offset/limit paging primitives for batch reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class PageRequest:
    offset: int = 0
    limit: int = 20

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("Page offset must be non-negative")
        if self.limit < 1:
            raise ValueError("Page limit must be positive")

    @classmethod
    def of(cls, page: int, size: int) -> PageRequest:
        """Build a request from a zero-based page number and a page size."""

        if page < 0:
            raise ValueError("Page number must be non-negative")
        return cls(offset=page * size, limit=size)

    @property
    def page_number(self) -> int:
        return self.offset // self.limit


@dataclass(frozen=True, slots=True)
class Page[T]:
    items: list[T] = field(default_factory=list["T"])
    request: PageRequest = field(default_factory=PageRequest)
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return -(-self.total // self.request.limit)

    @property
    def is_last(self) -> bool:
        return self.request.offset + len(self.items) >= self.total


@dataclass(frozen=True, slots=True)
class OwnerMappingSummary:
    """Mappings created for one owner within a migration batch."""

    owner_key: str
    mapping_count: int
    latest_created_at: datetime | None = None

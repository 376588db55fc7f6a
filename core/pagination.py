"""
core/pagination.py -- Page/offset math for list endpoints.

Out-of-range inputs are clamped rather than rejected: page < 1 becomes 1 and
page_size is held to [1, max_page_size]. totalPages is never below 1, so an
empty collection still has a (single, empty) first page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int
    offset: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def from_total_count(
        cls,
        total_count: int,
        page: int = 1,
        page_size: int | None = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> "Pagination":
        page = max(1, page)
        size = default_page_size if page_size is None else page_size
        size = min(max(1, size), max_page_size)
        total_pages = max(1, math.ceil(total_count / size))
        return cls(
            page=page,
            page_size=size,
            offset=(page - 1) * size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )

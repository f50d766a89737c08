"""Offset pagination helper shared by admin listings."""

import math
from dataclasses import dataclass

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def take(self) -> int:
        return self.limit

    def total_pages(self, total_count: int) -> int:
        return math.ceil(total_count / self.limit)


def paginate(page: int | None = None, limit: int | None = None) -> PageParams:
    """Normalize page/limit query values; non-positive values fall back to defaults."""
    page = page if page and page > 0 else DEFAULT_PAGE
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    return PageParams(page=page, limit=limit)

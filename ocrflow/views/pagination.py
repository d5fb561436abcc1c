"""
Page slicing and the compact page-number list shown under paginated views.

Both functions are pure: identical inputs always give identical outputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, List, Sequence, Tuple, TypeVar, Union

T = TypeVar("T")

ELLIPSIS = "..."
PAGE_SIZE_OPTIONS: Tuple[int, ...] = (5, 10, 20, 50, 100)
DEFAULT_PAGE_SIZE = 5

PageToken = Union[int, str]


def total_pages(item_count: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(item_count / page_size))


def clamp_page(page: int, pages: int) -> int:
    return min(max(1, page), max(1, pages))


def page_numbers(total: int, current: int, *, siblings: int = 1) -> List[PageToken]:
    """
    Page numbers to display, with ELLIPSIS standing in for skipped runs.

    The first and last page are always shown, plus ``siblings`` pages on each
    side of ``current``. With the default of one sibling at most 7 tokens are
    returned, e.g. total=12, current=6 gives [1, '...', 5, 6, 7, '...', 12].
    """
    total = max(1, total)
    current = clamp_page(current, total)

    if total <= 2 * siblings + 5:
        return list(range(1, total + 1))

    pages: List[PageToken] = [1]
    if current > siblings + 2:
        pages.append(ELLIPSIS)

    for page in range(max(2, current - siblings), min(total - 1, current + siblings) + 1):
        if page not in pages:
            pages.append(page)

    if current < total - siblings - 1:
        pages.append(ELLIPSIS)

    if total not in pages:
        pages.append(total)

    return pages


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    current_page: int
    page_size: int
    total_pages: int
    total_items: int
    page_numbers: List[PageToken] = field(default_factory=list)

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def start_index(self) -> int:
        """1-based position of the first item on this page, 0 when empty."""
        if self.total_items == 0:
            return 0
        return (self.current_page - 1) * self.page_size + 1

    @property
    def end_index(self) -> int:
        return min(self.current_page * self.page_size, self.total_items)


def paginate(items: Sequence[T], page: int, page_size: int) -> Page[T]:
    pages = total_pages(len(items), page_size)
    current = clamp_page(page, pages)
    offset = (current - 1) * page_size
    return Page(
        items=list(items[offset : offset + page_size]),
        current_page=current,
        page_size=page_size,
        total_pages=pages,
        total_items=len(items),
        page_numbers=page_numbers(pages, current),
    )

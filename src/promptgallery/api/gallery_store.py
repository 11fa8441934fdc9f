"""Gallery listing helpers for the Prompt Gallery API.

This module isolates the category filter, the sort order and pagination from
``promptgallery.api.main`` so route handlers can focus on HTTP concerns while
the listing rules remain testable as small units.

The rules follow the gallery UI:

- the category list always starts with ``"all"``; images without a category
  are listed under ``"Uncategorized"``
- ``"newest"`` orders table rows by descending row id, ``"oldest"`` by
  ascending row id (Baserow row ids grow with insertion order)
- transient records that are not yet stored in the table sort above every
  row for ``"newest"`` and below every row for ``"oldest"``
"""

from __future__ import annotations

from typing import Literal

from promptgallery.core.gallery import UNCATEGORIZED
from promptgallery.core.models import GalleryImage

ALL_CATEGORIES = "all"

SortOrder = Literal["newest", "oldest"]


def _category_of(entry: GalleryImage) -> str:
    return entry.category.strip() or UNCATEGORIZED


def collect_categories(entries: list[GalleryImage]) -> list[str]:
    """Build the category selector options.

    Args:
        entries: Gallery records.

    Returns:
        ``["all", ...]`` followed by each distinct category in first-seen
        order.  Blank and whitespace-only categories become
        ``"Uncategorized"``.
    """
    categories: dict[str, None] = {ALL_CATEGORIES: None}
    for entry in entries:
        categories.setdefault(_category_of(entry), None)
    return list(categories)


def filter_gallery_entries(entries: list[GalleryImage], category: str | None = None) -> list[GalleryImage]:
    """Keep the entries of one category.

    Args:
        entries: Source gallery records.
        category: Category to keep.  ``None``, ``""`` and ``"all"`` keep
            everything.

    Returns:
        Filtered entries in their original order.
    """
    if not category or category == ALL_CATEGORIES:
        return list(entries)
    if category == UNCATEGORIZED:
        return [entry for entry in entries if _category_of(entry) == category]
    return [entry for entry in entries if entry.category == category]


def _sort_key(entry: GalleryImage) -> tuple[int, int]:
    # Transient ids look like "local-<ms>-<hex>"
    if entry.is_local or not entry.id.isdigit():
        parts = entry.id.split("-")
        created_ms = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
        return (1, created_ms)
    return (0, int(entry.id))


def sort_gallery_entries(entries: list[GalleryImage], order: SortOrder = "newest") -> list[GalleryImage]:
    """Sort entries by creation order.

    Args:
        entries: Gallery records.
        order: ``"newest"`` or ``"oldest"``.

    Returns:
        A new, sorted list.
    """
    return sorted(entries, key=_sort_key, reverse=order == "newest")


def paginate_gallery_entries(entries: list[GalleryImage], page: int, per_page: int) -> dict:
    """Paginate gallery entries and clamp the requested page to valid bounds.

    Clamping matters after deletes: removing the last image of the last page
    makes the previous page the new last page.

    Returns:
        Dictionary containing ``total``, ``page``, ``per_page``, ``pages`` and
        ``images`` for the resolved page.
    """
    total = len(entries)
    pages = (total + per_page - 1) // per_page if total > 0 else 1
    resolved_page = min(max(page, 1), pages)

    start = (resolved_page - 1) * per_page
    end = start + per_page

    return {
        "total": total,
        "page": resolved_page,
        "per_page": per_page,
        "pages": pages,
        "images": entries[start:end],
    }

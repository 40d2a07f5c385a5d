"""Client-side pagination and name filtering of RabbitMQ collections.

The Management API returns complete lists; slicing and filtering happen here.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Any, TypeVar

from rabbitmq_admin.errors import ValidationFailed
from rabbitmq_admin.models import PagedResponse, PageRequest

T = TypeVar("T")


def filter_by_name(
    items: Sequence[dict[str, Any]],
    name: str | None,
    use_regex: bool = False,
) -> list[dict[str, Any]]:
    """Keep items whose ``name`` matches *name*.

    Plain filters are case-insensitive substring matches; with *use_regex* the
    filter is a case-insensitive regular-expression search.
    """
    if not name:
        return list(items)
    if use_regex:
        try:
            pattern = re.compile(name, re.IGNORECASE)
        except re.error as exc:
            raise ValidationFailed(f"Invalid name filter regex: {exc}") from exc
        return [item for item in items if pattern.search(str(item.get("name", "")))]
    needle = name.lower()
    return [item for item in items if needle in str(item.get("name", "")).lower()]


def paginate(items: Sequence[T], page: int, page_size: int) -> PagedResponse[T]:
    """Return the 1-based *page* of *items*; pages past the end are empty."""
    if page < 1:
        raise ValidationFailed("page must be >= 1")
    if page_size < 1:
        raise ValidationFailed("pageSize must be >= 1")
    total = len(items)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size
    return PagedResponse(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


def paginate_by_name(items: Sequence[dict[str, Any]], request: PageRequest) -> PagedResponse[dict[str, Any]]:
    filtered = filter_by_name(items, request.name, request.use_regex)
    return paginate(filtered, request.page, request.page_size)

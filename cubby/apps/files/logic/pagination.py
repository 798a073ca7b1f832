"""Offset pagination for listing queries."""

import contextlib
import dataclasses
import math
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Final, Generic, TypeVar

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet

_ItemT = TypeVar('_ItemT')

_REPEATABLE_READ: Final = 'SET TRANSACTION ISOLATION LEVEL REPEATABLE READ'


def _to_int(raw_value: Any, default: int) -> int:
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return default


@dataclasses.dataclass(frozen=True, slots=True)
class PageRequest:
    """Validated page number and page size."""

    page: int = 1
    limit: int = 20

    @classmethod
    def from_query(cls, query: Mapping[str, Any] | None = None) -> 'PageRequest':
        """Parse page/limit from query parameters.

        Missing or non-numeric values fall back to the defaults,
        out of range values are clamped to ``page >= 1`` and
        ``1 <= limit <= FILES_MAX_PAGE_SIZE``.

        Args:
            query: Mapping with optional 'page' and 'limit' keys.

        Returns:
            PageRequest within bounds.
        """
        query = query or {}
        default_limit = settings.FILES_PAGE_SIZE
        max_limit = settings.FILES_MAX_PAGE_SIZE

        page = max(1, _to_int(query.get('page'), 1))
        limit = _to_int(query.get('limit'), default_limit) or default_limit
        limit = min(max_limit, max(1, limit))
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        """Number of rows to skip."""
        return (self.page - 1) * self.limit


@dataclasses.dataclass(frozen=True, slots=True)
class Page(Generic[_ItemT]):
    """One page of results plus pagination metadata."""

    data: Sequence[_ItemT]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        """Number of pages for the total count."""
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        """Whether a following page exists."""
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        """Whether a preceding page exists."""
        return self.page > 1

    def as_dict(self) -> dict[str, Any]:
        """Envelope with ``data`` and ``pagination`` keys."""
        return {
            'data': list(self.data),
            'pagination': {
                'page': self.page,
                'limit': self.limit,
                'total': self.total,
                'total_pages': self.total_pages,
                'has_next': self.has_next,
                'has_prev': self.has_prev,
            },
        }


def build_page(
    data: Sequence[_ItemT],
    total: int,
    page_request: PageRequest,
) -> Page[_ItemT]:
    """Wrap already sliced data into a Page."""
    return Page(
        data=data,
        page=page_request.page,
        limit=page_request.limit,
        total=total,
    )


def paginate_queryset(queryset: QuerySet, page_request: PageRequest) -> Page:
    """Count and slice an ordered queryset.

    Call inside ``read_snapshot()`` so the count and the slice come
    from the same view of the data.

    Args:
        queryset: Ordered queryset.
        page_request: Requested page.

    Returns:
        Page of model instances.
    """
    total = queryset.count()
    offset = page_request.offset
    rows = list(queryset[offset:offset + page_request.limit])
    return build_page(rows, total, page_request)


@contextlib.contextmanager
def read_snapshot(using: str | None = None) -> Iterator[None]:
    """Open a transaction whose reads all see one snapshot of the data.

    PostgreSQL runs READ COMMITTED by default, where every statement
    takes a fresh snapshot, so the transaction is raised to REPEATABLE
    READ before its first query. SQLite already reads one snapshot per
    transaction. Nested inside an open transaction the isolation level
    can no longer change and the caller's one is kept.

    Args:
        using: Database alias, the default database when None.

    Yields:
        Nothing, the block runs inside the transaction.
    """
    connection = transaction.get_connection(using)
    outermost = not connection.in_atomic_block
    with transaction.atomic(using=using):
        if outermost and connection.vendor == 'postgresql':
            with connection.cursor() as cursor:
                cursor.execute(_REPEATABLE_READ)
        yield

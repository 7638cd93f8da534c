"""Ordering and slicing for registry listings.

Listings are fetched in full from the store, then ordered by an allow-listed
key and cut into pages here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

from .errors import ValidationError

T = TypeVar("T")

DIRECTIONS = ("asc", "desc")


class PaginationError(ValidationError):
    """Raised for unusable page, per_page, order or direction values."""

    def __init__(self, message: str):
        super().__init__(message, error_code="invalid_pagination")


@dataclass(frozen=True)
class ListingSpec:
    """Allowed order keys for one resource type.

    ``order_attributes`` maps the public order key to the record attribute it
    sorts on.
    """

    default_order: str
    order_attributes: Mapping[str, str]

    @property
    def valid_orders(self) -> Tuple[str, ...]:
        return tuple(self.order_attributes)


SERVER_LISTING = ListingSpec("federated_server_name", {"federated_server_name": "name"})
REMOTE_SCHEMA_LISTING = ListingSpec("remote_schema_name", {"remote_schema_name": "remote_schema_name"})
REMOTE_TABLE_LISTING = ListingSpec("remote_table_name", {"remote_table_name": "remote_table_name"})


@dataclass(frozen=True)
class Pagination:
    page: int
    per_page: int
    order: str
    direction: str = "asc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    total_count: int
    pagination: Pagination

    @property
    def last_page(self) -> int:
        if self.total_count <= 0:
            return 1
        return (self.total_count + self.pagination.per_page - 1) // self.pagination.per_page

    @property
    def has_previous(self) -> bool:
        return self.pagination.page > 1

    @property
    def has_next(self) -> bool:
        return self.pagination.page < self.last_page


def _positive_int(name: str, value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise PaginationError(f"'{name}' must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise PaginationError(f"'{name}' must be a positive integer") from exc
    if number < 1:
        raise PaginationError(f"'{name}' must be a positive integer")
    return number


def parse_pagination(
    params: Mapping[str, Any],
    listing: ListingSpec,
    *,
    default_per_page: int,
    max_per_page: int,
) -> Pagination:
    """Build a ``Pagination`` from raw query parameters."""
    page = _positive_int("page", params.get("page"), 1)
    per_page = _positive_int("per_page", params.get("per_page"), default_per_page)
    if per_page > max_per_page:
        raise PaginationError(f"'per_page' must not be greater than {max_per_page}")

    order = params.get("order") or listing.default_order
    if order not in listing.order_attributes:
        raise PaginationError(
            f"Wrong 'order' parameter value. Valid values are one of {list(listing.valid_orders)}"
        )

    direction = (params.get("direction") or "asc").lower()
    if direction not in DIRECTIONS:
        raise PaginationError(
            f"Wrong 'direction' parameter value. Valid values are one of {list(DIRECTIONS)}"
        )
    return Pagination(page=page, per_page=per_page, order=order, direction=direction)


def _sort_key(attribute: str) -> Callable[[Any], Tuple[bool, Any]]:
    def key(row: Any) -> Tuple[bool, Any]:
        value = getattr(row, attribute)
        return (value is None, value if value is not None else "")

    return key


def paginate(
    rows: Sequence[T],
    pagination: Pagination,
    listing: ListingSpec,
    *,
    total_count: Optional[int] = None,
) -> Page[T]:
    """Order ``rows`` by the pagination key and return the requested page."""
    attribute = listing.order_attributes[pagination.order]
    ordered = sorted(rows, key=_sort_key(attribute), reverse=pagination.direction == "desc")
    window = ordered[pagination.offset:pagination.offset + pagination.per_page]
    return Page(
        items=list(window),
        total_count=len(rows) if total_count is None else total_count,
        pagination=pagination,
    )


def page_links(page: Page[Any], build_url: Callable[[int], str]) -> Dict[str, Dict[str, str]]:
    """Navigation links for a page; ``build_url`` renders the URL of a page number."""
    links = {
        "first": {"href": build_url(1)},
        "last": {"href": build_url(page.last_page)},
    }
    if page.has_previous:
        links["prev"] = {"href": build_url(page.pagination.page - 1)}
    if page.has_next:
        links["next"] = {"href": build_url(page.pagination.page + 1)}
    return links

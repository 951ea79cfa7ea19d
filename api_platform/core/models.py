"""
Data models for the core module.

Entities themselves stay plain dicts, as returned by the backend. The classes
below describe what the client builds around them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .utils import type_name


@dataclass
class Sort:
    """Sorting on a single property, order is passed through as given (asc/desc)."""

    prop: str
    order: str = "asc"


@dataclass
class QueryOptions:
    """Options of a GET request on a collection or a single resource."""

    id: str | None = None
    filter: dict[str, Any] | None = None
    sort: Sort | None = None
    page: int | None = None
    resolve: list[str] | None = None
    props: list | None = None

    def __post_init__(self):
        if isinstance(self.sort, dict):
            self.sort = Sort(**self.sort)
        elif isinstance(self.sort, (tuple, list)):
            self.sort = Sort(*self.sort)
        if self.page is not None and self.page < 1:
            raise ValueError(f"page numbers start at 1, got {self.page}")


@dataclass(frozen=True)
class Pagination:
    current: int
    first: int
    last: int
    previous: int | None
    next: int | None
    total_items_count: int | None
    items_count: int


@dataclass
class CollectionPage:
    data: list[dict[str, Any]]
    pagination: Pagination | None = None


@dataclass(frozen=True)
class TokenPair:
    token: str
    refresh_token: str | None = None


@dataclass(frozen=True)
class EventEnvelope:
    """A notification pushed by the event hub: an update or a deletion."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityType:
    """Routing key for the entities of a collection, ie `orders` -> `Order`."""

    collection: str

    def __post_init__(self):
        if not self.collection or "/" in self.collection:
            raise ValueError(f"invalid collection name: {self.collection!r}")

    @property
    def name(self) -> str:
        return type_name(self.collection)


class SessionState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"

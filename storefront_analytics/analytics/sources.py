"""
Data Sources

The pipeline's only boundary: a read contract over storefront collections
plus coarse change subscriptions. The pipeline never writes through it.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from .change_feed import ChangeCallback, InMemoryChangeFeed, SubscriptionHandle
from .date_range import DateWindow, as_local
from .errors import FetchError, UnknownCollectionError

logger = structlog.get_logger(__name__)


class Collection(str, Enum):
    """Storefront collections read by the analytics reports"""
    ORDERS = "orders"
    CART_ITEMS = "cart_items"
    ANALYTICS_EVENTS = "analytics_events"
    PRODUCTS = "products"
    CHECKOUT_FUNNEL = "checkout_funnel"
    ABANDONMENT_REASONS = "cart_abandonment_reasons"
    FIT_FEEDBACK = "product_fit_feedback"
    WISHLIST = "wishlist"
    RECENTLY_VIEWED = "recently_viewed"
    PAYMENTS = "payments"
    REFUNDS = "refunds"


@dataclass(frozen=True)
class FetchQuery:
    """Filter applied to a single collection fetch"""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    equals: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def for_window(cls, window: Optional[DateWindow], **equals: Any) -> "FetchQuery":
        return cls(
            start=window.start if window else None,
            end=window.end if window else None,
            equals=tuple(sorted(equals.items())),
        )

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the filter against a plain dict row."""
        for column, expected in self.equals:
            if row.get(column) != expected:
                return False

        if self.start is None and self.end is None:
            return True

        created_at = _coerce_datetime(row.get("created_at"))
        if created_at is None:
            return False
        if self.start is not None and created_at < as_local(self.start):
            return False
        if self.end is not None and created_at >= as_local(self.end):
            return False
        return True


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return as_local(value)


class DataSource(ABC):
    """
    Read contract over storefront collections.

    fetch() returns plain dict rows; subscribe() registers a payload-less
    change callback and returns a handle for unsubscribe().
    """

    @abstractmethod
    async def fetch(self, collection: str, query: FetchQuery) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        pass

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        pass

    async def close(self) -> None:
        pass


class InMemoryDataSource(DataSource):
    """
    Dictionary-backed data source.

    Used by tests and local demos. Writes go through insert/update/delete so
    subscribers see the same notifications a hosted backend would send.
    Fetches can be held open with hold()/release() and individual
    collections can be made to fail with fail().

    Example:
        source = InMemoryDataSource({"orders": [...], "cart_items": [...]})
        rows = await source.fetch("orders", FetchQuery.for_window(window))
    """

    def __init__(
        self,
        collections: Optional[Mapping[str, Iterable[Dict[str, Any]]]] = None,
        change_feed: Optional[InMemoryChangeFeed] = None,
    ):
        self._tables: Dict[str, List[Dict[str, Any]]] = {c.value: [] for c in Collection}
        for name, rows in (collections or {}).items():
            self._tables[name] = [dict(row) for row in rows]

        self.change_feed = change_feed or InMemoryChangeFeed()
        self.fetch_counts: Counter = Counter()
        self._failures: Dict[str, Exception] = {}
        self._gate: Optional[asyncio.Event] = None

    # -- failure injection --------------------------------------------------

    def fail(self, collection: str, error: Optional[Exception] = None) -> None:
        """Make every fetch of ``collection`` raise until recover() is called."""
        self._failures[collection] = error or FetchError(collection)
        logger.debug("Fetch failure injected", collection=collection)

    def recover(self, collection: str) -> None:
        self._failures.pop(collection, None)

    def drop(self, collection: str) -> None:
        """Remove a collection entirely, as if the table did not exist."""
        self._tables.pop(collection, None)

    def hold(self) -> None:
        """Block fetches until release() is called."""
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()
            self._gate = None

    # -- read contract ------------------------------------------------------

    async def fetch(self, collection: str, query: FetchQuery) -> List[Dict[str, Any]]:
        self.fetch_counts[collection] += 1

        if self._gate is not None:
            await self._gate.wait()
        else:
            await asyncio.sleep(0)

        if collection in self._failures:
            raise self._failures[collection]
        if collection not in self._tables:
            raise UnknownCollectionError(collection)

        return [dict(row) for row in self._tables[collection] if query.matches(row)]

    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        return await self.change_feed.subscribe(collection, on_change)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        await self.change_feed.unsubscribe(handle)

    # -- writes (test/demo only) -------------------------------------------

    def insert(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(row)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", datetime.now().astimezone())
        self._tables.setdefault(collection, []).append(record)
        self.change_feed.notify(collection)
        return record

    def update(self, collection: str, record_id: Any, **changes: Any) -> int:
        updated = 0
        for row in self._tables.get(collection, []):
            if row.get("id") == record_id:
                row.update(changes)
                updated += 1
        if updated:
            self.change_feed.notify(collection)
        return updated

    def delete(self, collection: str, record_id: Any) -> int:
        rows = self._tables.get(collection, [])
        kept = [row for row in rows if row.get("id") != record_id]
        removed = len(rows) - len(kept)
        self._tables[collection] = kept
        if removed:
            self.change_feed.notify(collection)
        return removed

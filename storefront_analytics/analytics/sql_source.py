"""
SQL Data Source

Reads storefront tables through SQLAlchemy async sessions and delegates
change subscriptions to a ChangeFeed (Redis pub/sub in production).
"""

from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_analytics.database.connection import get_db
from storefront_analytics.database.models import COLLECTION_MODELS

from .change_feed import ChangeCallback, ChangeFeed, InMemoryChangeFeed, SubscriptionHandle
from .errors import FetchError, UnknownCollectionError
from .sources import DataSource, FetchQuery

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class SQLDataSource(DataSource):
    """
    Data source over the storefront database.

    Example:
        source = SQLDataSource(change_feed=RedisChangeFeed(get_redis()))
        rows = await source.fetch("orders", FetchQuery.for_window(window))
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_db,
        change_feed: Optional[ChangeFeed] = None,
    ):
        self.session_factory = session_factory
        self.change_feed = change_feed or InMemoryChangeFeed()

    async def fetch(self, collection: str, query: FetchQuery) -> List[Dict[str, Any]]:
        model = COLLECTION_MODELS.get(collection)
        if model is None:
            raise UnknownCollectionError(collection)

        table = model.__table__
        stmt = select(table)

        if query.start is not None:
            stmt = stmt.where(table.c.created_at >= query.start)
        if query.end is not None:
            stmt = stmt.where(table.c.created_at < query.end)
        for column, value in query.equals:
            if column not in table.c:
                raise FetchError(collection, f"{collection} has no column {column!r}")
            stmt = stmt.where(table.c[column] == value)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise FetchError(collection, f"Query on {collection} failed: {e}") from e

        logger.debug("Fetched collection", collection=collection, rows=len(rows))
        return rows

    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        return await self.change_feed.subscribe(collection, on_change)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        await self.change_feed.unsubscribe(handle)

    async def close(self) -> None:
        await self.change_feed.close()

"""
Unit Tests - SQL Data Source

Runs against an in-memory SQLite database through aiosqlite.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront_analytics.analytics import FetchError, FetchQuery, UnknownCollectionError
from storefront_analytics.analytics.date_range import DateWindow
from storefront_analytics.analytics.sql_source import SQLDataSource
from storefront_analytics.database.models import Base, Order, Product

ANCHOR = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all([
            Order(id="o-1", status="paid", total=40, created_at=ANCHOR - timedelta(days=1)),
            Order(id="o-2", status="pending", total=20, created_at=ANCHOR - timedelta(days=2)),
            Order(id="o-3", status="paid", total=90, created_at=ANCHOR - timedelta(days=30)),
            Product(id="p-1", slug="aero-runner", name="Aero Runner", category="running", visible=True,
                    created_at=ANCHOR - timedelta(days=90)),
            Product(id="p-2", slug="trail-boot", name="Trail Boot", category="boots", visible=False,
                    created_at=ANCHOR - timedelta(days=90)),
        ])
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
def source(session_factory):
    return SQLDataSource(session_factory=session_factory)


class TestSQLDataSource:

    @pytest.mark.asyncio
    async def test_window_filter(self, source):
        window = DateWindow(start=ANCHOR - timedelta(days=7), end=ANCHOR)
        rows = await source.fetch("orders", FetchQuery.for_window(window))
        assert sorted(r["id"] for r in rows) == ["o-1", "o-2"]

    @pytest.mark.asyncio
    async def test_equality_filter(self, source):
        rows = await source.fetch("products", FetchQuery.for_window(None, visible=True))
        assert [r["slug"] for r in rows] == ["aero-runner"]

    @pytest.mark.asyncio
    async def test_rows_are_plain_dicts(self, source):
        rows = await source.fetch("orders", FetchQuery())
        assert len(rows) == 3
        assert isinstance(rows[0], dict)
        assert {"id", "status", "total", "created_at"} <= set(rows[0])

    @pytest.mark.asyncio
    async def test_unknown_collection(self, source):
        with pytest.raises(UnknownCollectionError):
            await source.fetch("coupons", FetchQuery())

    @pytest.mark.asyncio
    async def test_unknown_column(self, source):
        with pytest.raises(FetchError):
            await source.fetch("orders", FetchQuery.for_window(None, region="eu"))

    @pytest.mark.asyncio
    async def test_subscriptions_use_change_feed(self, source):
        seen = []
        handle = await source.subscribe("orders", seen.append)
        source.change_feed.notify("orders")
        await source.unsubscribe(handle)
        source.change_feed.notify("orders")

        assert seen == ["orders"]

"""
Unit Tests - Analytics Pipeline
"""
import asyncio
import dataclasses

import pytest

from storefront_analytics.analytics import (
    ECOMMERCE_REPORT,
    LIVE_REPORT,
    TRAFFIC_REPORT,
    AnalyticsFilters,
    AnalyticsPipeline,
    InvalidDateRangeError,
    NotificationCenter,
    Severity,
)
from storefront_analytics.analytics.date_range import resolve_date_range
from tests.conftest import NOW, at


async def settle(turns: int = 5) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


@pytest.fixture
def make_pipeline(source, analytics_settings, clock):
    def factory(report=ECOMMERCE_REPORT, **kwargs):
        kwargs.setdefault("date_range", "7days")
        return AnalyticsPipeline(
            report,
            source,
            settings=analytics_settings,
            clock=clock,
            **kwargs,
        )
    return factory


class TestSnapshots:
    """Published snapshot contents"""

    @pytest.mark.asyncio
    async def test_refetch_publishes_snapshot(self, make_pipeline):
        pipeline = make_pipeline()
        assert pipeline.snapshot is None

        snapshot = await pipeline.refetch()

        assert snapshot is pipeline.snapshot
        assert snapshot.sequence == 1
        assert snapshot.report == "ecommerce"
        assert snapshot.window == resolve_date_range("7days", now=NOW)
        assert not snapshot.is_partial
        assert snapshot.data.cart_checkout.completed_checkouts == 7
        assert snapshot.data.cart_checkout.cart_abandonment_rate == 12.5
        assert snapshot.data.product.add_to_cart_rate == 40.0
        assert [s.users for s in snapshot.data.funnel] == [100, 85, 70, 55, 40, 25, 10]
        assert not pipeline.is_loading

    @pytest.mark.asyncio
    async def test_snapshot_is_immutable(self, make_pipeline):
        snapshot = await make_pipeline().refetch()
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.sequence = 99

    @pytest.mark.asyncio
    async def test_to_dict(self, make_pipeline):
        payload = (await make_pipeline().refetch()).to_dict()
        assert payload["is_partial"] is False
        assert payload["data"]["cart_checkout"]["total_carts"] == 8

    @pytest.mark.asyncio
    async def test_optional_failure_publishes_partial_snapshot(self, make_pipeline, source):
        source.fail("wishlist")
        snapshot = await make_pipeline().refetch()

        assert snapshot.is_partial
        assert snapshot.degraded_collections == ("wishlist",)
        assert snapshot.data.wishlist == ()

    @pytest.mark.asyncio
    async def test_malformed_records_are_counted(self, make_pipeline, source):
        source.insert("orders", {"id": "broken", "total": 10, "created_at": at(1)})
        snapshot = await make_pipeline().refetch()

        assert snapshot.skipped_records == {"orders": 1}
        assert snapshot.data.cart_checkout.completed_checkouts == 7

    @pytest.mark.asyncio
    async def test_device_filter(self, make_pipeline):
        snapshot = await make_pipeline(filters=AnalyticsFilters(device_type="mobile")).refetch()
        assert snapshot.data.product.total_product_views == 0
        assert snapshot.data.product.add_to_cart_rate == 0

    @pytest.mark.asyncio
    async def test_category_filter(self, make_pipeline):
        snapshot = await make_pipeline(filters=AnalyticsFilters(category="boots")).refetch()
        assert [a.id for a in snapshot.data.abandoned_products] == ["p-2"]
        assert [w.product_id for w in snapshot.data.wishlist] == ["p-2"]

    @pytest.mark.asyncio
    async def test_traffic_report(self, make_pipeline):
        snapshot = await make_pipeline(TRAFFIC_REPORT).refetch()
        assert snapshot.data.kpis.total_visits == 6
        assert snapshot.data.kpis.visits_trend == 100.0

    @pytest.mark.asyncio
    async def test_live_report_is_not_date_filtered(self, make_pipeline, source):
        source.insert("orders", {"status": "delivered", "created_at": at(24 * 400)})
        snapshot = await make_pipeline(LIVE_REPORT).refetch()

        assert snapshot.window is None
        assert snapshot.data.total_orders == 11
        assert snapshot.data.delivered_orders == 3


class TestFailures:
    """Errors are converted into notifications at the cycle boundary"""

    @pytest.mark.asyncio
    async def test_required_failure_keeps_previous_snapshot(self, make_pipeline, source):
        pipeline = make_pipeline()
        first = await pipeline.refetch()

        source.fail("orders")
        second = await pipeline.refetch()

        assert second is first
        notification = pipeline.notifications.recent()[0]
        assert notification.title == "Failed to fetch e-commerce analytics"
        assert notification.severity == Severity.ERROR
        assert notification.report == "ecommerce"

    @pytest.mark.asyncio
    async def test_required_failure_without_snapshot(self, make_pipeline, source):
        source.fail("products")
        pipeline = make_pipeline()

        assert await pipeline.refetch() is None
        assert len(pipeline.notifications) == 1

    @pytest.mark.asyncio
    async def test_reducer_error_is_contained(self, make_pipeline):
        def explode(records, context):
            raise RuntimeError("reducer bug")

        pipeline = make_pipeline(dataclasses.replace(ECOMMERCE_REPORT, reduce=explode))

        assert await pipeline.refetch() is None
        assert "reducer bug" in pipeline.notifications.recent()[0].description

    @pytest.mark.asyncio
    async def test_shared_notification_center(self, make_pipeline, source):
        center = NotificationCenter()
        received = []
        center.add_listener(received.append)
        source.fail("analytics_events")

        pipeline = make_pipeline(TRAFFIC_REPORT, notifications=center)
        await pipeline.refetch()

        assert pipeline.notifications is center
        assert len(center) == 1
        assert [n.title for n in received] == ["Failed to fetch analytics data"]


class TestConcurrency:
    """Sequencing, coalescing and cancellation"""

    @pytest.mark.asyncio
    async def test_double_refetch_coalesces(self, make_pipeline, source):
        pipeline = make_pipeline()
        source.hold()

        pipeline.request_refresh()
        await settle()
        assert pipeline.is_loading

        pipeline.request_refresh()
        pipeline.request_refresh()
        source.release()
        await pipeline.wait_idle()

        assert source.fetch_counts["orders"] == 2
        assert pipeline.snapshot.sequence == 2
        assert pipeline.snapshot.sequence == pipeline.issued_sequence

    @pytest.mark.asyncio
    async def test_concurrent_refetch_calls_share_result(self, make_pipeline, source):
        pipeline = make_pipeline()
        first, second = await asyncio.gather(pipeline.refetch(), pipeline.refetch())

        assert first is second
        assert first.sequence == pipeline.issued_sequence

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(self, make_pipeline, source):
        pipeline = make_pipeline()
        source.hold()

        pipeline.request_refresh()
        await settle()
        pipeline.invalidate()
        source.release()
        await pipeline.wait_idle()

        assert pipeline.snapshot is None
        assert len(pipeline.notifications) == 0

    @pytest.mark.asyncio
    async def test_set_date_range_cancels_in_flight_cycle(self, make_pipeline, source):
        pipeline = make_pipeline()
        source.hold()

        pipeline.request_refresh()
        await settle()
        pipeline.set_date_range("today")
        await settle()
        source.release()
        await pipeline.wait_idle()

        snapshot = pipeline.snapshot
        assert snapshot.window == resolve_date_range("today", now=NOW)
        assert snapshot.sequence == pipeline.issued_sequence
        assert source.fetch_counts["orders"] == 2

    @pytest.mark.asyncio
    async def test_invalid_date_range_leaves_state(self, make_pipeline):
        pipeline = make_pipeline()
        with pytest.raises(InvalidDateRangeError):
            pipeline.set_date_range("custom", custom_start=NOW, custom_end=at(5))

        assert pipeline.date_range.value == "7days"
        assert pipeline.issued_sequence == 0

    @pytest.mark.asyncio
    async def test_close_cancels_work(self, make_pipeline, source):
        pipeline = make_pipeline()
        source.hold()
        pipeline.request_refresh()
        await settle()

        await pipeline.close()

        assert not pipeline.is_loading
        assert pipeline.snapshot is None

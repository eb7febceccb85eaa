"""
Unit Tests - Live Refresh Controller
"""
import asyncio

import pytest

from storefront_analytics.analytics import (
    ECOMMERCE_REPORT,
    AnalyticsPipeline,
    LiveRefreshController,
    RefreshState,
)

DEBOUNCE = 0.02


@pytest.fixture
def pipeline(source, analytics_settings, clock):
    return AnalyticsPipeline(
        ECOMMERCE_REPORT, source, date_range="7days", settings=analytics_settings, clock=clock
    )


class TestLiveRefreshController:
    """Tests for LiveRefreshController"""

    @pytest.mark.asyncio
    async def test_start_subscribes_watched_collections(self, pipeline, source):
        controller = LiveRefreshController(pipeline, DEBOUNCE)
        await controller.start()
        await pipeline.wait_idle()

        feed = source.change_feed
        assert feed.subscriber_count("orders") == 1
        assert feed.subscriber_count("cart_items") == 1
        assert feed.subscriber_count("wishlist") == 1
        assert feed.subscriber_count("analytics_events") == 0
        assert pipeline.snapshot.sequence == 1

        await controller.stop()

    @pytest.mark.asyncio
    async def test_burst_is_debounced_into_one_refresh(self, pipeline, source):
        async with LiveRefreshController(pipeline, DEBOUNCE) as controller:
            await pipeline.wait_idle()

            for _ in range(3):
                source.insert("orders", {"status": "pending"})
            source.insert("cart_items", {"session_id": "s-9", "product_id": "p-1"})

            await asyncio.sleep(DEBOUNCE * 5)
            await pipeline.wait_idle()

            assert controller.notifications_received == 4
            assert controller.refreshes_requested == 1
            assert pipeline.snapshot.sequence == 2

    @pytest.mark.asyncio
    async def test_unwatched_collection_is_ignored(self, pipeline, source):
        async with LiveRefreshController(pipeline, DEBOUNCE) as controller:
            await pipeline.wait_idle()
            source.insert("payments", {"amount": 10, "status": "paid"})
            await asyncio.sleep(DEBOUNCE * 3)

            assert controller.notifications_received == 0
            assert pipeline.snapshot.sequence == 1

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_cancels_timer(self, pipeline, source):
        controller = LiveRefreshController(pipeline, DEBOUNCE)
        await controller.start(initial_refresh=False)

        source.insert("orders", {"status": "pending"})
        await controller.stop()
        await asyncio.sleep(DEBOUNCE * 3)

        assert controller.refreshes_requested == 0
        assert source.change_feed.subscriber_count("orders") == 0
        assert not controller.is_running
        assert pipeline.snapshot is None

    @pytest.mark.asyncio
    async def test_state_follows_pipeline(self, pipeline, source):
        controller = LiveRefreshController(pipeline, DEBOUNCE)
        assert controller.state == RefreshState.IDLE

        source.hold()
        await controller.start()
        assert controller.state == RefreshState.REFRESHING

        source.release()
        await pipeline.wait_idle()
        assert controller.state == RefreshState.IDLE
        await controller.stop()

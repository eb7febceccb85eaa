"""
Unit Tests - Pipeline Registry
"""
import asyncio

import pytest

from storefront_analytics.analytics import AnalyticsFilters, InMemoryDataSource
from storefront_analytics.config import AnalyticsSettings
from storefront_analytics.serving.registry import PipelineRegistry


class SlowSubscribeSource(InMemoryDataSource):
    """Subscriptions yield to the event loop, as a network-backed feed does"""

    async def subscribe(self, collection, on_change):
        await asyncio.sleep(0)
        return await super().subscribe(collection, on_change)


@pytest.fixture
def registry_settings():
    return AnalyticsSettings(refresh_debounce_seconds=0.01, default_range="7days", max_live_pipelines=3)


@pytest.fixture
def slow_source(reference_dataset):
    return SlowSubscribeSource(reference_dataset)


def category(name):
    return AnalyticsFilters(category=name)


class TestLivePipelines:

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_pipeline(self, slow_source, registry_settings):
        registry = PipelineRegistry(slow_source, registry_settings)

        first, second = await asyncio.gather(
            registry.live_pipeline("ecommerce", "7days", AnalyticsFilters()),
            registry.live_pipeline("ecommerce", "7days", AnalyticsFilters()),
        )

        assert first is second
        assert len(registry) == 1
        assert slow_source.change_feed.subscriber_count("orders") == 1

        await registry.close()
        assert slow_source.change_feed.subscriber_count("orders") == 0

    @pytest.mark.asyncio
    async def test_live_pipelines_are_capped(self, source, registry_settings):
        registry = PipelineRegistry(source, registry_settings)

        for i in range(10):
            await registry.live_pipeline("ecommerce", "7days", category(f"junk-{i}"))

        assert len(registry) == 3
        assert source.change_feed.subscriber_count("orders") == 3
        await registry.close()

    @pytest.mark.asyncio
    async def test_least_recently_used_is_evicted(self, source, registry_settings):
        registry = PipelineRegistry(source, registry_settings)
        running = await registry.live_pipeline("ecommerce", "7days", category("running"))
        boots = await registry.live_pipeline("ecommerce", "7days", category("boots"))
        await registry.live_pipeline("ecommerce", "7days", category("sneakers"))

        assert await registry.live_pipeline("ecommerce", "7days", category("running")) is running
        await registry.live_pipeline("ecommerce", "7days", category("sandals"))

        assert await registry.live_pipeline("ecommerce", "7days", category("running")) is running
        assert not boots.is_loading
        assert len(registry) == 3
        await registry.close()


class TestNotifications:

    @pytest.mark.asyncio
    async def test_failures_reach_registry_center(self, source, registry_settings):
        registry = PipelineRegistry(source, registry_settings)
        source.fail("orders")

        pipeline, snapshot = await registry.snapshot("ecommerce", "7days", AnalyticsFilters())

        assert snapshot is None
        assert pipeline.notifications is registry.notifications
        assert [n.title for n in registry.notifications.recent()] == ["Failed to fetch e-commerce analytics"]
        await registry.close()

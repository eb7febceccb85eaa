"""
Unit Tests - Synthetic Data Generator
"""
from datetime import datetime, timezone

import pytest

from storefront_analytics.analytics import (
    ECOMMERCE_REPORT,
    LIVE_REPORT,
    TRAFFIC_REPORT,
    AnalyticsPipeline,
    InMemoryDataSource,
)
from storefront_analytics.data.generators import StorefrontDataGenerator

ANCHOR = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def dataset():
    return StorefrontDataGenerator(seed=7, now=ANCHOR).generate(sessions=150, days=10, products=20)


class TestStorefrontDataGenerator:

    def test_same_seed_same_dataset(self, dataset):
        again = StorefrontDataGenerator(seed=7, now=ANCHOR).generate(sessions=150, days=10, products=20)
        assert again == dataset

    def test_different_seed_differs(self, dataset):
        other = StorefrontDataGenerator(seed=8, now=ANCHOR).generate(sessions=150, days=10, products=20)
        assert other["analytics_events"] != dataset["analytics_events"]

    def test_rows_reference_catalog(self, dataset):
        product_ids = {p["id"] for p in dataset["products"]}
        assert len(product_ids) == 20
        assert {c["product_id"] for c in dataset["cart_items"]} <= product_ids
        assert all(e["created_at"] <= ANCHOR for e in dataset["analytics_events"])

    def test_payments_only_for_settled_orders(self, dataset):
        unsettled = {o["id"] for o in dataset["orders"] if o["status"] in ("pending", "cancelled")}
        assert not unsettled & {p["order_id"] for p in dataset["payments"]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("report", [ECOMMERCE_REPORT, TRAFFIC_REPORT, LIVE_REPORT])
    async def test_reports_reduce_generated_data(self, dataset, report):
        pipeline = AnalyticsPipeline(
            report, InMemoryDataSource(dataset), date_range="30days", clock=lambda: ANCHOR
        )
        snapshot = await pipeline.refetch()

        assert snapshot is not None
        assert not snapshot.is_partial
        assert snapshot.skipped_records == {}
        await pipeline.close()

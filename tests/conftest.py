"""
Test Suite Configuration
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from storefront_analytics.analytics import InMemoryDataSource
from storefront_analytics.config import AnalyticsSettings, Settings

# Fixed anchor so date windows are deterministic: 2024-06-15 12:00 UTC
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

ORDER_STATUSES = ["pending", "pending", "paid", "paid", "paid", "paid", "paid", "cancelled", "delivered", "delivered"]


def at(hours_ago: float = 0, minutes: int = 0) -> datetime:
    return NOW - timedelta(hours=hours_ago) + timedelta(minutes=minutes)


def make_orders(statuses: List[str] = ORDER_STATUSES, product_id: str = "p-1") -> List[Dict[str, Any]]:
    return [
        {
            "id": f"o-{i}",
            "customer_name": f"Customer {i % 5}",
            "customer_email": f"c{i % 5}@example.com",
            "subtotal": 50.0 + 10 * i,
            "discount": 5.0 if i in (1, 2) else 0,
            "total": 50.0 + 10 * i,
            "status": status,
            "payment_method": "card",
            "items": [{"product_id": product_id, "name": "Aero Runner", "price": 50.0, "quantity": 1}],
            "created_at": at(3),
        }
        for i, status in enumerate(statuses)
    ]


def make_event(session_id: str, page_url: str, event_type: str = "page_view", minutes: int = 0, **extra) -> Dict[str, Any]:
    return {
        "id": f"ev-{session_id}-{event_type}-{minutes}",
        "session_id": session_id,
        "event_type": event_type,
        "page_url": page_url,
        "created_at": at(2, minutes),
        **extra,
    }


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings(refresh_debounce_seconds=0.01, default_range="7days")


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def sample_products() -> List[Dict[str, Any]]:
    return [
        {"id": "p-1", "slug": "aero-runner", "name": "Aero Runner", "category": "running", "visible": True},
        {"id": "p-2", "slug": "trail-boot", "name": "Trail Boot", "category": "boots", "visible": True},
        {"id": "p-3", "slug": "canvas-low", "name": "Canvas Low", "category": "sneakers", "visible": True},
        {"id": "p-4", "slug": "prototype", "name": "Prototype", "category": "running", "visible": False},
    ]


@pytest.fixture
def sample_cart_items() -> List[Dict[str, Any]]:
    """Eight cart sessions; p-1 is ordered, p-2 and p-3 are not"""
    rows = [
        ("s-1", "p-1", "42"),
        ("s-2", "p-1", "42"),
        ("s-3", "p-2", "41"),
        ("s-4", "p-2", None),
        ("s-5", "p-3", "42"),
        ("s-6", "p-1", "43"),
        ("s-7", "p-2", "41"),
        ("s-8", "p-3", "42"),
    ]
    return [
        {"id": f"ci-{i}", "session_id": s, "product_id": p, "size": size, "created_at": at(4)}
        for i, (s, p, size) in enumerate(rows)
    ]


@pytest.fixture
def sample_events() -> List[Dict[str, Any]]:
    """
    Session e-1 (desktop): five product page views and two add-to-cart clicks.
    Session e-2 (mobile): one home page view and one product thumbnail click.
    """
    events = [
        make_event(
            "e-1", "/product/aero-runner", minutes=i, product_id="p-1",
            scroll_depth=50, session_duration=60, device_type="desktop", browser="Chrome",
        )
        for i in range(5)
    ]
    events += [
        make_event(
            "e-1", "/product/aero-runner", "click", minutes=10 + i, product_id="p-1",
            click_target="add_to_cart_button", device_type="desktop", browser="Chrome",
        )
        for i in range(2)
    ]
    events.append(make_event("e-2", "/", minutes=20, device_type="mobile", browser="Safari"))
    events.append(make_event(
        "e-2", "/", "click", minutes=21, product_id="p-2",
        click_target="product_thumbnail", device_type="mobile", browser="Safari",
    ))
    return events


@pytest.fixture
def previous_events() -> List[Dict[str, Any]]:
    """Three single-view sessions ten days back, inside the previous 7-day window"""
    return [
        {
            "id": f"prev-{i}",
            "session_id": f"old-{i}",
            "event_type": "page_view",
            "page_url": "/",
            "created_at": NOW - timedelta(days=10),
        }
        for i in range(3)
    ]


@pytest.fixture
def reference_dataset(
    sample_products, sample_cart_items, sample_events, previous_events
) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "products": sample_products,
        "orders": make_orders(),
        "cart_items": sample_cart_items,
        "analytics_events": sample_events + previous_events,
        "wishlist": [
            {"id": "w-1", "product_id": "p-1", "session_id": "s-1", "converted_to_cart": True, "created_at": at(1)},
            {"id": "w-2", "product_id": "p-1", "session_id": "s-2", "converted_to_cart": False, "created_at": at(1)},
            {"id": "w-3", "product_id": "p-2", "session_id": "s-3", "converted_to_cart": False, "created_at": at(1)},
        ],
        "recently_viewed": [
            {"id": "rv-1", "product_id": "p-1", "session_id": "s-1", "view_count": 3, "total_time_spent": 90, "created_at": at(1)},
            {"id": "rv-2", "product_id": "p-1", "session_id": "s-2", "view_count": None, "total_time_spent": 30, "created_at": at(1)},
            {"id": "rv-3", "product_id": "p-2", "session_id": "s-3", "view_count": 1, "total_time_spent": 20, "created_at": at(1)},
        ],
        "payments": [
            {"id": "pay-1", "order_id": "o-8", "amount": 100.0, "status": "paid", "created_at": at(3)},
            {"id": "pay-2", "order_id": "o-9", "amount": 50.0, "status": "SUCCESS", "created_at": at(3)},
            {"id": "pay-3", "order_id": "o-2", "amount": 30.0, "status": "failed", "created_at": at(3)},
        ],
        "refunds": [
            {"id": "ref-1", "order_id": "o-8", "amount": 20.0, "reason": "wrong_size", "created_at": at(1)},
        ],
    }


@pytest.fixture
def source(reference_dataset) -> InMemoryDataSource:
    return InMemoryDataSource(reference_dataset)

"""
KPI Snapshot Types

Immutable structures published by the pipeline. A snapshot is produced
by one fetch+reduce cycle and replaced wholesale by the next.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

from .date_range import DateWindow


# =============================================================================
# E-COMMERCE
# =============================================================================

@dataclass(frozen=True)
class CartCheckoutKPIs:
    cart_abandonment_rate: float = 0.0
    checkout_completion_rate: float = 0.0
    avg_cart_value: float = 0.0
    coupons_used: int = 0
    coupon_conversion_rate: float = 0.0
    total_carts: int = 0
    completed_checkouts: int = 0


@dataclass(frozen=True)
class MostViewedProduct:
    slug: str
    name: str
    views: int


@dataclass(frozen=True)
class ConvertingProduct:
    id: str
    name: str
    rate: int


@dataclass(frozen=True)
class ProductKPIs:
    add_to_cart_rate: float = 0.0
    most_viewed_product: Optional[MostViewedProduct] = None
    highest_converting_product: Optional[ConvertingProduct] = None
    avg_scroll_depth: int = 0
    total_product_views: int = 0


@dataclass(frozen=True)
class FunnelStep:
    step: str
    users: int
    drop_off: int
    conversion_rate: int
    is_synthetic: bool = False


@dataclass(frozen=True)
class AbandonmentReasonShare:
    reason: str
    count: int
    percentage: int


@dataclass(frozen=True)
class SizePattern:
    size: str
    count: int
    percentage: int


@dataclass(frozen=True)
class FitFeedbackShare:
    rating: str
    count: int
    percentage: int


@dataclass(frozen=True)
class AbandonedProduct:
    id: str
    name: str
    category: str
    times_abandoned: int
    add_to_cart_frequency: int
    drop_off_rate: int


@dataclass(frozen=True)
class TrendingProduct:
    id: str
    name: str
    velocity: int
    views: int
    add_to_cart_count: int


@dataclass(frozen=True)
class WishlistStat:
    product_id: str
    product_name: str
    added_count: int
    converted_count: int
    conversion_rate: int


@dataclass(frozen=True)
class RecentlyViewedStat:
    product_id: str
    product_name: str
    total_views: int
    unique_viewers: int
    avg_time_spent: int
    repeat_views: int


@dataclass(frozen=True)
class HighIntentPage:
    page: str
    add_to_cart_rate: int
    avg_time_spent: int
    avg_scroll_depth: int
    visits: int


@dataclass(frozen=True)
class EcommerceKPIs:
    """Everything the e-commerce dashboard renders"""
    cart_checkout: CartCheckoutKPIs = field(default_factory=CartCheckoutKPIs)
    product: ProductKPIs = field(default_factory=ProductKPIs)
    funnel: Tuple[FunnelStep, ...] = ()
    abandonment_reasons: Tuple[AbandonmentReasonShare, ...] = ()
    abandoned_products: Tuple[AbandonedProduct, ...] = ()
    size_patterns: Tuple[SizePattern, ...] = ()
    fit_feedback: Tuple[FitFeedbackShare, ...] = ()
    trending_products: Tuple[TrendingProduct, ...] = ()
    wishlist: Tuple[WishlistStat, ...] = ()
    recently_viewed: Tuple[RecentlyViewedStat, ...] = ()
    high_intent_pages: Tuple[HighIntentPage, ...] = ()


# =============================================================================
# TRAFFIC
# =============================================================================

@dataclass(frozen=True)
class TrafficKPIs:
    total_visits: int = 0
    unique_visitors: int = 0
    avg_session_duration: int = 0
    bounce_rate: float = 0.0
    click_through_rate: float = 0.0
    avg_scroll_depth: int = 0
    visits_trend: float = 0.0
    visitors_trend: float = 0.0


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: str
    visits: int
    unique_visitors: int
    avg_session_duration: int


@dataclass(frozen=True)
class Breakdown:
    name: str
    value: int
    percentage: int


@dataclass(frozen=True)
class PageShare:
    page: str
    visits: int
    percentage: int


@dataclass(frozen=True)
class RecentEvent:
    id: Optional[str]
    session_id: str
    event_type: str
    page_url: str
    click_target: Optional[str]
    device_type: Optional[str]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class TrafficReport:
    kpis: TrafficKPIs = field(default_factory=TrafficKPIs)
    time_series: Tuple[TimeSeriesPoint, ...] = ()
    devices: Tuple[Breakdown, ...] = ()
    browsers: Tuple[Breakdown, ...] = ()
    landing_pages: Tuple[PageShare, ...] = ()
    exit_pages: Tuple[PageShare, ...] = ()
    recent_events: Tuple[RecentEvent, ...] = ()


# =============================================================================
# LIVE ORDER STATS
# =============================================================================

@dataclass(frozen=True)
class LiveStats:
    total_revenue: float = 0.0
    net_revenue: float = 0.0
    avg_order_value: float = 0.0
    total_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    pending_orders: int = 0
    refunded_amount: float = 0.0
    active_customers: int = 0


# =============================================================================
# SNAPSHOT
# =============================================================================

DataT = TypeVar("DataT")


@dataclass(frozen=True)
class Snapshot(Generic[DataT]):
    """
    One published cycle result.

    ``degraded_collections`` lists optional collections that failed and
    were reduced as empty; ``skipped_records`` counts malformed rows
    dropped per collection.
    """
    report: str
    sequence: int
    window: Optional[DateWindow]
    generated_at: datetime
    data: DataT
    degraded_collections: Tuple[str, ...] = ()
    skipped_records: Dict[str, int] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.degraded_collections)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["is_partial"] = self.is_partial
        return payload

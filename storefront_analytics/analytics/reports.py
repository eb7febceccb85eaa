"""
Report Definitions

A report names the collections it reads, how each is fetched, which
collections trigger a live refresh, and the reducer that folds validated
records into its snapshot payload.

Reports:
- ecommerce: cart, checkout, product and engagement KPIs
- traffic: visits, visitors and page flow with a previous-period trend
- live: order status counts and revenue over the full history
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from storefront_analytics.config import AnalyticsSettings

from .date_range import DateWindow
from .fetchers import CollectionSpec, FetchResult, Period
from .live_stats import reduce_live_stats
from .records import (
    AbandonmentReasonRecord,
    AnalyticsEventRecord,
    CartItemRecord,
    FitFeedbackRecord,
    FunnelEventRecord,
    OrderRecord,
    PaymentRecord,
    ProductRecord,
    RecentlyViewedRecord,
    RecordT,
    RefundRecord,
    WishlistRecord,
    parse_records,
)
from .reducers import reduce_ecommerce
from .sources import Collection
from .traffic import reduce_traffic


@dataclass(frozen=True)
class AnalyticsFilters:
    """Optional dimension filters applied at fetch time"""
    device_type: Optional[str] = None
    category: Optional[str] = None

    def event_equals(self) -> Tuple[Tuple[str, Any], ...]:
        return (("device_type", self.device_type),) if self.device_type else ()

    def product_equals(self) -> Tuple[Tuple[str, Any], ...]:
        equals: List[Tuple[str, Any]] = []
        if self.category:
            equals.append(("category", self.category))
        equals.append(("visible", True))
        return tuple(equals)

    def cache_key(self) -> str:
        return f"device={self.device_type or '*'}|category={self.category or '*'}"


@dataclass(frozen=True)
class ReportContext:
    """Everything a reducer may read besides the records"""
    window: Optional[DateWindow]
    filters: AnalyticsFilters
    settings: AnalyticsSettings
    now: datetime


class RecordSet:
    """Fetched rows of one cycle, validated on access"""

    def __init__(self, result: FetchResult, specs: Tuple[CollectionSpec, ...]):
        self._result = result
        self._collections = {spec.key: spec.collection for spec in specs}
        self.skipped: Dict[str, int] = {}

    def parse(self, key: str, model: Type[RecordT]) -> List[RecordT]:
        collection = self._collections.get(key, key)
        records, skipped = parse_records(model, self._result[key], collection)
        if skipped:
            self.skipped[key] = self.skipped.get(key, 0) + skipped
        return records


Reducer = Callable[[RecordSet, ReportContext], Any]


@dataclass(frozen=True)
class ReportDefinition:
    name: str
    collections: Callable[[AnalyticsFilters], Tuple[CollectionSpec, ...]]
    reduce: Reducer
    watched: Tuple[str, ...]
    error_title: str
    date_filtered: bool = True
    description: str = field(default="", compare=False)


# =============================================================================
# E-COMMERCE
# =============================================================================

def _ecommerce_collections(filters: AnalyticsFilters) -> Tuple[CollectionSpec, ...]:
    return (
        CollectionSpec("orders", Collection.ORDERS.value),
        CollectionSpec("cart_items", Collection.CART_ITEMS.value),
        CollectionSpec("events", Collection.ANALYTICS_EVENTS.value, equals=filters.event_equals()),
        CollectionSpec(
            "products",
            Collection.PRODUCTS.value,
            date_filtered=False,
            equals=filters.product_equals(),
        ),
        CollectionSpec("funnel", Collection.CHECKOUT_FUNNEL.value, required=False),
        CollectionSpec("reasons", Collection.ABANDONMENT_REASONS.value, required=False),
        CollectionSpec("fit_feedback", Collection.FIT_FEEDBACK.value, required=False),
        CollectionSpec("wishlist", Collection.WISHLIST.value, required=False),
        CollectionSpec("recently_viewed", Collection.RECENTLY_VIEWED.value, required=False),
    )


def _in_catalog(records: List[RecordT], product_ids: set) -> List[RecordT]:
    return [r for r in records if getattr(r, "product_id", None) in product_ids]


def _reduce_ecommerce(records: RecordSet, context: ReportContext):
    products = records.parse("products", ProductRecord)
    cart_items = records.parse("cart_items", CartItemRecord)
    events = records.parse("events", AnalyticsEventRecord)
    wishlist = records.parse("wishlist", WishlistRecord)
    recently_viewed = records.parse("recently_viewed", RecentlyViewedRecord)

    if context.filters.category:
        # product-level rankings only cover the selected category
        catalog_ids = {p.id for p in products}
        cart_items = _in_catalog(cart_items, catalog_ids)
        wishlist = _in_catalog(wishlist, catalog_ids)
        recently_viewed = _in_catalog(recently_viewed, catalog_ids)
        events = [e for e in events if e.product_id is None or e.product_id in catalog_ids]

    return reduce_ecommerce(
        orders=records.parse("orders", OrderRecord),
        cart_items=cart_items,
        events=events,
        products=products,
        funnel_events=records.parse("funnel", FunnelEventRecord),
        reasons=records.parse("reasons", AbandonmentReasonRecord),
        feedback=records.parse("fit_feedback", FitFeedbackRecord),
        wishlist=wishlist,
        recently_viewed=recently_viewed,
        synthetic_funnel=context.settings.funnel_synthetic_fallback,
        trending_limit=context.settings.trending_limit,
        ranking_limit=context.settings.ranking_limit,
    )


ECOMMERCE_REPORT = ReportDefinition(
    name="ecommerce",
    collections=_ecommerce_collections,
    reduce=_reduce_ecommerce,
    watched=(
        Collection.ORDERS.value,
        Collection.CART_ITEMS.value,
        Collection.WISHLIST.value,
    ),
    error_title="Failed to fetch e-commerce analytics",
    description="Cart, checkout, product and engagement KPIs",
)


# =============================================================================
# TRAFFIC
# =============================================================================

def _traffic_collections(filters: AnalyticsFilters) -> Tuple[CollectionSpec, ...]:
    return (
        CollectionSpec("events", Collection.ANALYTICS_EVENTS.value, equals=filters.event_equals()),
        CollectionSpec(
            "previous_events",
            Collection.ANALYTICS_EVENTS.value,
            required=False,
            period=Period.PREVIOUS,
            equals=filters.event_equals(),
        ),
    )


def _reduce_traffic(records: RecordSet, context: ReportContext):
    return reduce_traffic(
        events=records.parse("events", AnalyticsEventRecord),
        previous_events=records.parse("previous_events", AnalyticsEventRecord),
        top_pages_limit=context.settings.top_pages_limit,
        recent_limit=context.settings.recent_events_limit,
    )


TRAFFIC_REPORT = ReportDefinition(
    name="traffic",
    collections=_traffic_collections,
    reduce=_reduce_traffic,
    watched=(Collection.ANALYTICS_EVENTS.value,),
    error_title="Failed to fetch analytics data",
    description="Visits, visitors, bounce rate and page flow",
)


# =============================================================================
# LIVE STATS
# =============================================================================

def _live_collections(filters: AnalyticsFilters) -> Tuple[CollectionSpec, ...]:
    return (
        CollectionSpec("orders", Collection.ORDERS.value, date_filtered=False),
        CollectionSpec("payments", Collection.PAYMENTS.value, date_filtered=False),
        CollectionSpec("refunds", Collection.REFUNDS.value, date_filtered=False),
    )


def _reduce_live(records: RecordSet, context: ReportContext):
    return reduce_live_stats(
        orders=records.parse("orders", OrderRecord),
        payments=records.parse("payments", PaymentRecord),
        refunds=records.parse("refunds", RefundRecord),
        active_days=context.settings.active_customer_days,
        now=context.now,
    )


LIVE_REPORT = ReportDefinition(
    name="live",
    collections=_live_collections,
    reduce=_reduce_live,
    watched=(
        Collection.ORDERS.value,
        Collection.PAYMENTS.value,
        Collection.REFUNDS.value,
    ),
    error_title="Failed to fetch live order statistics",
    date_filtered=False,
    description="Revenue and order status counts over all orders",
)


REPORTS: Dict[str, ReportDefinition] = {
    report.name: report for report in (ECOMMERCE_REPORT, TRAFFIC_REPORT, LIVE_REPORT)
}


def get_report(name: str) -> ReportDefinition:
    try:
        return REPORTS[name]
    except KeyError:
        raise KeyError(f"Unknown report {name!r}, expected one of {sorted(REPORTS)}") from None

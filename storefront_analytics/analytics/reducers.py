"""
E-Commerce KPI Reducers

Pure functions folding validated storefront records into the structures
the e-commerce dashboard renders. Group-by work is done with polars;
rates go through the helpers in ``rates`` so zero denominators, clamping
and rounding behave the same everywhere.

Ordering of every ranked list is deterministic: primary metric
descending, then identifier ascending.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import polars as pl

from .rates import mean, percentage, share
from .records import (
    AbandonmentReasonRecord,
    AnalyticsEventRecord,
    CartItemRecord,
    FitFeedbackRecord,
    FunnelEventRecord,
    OrderRecord,
    ProductRecord,
    RecentlyViewedRecord,
    WishlistRecord,
)
from .snapshot import (
    AbandonedProduct,
    AbandonmentReasonShare,
    CartCheckoutKPIs,
    ConvertingProduct,
    EcommerceKPIs,
    FitFeedbackShare,
    FunnelStep,
    HighIntentPage,
    MostViewedProduct,
    ProductKPIs,
    RecentlyViewedStat,
    SizePattern,
    TrendingProduct,
    WishlistStat,
)

UNKNOWN = "Unknown"
PAGE_VIEW = "page_view"
ADD_TO_CART_TARGET = "add_to_cart_button"
PRODUCT_PATH = "/product/"
PRODUCT_SLUG_PATTERN = r"/product/([^/?#]+)"

INCOMPLETE_ORDER_STATUSES = ("pending", "cancelled")

FUNNEL_STEPS = ("homepage", "product", "cart", "shipping", "payment", "review", "complete")
SYNTHETIC_FUNNEL_START = 100
SYNTHETIC_FUNNEL_STEP = 15

DEFAULT_ABANDONMENT_REASONS = (
    "high_shipping",
    "account_required",
    "payment_options",
    "price_concerns",
    "confusing_ui",
    "slow_experience",
)
DEFAULT_FIT_RATINGS = ("small", "true_to_size", "large")

EVENT_SCHEMA = {
    "session_id": pl.Utf8,
    "event_type": pl.Utf8,
    "page_url": pl.Utf8,
    "click_target": pl.Utf8,
    "product_id": pl.Utf8,
    "scroll_depth": pl.Float64,
    "session_duration": pl.Float64,
}


def to_frame(rows: List[Dict], schema: Mapping[str, pl.DataType]) -> pl.DataFrame:
    """Build a DataFrame with a fixed schema, empty input included."""
    if not rows:
        return pl.DataFrame(schema=dict(schema))
    return pl.DataFrame(rows, schema=dict(schema))


def events_frame(events: Iterable[AnalyticsEventRecord]) -> pl.DataFrame:
    return to_frame(
        [{name: getattr(event, name) for name in EVENT_SCHEMA} for event in events],
        EVENT_SCHEMA,
    )


class ProductCatalog:
    """Lookup of product names and categories by id or slug"""

    def __init__(self, products: Iterable[ProductRecord]):
        self.by_id: Dict[str, ProductRecord] = {}
        self.by_slug: Dict[str, ProductRecord] = {}
        for product in products:
            self.by_id[product.id] = product
            if product.slug:
                self.by_slug[product.slug] = product

    def name(self, product_id: str) -> str:
        product = self.by_id.get(product_id)
        return product.name if product else UNKNOWN

    def category(self, product_id: str) -> str:
        product = self.by_id.get(product_id)
        return (product.category or UNKNOWN) if product else UNKNOWN


# =============================================================================
# CART & CHECKOUT
# =============================================================================

def cart_checkout_kpis(
    orders: Sequence[OrderRecord],
    cart_items: Sequence[CartItemRecord],
) -> CartCheckoutKPIs:
    """
    Cart abandonment and checkout completion.

    A checkout counts as completed when the order status is anything but
    pending or cancelled. Both rates use the number of distinct cart
    sessions as denominator and are computed independently.
    """
    total_carts = len({item.session_id for item in cart_items})

    orders_df = to_frame(
        [
            {"status": order.status.strip().lower(), "total": order.total, "discount": order.discount}
            for order in orders
        ],
        {"status": pl.Utf8, "total": pl.Float64, "discount": pl.Float64},
    )

    completed = orders_df.filter(~pl.col("status").is_in(list(INCOMPLETE_ORDER_STATUSES))).height
    coupons_used = orders_df.filter(pl.col("discount") > 0).height
    order_total = orders_df.get_column("total").sum() if orders_df.height else 0.0

    return CartCheckoutKPIs(
        cart_abandonment_rate=percentage(total_carts - completed, total_carts, 1),
        checkout_completion_rate=percentage(completed, total_carts, 1),
        avg_cart_value=mean(order_total, orders_df.height, 2),
        coupons_used=coupons_used,
        coupon_conversion_rate=percentage(coupons_used, orders_df.height, 1),
        total_carts=total_carts,
        completed_checkouts=completed,
    )


# =============================================================================
# PRODUCTS
# =============================================================================

def product_interactions(events_df: pl.DataFrame) -> pl.DataFrame:
    """Per product id: page views and add-to-cart clicks."""
    return (
        events_df
        .filter(pl.col("product_id").is_not_null())
        .group_by("product_id")
        .agg(
            (pl.col("event_type") == PAGE_VIEW).sum().cast(pl.Int64).alias("views"),
            (pl.col("click_target") == ADD_TO_CART_TARGET).sum().cast(pl.Int64).alias("add_to_cart"),
        )
    )


def product_kpis(
    events: Sequence[AnalyticsEventRecord],
    catalog: ProductCatalog,
) -> ProductKPIs:
    events_df = events_frame(events)

    product_views = events_df.filter(
        (pl.col("event_type") == PAGE_VIEW)
        & pl.col("page_url").str.contains(PRODUCT_PATH, literal=True)
    )
    add_to_cart_clicks = events_df.filter(pl.col("click_target") == ADD_TO_CART_TARGET).height

    slug_views = (
        product_views
        .with_columns(pl.col("page_url").str.extract(PRODUCT_SLUG_PATTERN, 1).alias("slug"))
        .filter(pl.col("slug").is_not_null())
        .group_by("slug")
        .agg(pl.len().cast(pl.Int64).alias("views"))
        .sort(["views", "slug"], descending=[True, False])
    )

    most_viewed = None
    if slug_views.height:
        top = slug_views.row(0, named=True)
        product = catalog.by_slug.get(top["slug"])
        if product is not None:
            most_viewed = MostViewedProduct(slug=top["slug"], name=product.name, views=top["views"])

    highest_converting = None
    best: Optional[Tuple[int, str]] = None
    for row in product_interactions(events_df).filter(pl.col("views") > 0).iter_rows(named=True):
        rate = percentage(row["add_to_cart"], row["views"])
        if rate > 0 and (best is None or (-rate, row["product_id"]) < (-best[0], best[1])):
            best = (rate, row["product_id"])
    if best is not None:
        highest_converting = ConvertingProduct(id=best[1], name=catalog.name(best[1]), rate=best[0])

    scroll = events_df.filter(pl.col("scroll_depth") > 0).get_column("scroll_depth")

    return ProductKPIs(
        add_to_cart_rate=percentage(add_to_cart_clicks, product_views.height, 1),
        most_viewed_product=most_viewed,
        highest_converting_product=highest_converting,
        avg_scroll_depth=mean(scroll.sum() if scroll.len() else 0, scroll.len()),
        total_product_views=product_views.height,
    )


def trending_products(
    events: Sequence[AnalyticsEventRecord],
    catalog: ProductCatalog,
    limit: int = 10,
) -> Tuple[TrendingProduct, ...]:
    """Velocity = views + 2 x add-to-cart clicks, highest first."""
    ranked = (
        product_interactions(events_frame(events))
        .with_columns((pl.col("views") + pl.col("add_to_cart") * 2).alias("velocity"))
        .sort(["velocity", "product_id"], descending=[True, False])
        .head(limit)
    )
    return tuple(
        TrendingProduct(
            id=row["product_id"],
            name=catalog.name(row["product_id"]),
            velocity=row["velocity"],
            views=row["views"],
            add_to_cart_count=row["add_to_cart"],
        )
        for row in ranked.iter_rows(named=True)
    )


# =============================================================================
# FUNNEL
# =============================================================================

def checkout_funnel(
    funnel_events: Sequence[FunnelEventRecord],
    synthetic_fallback: bool = True,
) -> Tuple[FunnelStep, ...]:
    """
    Seven-step checkout funnel.

    With no funnel events at all and the fallback enabled, every step gets
    the placeholder curve 100, 85, ..., 10 and is flagged ``is_synthetic``.
    """
    synthetic = synthetic_fallback and not funnel_events

    counts: Dict[str, int] = {step: 0 for step in FUNNEL_STEPS}
    for event in funnel_events:
        if event.step in counts:
            counts[event.step] += 1

    steps: List[FunnelStep] = []
    previous: Optional[int] = None
    for index, step in enumerate(FUNNEL_STEPS):
        if synthetic:
            users = max(0, SYNTHETIC_FUNNEL_START - SYNTHETIC_FUNNEL_STEP * index)
        else:
            users = counts[step]
        baseline = users if previous is None else previous

        steps.append(FunnelStep(
            step=step,
            users=users,
            drop_off=max(0, baseline - users),
            conversion_rate=percentage(users, baseline),
            is_synthetic=synthetic,
        ))
        previous = users

    return tuple(steps)


# =============================================================================
# HISTOGRAMS
# =============================================================================

def _histogram(labels: Iterable[str], seed: Sequence[str] = ()) -> Dict[str, int]:
    counts: Dict[str, int] = {label: 0 for label in seed}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    return counts


def abandonment_reasons(reasons: Sequence[AbandonmentReasonRecord]) -> Tuple[AbandonmentReasonShare, ...]:
    counts = _histogram((r.reason for r in reasons), DEFAULT_ABANDONMENT_REASONS)
    total = sum(counts.values())
    return tuple(
        AbandonmentReasonShare(reason=reason, count=count, percentage=share(count, total))
        for reason, count in counts.items()
    )


def size_patterns(cart_items: Sequence[CartItemRecord]) -> Tuple[SizePattern, ...]:
    counts = _histogram((item.size or "unknown") for item in cart_items)
    total = sum(counts.values())
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return tuple(
        SizePattern(size=size, count=count, percentage=share(count, total))
        for size, count in ordered
    )


def fit_feedback(feedback: Sequence[FitFeedbackRecord]) -> Tuple[FitFeedbackShare, ...]:
    counts = _histogram((f.fit_rating for f in feedback), DEFAULT_FIT_RATINGS)
    total = sum(counts.values())
    return tuple(
        FitFeedbackShare(rating=rating, count=count, percentage=share(count, total))
        for rating, count in counts.items()
    )


# =============================================================================
# ENGAGEMENT
# =============================================================================

def wishlist_stats(
    wishlist: Sequence[WishlistRecord],
    catalog: ProductCatalog,
    limit: int = 20,
) -> Tuple[WishlistStat, ...]:
    df = to_frame(
        [{"product_id": w.product_id, "converted": w.converted_to_cart} for w in wishlist],
        {"product_id": pl.Utf8, "converted": pl.Boolean},
    )
    ranked = (
        df.group_by("product_id")
        .agg(
            pl.len().cast(pl.Int64).alias("added"),
            pl.col("converted").sum().cast(pl.Int64).alias("converted"),
        )
        .sort(["added", "product_id"], descending=[True, False])
        .head(limit)
    )
    return tuple(
        WishlistStat(
            product_id=row["product_id"],
            product_name=catalog.name(row["product_id"]),
            added_count=row["added"],
            converted_count=row["converted"],
            conversion_rate=percentage(row["converted"], row["added"]),
        )
        for row in ranked.iter_rows(named=True)
    )


def recently_viewed_stats(
    views: Sequence[RecentlyViewedRecord],
    catalog: ProductCatalog,
    limit: int = 20,
) -> Tuple[RecentlyViewedStat, ...]:
    """
    Per-product viewing engagement.

    A row without a positive ``view_count`` counts as one view; a row with
    more than one view counts as a repeat. Average time is per unique
    viewing session.
    """
    df = to_frame(
        [
            {
                "product_id": v.product_id,
                "session_id": v.session_id,
                "view_count": v.view_count,
                "time_spent": v.total_time_spent,
            }
            for v in views
        ],
        {"product_id": pl.Utf8, "session_id": pl.Utf8, "view_count": pl.Int64, "time_spent": pl.Float64},
    )
    ranked = (
        df.with_columns(
            pl.when(pl.col("view_count").fill_null(0) > 0)
            .then(pl.col("view_count"))
            .otherwise(1)
            .alias("views")
        )
        .group_by("product_id")
        .agg(
            pl.col("views").sum().cast(pl.Int64).alias("total_views"),
            pl.col("session_id").n_unique().cast(pl.Int64).alias("unique_viewers"),
            pl.col("time_spent").fill_null(0).sum().alias("time_spent"),
            (pl.col("view_count").fill_null(0) > 1).sum().cast(pl.Int64).alias("repeat_views"),
        )
        .sort(["total_views", "product_id"], descending=[True, False])
        .head(limit)
    )
    return tuple(
        RecentlyViewedStat(
            product_id=row["product_id"],
            product_name=catalog.name(row["product_id"]),
            total_views=row["total_views"],
            unique_viewers=row["unique_viewers"],
            avg_time_spent=mean(row["time_spent"], row["unique_viewers"]),
            repeat_views=row["repeat_views"],
        )
        for row in ranked.iter_rows(named=True)
    )


def high_intent_pages(
    events: Sequence[AnalyticsEventRecord],
    limit: int = 20,
) -> Tuple[HighIntentPage, ...]:
    """Pages ranked by add-to-cart clicks per view."""
    per_page = (
        events_frame(events)
        .group_by("page_url")
        .agg(
            (pl.col("event_type") == PAGE_VIEW).sum().cast(pl.Int64).alias("views"),
            (pl.col("click_target") == ADD_TO_CART_TARGET).sum().cast(pl.Int64).alias("add_to_cart"),
            pl.col("session_duration").fill_null(0).sum().alias("time_spent"),
            pl.col("scroll_depth").fill_null(0).sum().alias("scroll_depth"),
        )
        .filter(pl.col("views") > 0)
    )

    pages = [
        HighIntentPage(
            page=row["page_url"],
            add_to_cart_rate=percentage(row["add_to_cart"], row["views"]),
            avg_time_spent=mean(row["time_spent"], row["views"]),
            avg_scroll_depth=mean(row["scroll_depth"], row["views"]),
            visits=row["views"],
        )
        for row in per_page.iter_rows(named=True)
    ]
    pages.sort(key=lambda p: (-p.add_to_cart_rate, -p.visits, p.page))
    return tuple(pages[:limit])


def abandoned_products(
    orders: Sequence[OrderRecord],
    cart_items: Sequence[CartItemRecord],
    catalog: ProductCatalog,
    limit: int = 20,
) -> Tuple[AbandonedProduct, ...]:
    """
    Products added to a cart but absent from every order in the window.

    Each cart row for a product that no order contains counts as one
    abandonment; products with none are left out.
    """
    ordered = {
        item.product_id
        for order in orders
        for item in order.items
        if item.product_id is not None
    }
    df = to_frame(
        [{"product_id": c.product_id, "abandoned": c.product_id not in ordered} for c in cart_items],
        {"product_id": pl.Utf8, "abandoned": pl.Boolean},
    )
    ranked = (
        df.group_by("product_id")
        .agg(
            pl.len().cast(pl.Int64).alias("added"),
            pl.col("abandoned").sum().cast(pl.Int64).alias("abandoned"),
        )
        .filter(pl.col("abandoned") > 0)
        .sort(["abandoned", "product_id"], descending=[True, False])
        .head(limit)
    )
    return tuple(
        AbandonedProduct(
            id=row["product_id"],
            name=catalog.name(row["product_id"]),
            category=catalog.category(row["product_id"]),
            times_abandoned=row["abandoned"],
            add_to_cart_frequency=row["added"],
            drop_off_rate=percentage(row["abandoned"], row["added"]),
        )
        for row in ranked.iter_rows(named=True)
    )


# =============================================================================
# REPORT
# =============================================================================

def reduce_ecommerce(
    orders: Sequence[OrderRecord],
    cart_items: Sequence[CartItemRecord],
    events: Sequence[AnalyticsEventRecord],
    products: Sequence[ProductRecord],
    funnel_events: Sequence[FunnelEventRecord] = (),
    reasons: Sequence[AbandonmentReasonRecord] = (),
    feedback: Sequence[FitFeedbackRecord] = (),
    wishlist: Sequence[WishlistRecord] = (),
    recently_viewed: Sequence[RecentlyViewedRecord] = (),
    synthetic_funnel: bool = True,
    trending_limit: int = 10,
    ranking_limit: int = 20,
) -> EcommerceKPIs:
    catalog = ProductCatalog(products)

    return EcommerceKPIs(
        cart_checkout=cart_checkout_kpis(orders, cart_items),
        product=product_kpis(events, catalog),
        funnel=checkout_funnel(funnel_events, synthetic_funnel),
        abandonment_reasons=abandonment_reasons(reasons),
        abandoned_products=abandoned_products(orders, cart_items, catalog, ranking_limit),
        size_patterns=size_patterns(cart_items),
        fit_feedback=fit_feedback(feedback),
        trending_products=trending_products(events, catalog, trending_limit),
        wishlist=wishlist_stats(wishlist, catalog, ranking_limit),
        recently_viewed=recently_viewed_stats(recently_viewed, catalog, ranking_limit),
        high_intent_pages=high_intent_pages(events, ranking_limit),
    )

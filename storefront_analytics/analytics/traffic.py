"""
Traffic Reducers

Visit, visitor and engagement metrics over raw analytics events, compared
against the previous equally long window.
"""

from typing import Dict, List, Sequence, Tuple

import polars as pl

from .date_range import as_local
from .rates import mean, percent_change, percentage, share
from .records import AnalyticsEventRecord
from .reducers import PAGE_VIEW, to_frame
from .snapshot import (
    Breakdown,
    PageShare,
    RecentEvent,
    TimeSeriesPoint,
    TrafficKPIs,
    TrafficReport,
)

PRODUCT_THUMBNAIL_TARGET = "product_thumbnail"
UNKNOWN_DIMENSION = "unknown"

TRAFFIC_SCHEMA = {
    "position": pl.Int64,
    "session_id": pl.Utf8,
    "event_type": pl.Utf8,
    "page_url": pl.Utf8,
    "click_target": pl.Utf8,
    "scroll_depth": pl.Float64,
    "session_duration": pl.Float64,
    "device_type": pl.Utf8,
    "browser": pl.Utf8,
    "ts": pl.Float64,
    "day": pl.Utf8,
}


def traffic_frame(events: Sequence[AnalyticsEventRecord]) -> pl.DataFrame:
    rows: List[Dict] = []
    for position, event in enumerate(events):
        created_at = as_local(event.created_at) if event.created_at else None
        rows.append({
            "position": position,
            "session_id": event.session_id,
            "event_type": event.event_type,
            "page_url": event.page_url,
            "click_target": event.click_target,
            "scroll_depth": event.scroll_depth,
            "session_duration": event.session_duration,
            "device_type": event.device_type or UNKNOWN_DIMENSION,
            "browser": event.browser or UNKNOWN_DIMENSION,
            "ts": created_at.timestamp() if created_at else None,
            "day": created_at.date().isoformat() if created_at else None,
        })
    return to_frame(rows, TRAFFIC_SCHEMA)


def _positive_mean(column: pl.Series, digits: int = 0):
    positive = column.filter(column > 0)
    return mean(positive.sum() if positive.len() else 0, positive.len(), digits)


def traffic_kpis(current: pl.DataFrame, previous: pl.DataFrame) -> TrafficKPIs:
    page_views = current.filter(pl.col("event_type") == PAGE_VIEW)
    sessions = current.get_column("session_id").n_unique() if current.height else 0

    views_per_session = page_views.group_by("session_id").agg(pl.len().alias("views"))
    bounced = views_per_session.filter(pl.col("views") == 1).height

    thumbnail_clicks = current.filter(pl.col("click_target") == PRODUCT_THUMBNAIL_TARGET).height

    prev_views = previous.filter(pl.col("event_type") == PAGE_VIEW).height
    prev_sessions = previous.get_column("session_id").n_unique() if previous.height else 0

    return TrafficKPIs(
        total_visits=page_views.height,
        unique_visitors=sessions,
        avg_session_duration=_positive_mean(current.get_column("session_duration").drop_nulls()),
        bounce_rate=percentage(bounced, sessions, 1),
        click_through_rate=percentage(thumbnail_clicks, page_views.height, 1),
        avg_scroll_depth=_positive_mean(current.get_column("scroll_depth").drop_nulls()),
        visits_trend=percent_change(page_views.height, prev_views),
        visitors_trend=percent_change(sessions, prev_sessions),
    )


def time_series(current: pl.DataFrame) -> Tuple[TimeSeriesPoint, ...]:
    """Daily visits, visitors and mean session duration by local date."""
    daily = (
        current.filter(pl.col("day").is_not_null())
        .group_by("day")
        .agg(
            (pl.col("event_type") == PAGE_VIEW).sum().cast(pl.Int64).alias("visits"),
            pl.col("session_id").n_unique().cast(pl.Int64).alias("visitors"),
            pl.col("session_duration").filter(pl.col("session_duration") > 0).sum().alias("duration"),
            (pl.col("session_duration") > 0).sum().cast(pl.Int64).alias("durations"),
        )
        .sort("day")
    )
    return tuple(
        TimeSeriesPoint(
            date=row["day"],
            visits=row["visits"],
            unique_visitors=row["visitors"],
            avg_session_duration=mean(row["duration"] or 0, row["durations"]),
        )
        for row in daily.iter_rows(named=True)
    )


def _breakdown(current: pl.DataFrame, column: str, capitalise: bool = False) -> Tuple[Breakdown, ...]:
    counts = (
        current.group_by(column)
        .agg(pl.len().cast(pl.Int64).alias("value"))
        .sort(["value", column], descending=[True, False])
    )
    total = current.height
    items = []
    for row in counts.iter_rows(named=True):
        name = row[column]
        if capitalise:
            name = name[:1].upper() + name[1:]
        items.append(Breakdown(name=name, value=row["value"], percentage=share(row["value"], total)))
    return tuple(items)


def _entry_pages(page_views: pl.DataFrame, pick: str, limit: int) -> Tuple[PageShare, ...]:
    per_session = (
        page_views.sort(["ts", "position"], nulls_last=True)
        .group_by("session_id", maintain_order=True)
        .agg(getattr(pl.col("page_url"), pick)().alias("page"))
    )
    ranked = (
        per_session.group_by("page")
        .agg(pl.len().cast(pl.Int64).alias("visits"))
        .sort(["visits", "page"], descending=[True, False])
    )
    total = per_session.height
    return tuple(
        PageShare(page=row["page"], visits=row["visits"], percentage=share(row["visits"], total))
        for row in ranked.head(limit).iter_rows(named=True)
    )


def recent_events(events: Sequence[AnalyticsEventRecord], limit: int = 100) -> Tuple[RecentEvent, ...]:
    ordered = sorted(
        enumerate(events),
        key=lambda pair: (
            as_local(pair[1].created_at).timestamp() if pair[1].created_at else float("-inf"),
            -pair[0],
        ),
        reverse=True,
    )
    return tuple(
        RecentEvent(
            id=event.id,
            session_id=event.session_id,
            event_type=event.event_type,
            page_url=event.page_url,
            click_target=event.click_target,
            device_type=event.device_type,
            created_at=event.created_at,
        )
        for _, event in ordered[:limit]
    )


def reduce_traffic(
    events: Sequence[AnalyticsEventRecord],
    previous_events: Sequence[AnalyticsEventRecord],
    top_pages_limit: int = 10,
    recent_limit: int = 100,
) -> TrafficReport:
    current = traffic_frame(events)
    previous = traffic_frame(previous_events)
    page_views = current.filter(pl.col("event_type") == PAGE_VIEW)

    return TrafficReport(
        kpis=traffic_kpis(current, previous),
        time_series=time_series(current),
        devices=_breakdown(current, "device_type", capitalise=True),
        browsers=_breakdown(current, "browser"),
        landing_pages=_entry_pages(page_views, "first", top_pages_limit),
        exit_pages=_entry_pages(page_views, "last", top_pages_limit),
        recent_events=recent_events(events, recent_limit),
    )

"""
Analytics Module

Date range resolution, parallel collection fetching, KPI reducers and the
pipeline that publishes immutable report snapshots.
"""
from .change_feed import ChangeFeed, InMemoryChangeFeed, RedisChangeFeed, SubscriptionHandle
from .date_range import DateRange, DateWindow, resolve_date_range
from .errors import (
    AnalyticsError,
    FetchError,
    InvalidDateRangeError,
    RequiredCollectionError,
    UnknownCollectionError,
)
from .fetchers import CollectionSpec, FetchResult, fetch_collections
from .live_refresh import LiveRefreshController, RefreshState
from .notifications import Notification, NotificationCenter, Severity
from .pipeline import AnalyticsPipeline
from .reports import (
    ECOMMERCE_REPORT,
    LIVE_REPORT,
    REPORTS,
    TRAFFIC_REPORT,
    AnalyticsFilters,
    ReportDefinition,
    get_report,
)
from .snapshot import EcommerceKPIs, LiveStats, Snapshot, TrafficReport
from .sources import Collection, DataSource, FetchQuery, InMemoryDataSource

__all__ = [
    "AnalyticsError",
    "AnalyticsFilters",
    "AnalyticsPipeline",
    "ChangeFeed",
    "Collection",
    "CollectionSpec",
    "DataSource",
    "DateRange",
    "DateWindow",
    "ECOMMERCE_REPORT",
    "EcommerceKPIs",
    "FetchError",
    "FetchQuery",
    "FetchResult",
    "InMemoryChangeFeed",
    "InMemoryDataSource",
    "InvalidDateRangeError",
    "LIVE_REPORT",
    "LiveRefreshController",
    "LiveStats",
    "Notification",
    "NotificationCenter",
    "REPORTS",
    "RedisChangeFeed",
    "RefreshState",
    "ReportDefinition",
    "RequiredCollectionError",
    "Severity",
    "Snapshot",
    "SubscriptionHandle",
    "TRAFFIC_REPORT",
    "TrafficReport",
    "UnknownCollectionError",
    "fetch_collections",
    "get_report",
    "resolve_date_range",
]

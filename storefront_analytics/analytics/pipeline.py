"""
Analytics Pipeline

Runs fetch+reduce cycles for one report and publishes immutable
snapshots. Cycles run one at a time on a single driver task:

- refresh requests that arrive while a cycle runs collapse into one
  follow-up cycle
- every cycle carries a sequence number and only the newest issued
  sequence may publish
- changing the date range cancels the in-flight cycle
- failures become a log entry plus a notification; the previous
  snapshot stays published
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar, Union

import structlog
from prometheus_client import Counter, Histogram

from storefront_analytics.config import AnalyticsSettings, get_settings

from .date_range import DateRange, DateWindow, parse_date_range, resolve_date_range
from .errors import RequiredCollectionError
from .fetchers import fetch_collections
from .notifications import NotificationCenter
from .reports import AnalyticsFilters, RecordSet, ReportContext, ReportDefinition
from .snapshot import Snapshot
from .sources import DataSource

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

CYCLES_TOTAL = Counter(
    "storefront_analytics_cycles_total",
    "Analytics refresh cycles by outcome",
    ["report", "outcome"],
)

CYCLE_DURATION = Histogram(
    "storefront_analytics_cycle_seconds",
    "Time spent fetching and reducing one report",
    ["report"],
)

STALE_RESULTS = Counter(
    "storefront_analytics_stale_results_total",
    "Cycle results discarded because a newer cycle was issued",
    ["report"],
)

SKIPPED_RECORDS = Counter(
    "storefront_analytics_skipped_records_total",
    "Malformed records dropped during reduction",
    ["report", "collection"],
)


DataT = TypeVar("DataT")
Clock = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class AnalyticsPipeline(Generic[DataT]):
    """
    Presentation adapter for one report, date range and filter set.

    Example:
        pipeline = AnalyticsPipeline(ECOMMERCE_REPORT, source, date_range="7days")
        snapshot = await pipeline.refetch()
        print(snapshot.data.cart_checkout.cart_abandonment_rate)
    """

    def __init__(
        self,
        report: ReportDefinition,
        source: DataSource,
        date_range: Union[str, DateRange, None] = None,
        custom_start: Optional[datetime] = None,
        custom_end: Optional[datetime] = None,
        filters: Optional[AnalyticsFilters] = None,
        settings: Optional[AnalyticsSettings] = None,
        notifications: Optional[NotificationCenter] = None,
        clock: Clock = _local_now,
    ):
        self.report = report
        self.source = source
        self.filters = filters or AnalyticsFilters()
        self.settings = settings or get_settings().analytics
        if notifications is None:
            notifications = NotificationCenter(self.settings.notification_history)
        self.notifications = notifications
        self.clock = clock

        self.date_range = parse_date_range(date_range or self.settings.default_range)
        self.custom_start = custom_start
        self.custom_end = custom_end
        self.resolve_window()

        self._snapshot: Optional[Snapshot[DataT]] = None
        self._issued = 0
        self._pending = False
        self._driver: Optional[asyncio.Task] = None
        self._cycle: Optional[asyncio.Task] = None
        self._log = logger.bind(report=report.name, filters=self.filters.cache_key())

    # -- state --------------------------------------------------------------

    @property
    def snapshot(self) -> Optional[Snapshot[DataT]]:
        """Latest published snapshot, None until the first cycle succeeds."""
        return self._snapshot

    @property
    def is_loading(self) -> bool:
        return self._driver is not None and not self._driver.done()

    @property
    def issued_sequence(self) -> int:
        return self._issued

    def resolve_window(self) -> Optional[DateWindow]:
        """Window for a cycle starting now; None for undated reports."""
        if not self.report.date_filtered:
            return None
        return resolve_date_range(
            self.date_range,
            custom_start=self.custom_start,
            custom_end=self.custom_end,
            now=self.clock(),
        )

    # -- triggers -----------------------------------------------------------

    def request_refresh(self) -> asyncio.Task:
        """
        Schedule a cycle.

        While a cycle is running this only marks one follow-up cycle as
        pending, however often it is called.
        """
        if self.is_loading:
            self._pending = True
            return self._driver

        self._pending = True
        self._driver = asyncio.get_running_loop().create_task(self._drive())
        return self._driver

    async def refetch(self) -> Optional[Snapshot[DataT]]:
        """Run (or join) a refresh and return the resulting snapshot."""
        self.request_refresh()
        await self.wait_idle()
        return self._snapshot

    def set_date_range(
        self,
        date_range: Union[str, DateRange],
        custom_start: Optional[datetime] = None,
        custom_end: Optional[datetime] = None,
    ) -> asyncio.Task:
        """
        Switch the window and restart.

        Raises:
            InvalidDateRangeError: before anything changes, if the range
                cannot be resolved
        """
        tag = parse_date_range(date_range)
        if self.report.date_filtered:
            resolve_date_range(tag, custom_start, custom_end, now=self.clock())

        self.date_range = tag
        self.custom_start = custom_start
        self.custom_end = custom_end

        self.invalidate()
        if self._cycle is not None and not self._cycle.done():
            self._log.info("Cancelling in-flight cycle", date_range=tag.value)
            self._cycle.cancel()
        return self.request_refresh()

    def invalidate(self) -> None:
        """Mark any in-flight result as stale so it is never published."""
        self._issued += 1

    async def wait_idle(self) -> None:
        while self._driver is not None and not self._driver.done():
            await asyncio.wait([self._driver])

    async def close(self) -> None:
        self.invalidate()
        self._pending = False
        for task in (self._cycle, self._driver):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._cycle, self._driver):
            if task is not None:
                await asyncio.wait([task])
        self._log.debug("Pipeline closed")

    # -- cycles -------------------------------------------------------------

    async def _drive(self) -> None:
        try:
            while self._pending:
                self._pending = False
                self._issued += 1
                sequence = self._issued

                cycle = asyncio.get_running_loop().create_task(self._run_cycle(sequence))
                self._cycle = cycle
                await asyncio.wait([cycle])

                if cycle.cancelled():
                    CYCLES_TOTAL.labels(report=self.report.name, outcome="cancelled").inc()
                    self._log.info("Cycle cancelled", sequence=sequence)
        finally:
            self._cycle = None

    async def _run_cycle(self, sequence: int) -> None:
        started = time.perf_counter()
        log = self._log.bind(sequence=sequence)

        try:
            window = self.resolve_window()
            specs = self.report.collections(self.filters)
            fetched = await fetch_collections(self.source, specs, window)

            records = RecordSet(fetched, specs)
            context = ReportContext(
                window=window,
                filters=self.filters,
                settings=self.settings,
                now=self.clock(),
            )
            data = self.report.reduce(records, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(sequence, e)
            return
        finally:
            CYCLE_DURATION.labels(report=self.report.name).observe(time.perf_counter() - started)

        if sequence != self._issued:
            STALE_RESULTS.labels(report=self.report.name).inc()
            CYCLES_TOTAL.labels(report=self.report.name, outcome="stale").inc()
            log.info("Discarding stale cycle result", newest=self._issued)
            return

        for collection, count in records.skipped.items():
            SKIPPED_RECORDS.labels(report=self.report.name, collection=collection).inc(count)

        self._snapshot = Snapshot(
            report=self.report.name,
            sequence=sequence,
            window=window,
            generated_at=context.now,
            data=data,
            degraded_collections=tuple(fetched.degraded),
            skipped_records=dict(records.skipped),
        )

        outcome = "partial" if fetched.degraded else "success"
        CYCLES_TOTAL.labels(report=self.report.name, outcome=outcome).inc()
        log.info(
            "Snapshot published",
            outcome=outcome,
            degraded=fetched.degraded or None,
            skipped=records.skipped or None,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    def _fail(self, sequence: int, error: Exception) -> None:
        CYCLES_TOTAL.labels(report=self.report.name, outcome="error").inc()

        if isinstance(error, RequiredCollectionError):
            self._log.error(
                "Analytics cycle failed",
                sequence=sequence,
                collection=error.collection,
                error=str(error.cause),
            )
        else:
            self._log.exception("Analytics cycle failed", sequence=sequence, error=str(error))

        if sequence != self._issued:
            return

        self.notifications.error(
            title=self.report.error_title,
            description=str(error),
            report=self.report.name,
        )

    def describe(self) -> dict:
        """Loading state and window of this pipeline, for API responses."""
        window = self._snapshot.window if self._snapshot else None
        return {
            "report": self.report.name,
            "date_range": self.date_range.value,
            "filters": {
                "device_type": self.filters.device_type,
                "category": self.filters.category,
            },
            "is_loading": self.is_loading,
            "sequence": self._snapshot.sequence if self._snapshot else None,
            "window": (
                {"start": window.start.isoformat(), "end": window.end.isoformat()}
                if window else None
            ),
        }

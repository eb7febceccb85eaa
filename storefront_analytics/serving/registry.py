"""
Pipeline Registry

Owns the pipelines behind the HTTP API. Preset date ranges get one
long-lived pipeline per report and filter set, kept current by a
LiveRefreshController. Custom ranges run a single cycle and are thrown
away. Live pipelines are capped; the least recently used one is stopped
when a new one would exceed the cap.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

import structlog

from storefront_analytics.analytics import (
    AnalyticsFilters,
    AnalyticsPipeline,
    DataSource,
    DateRange,
    InvalidDateRangeError,
    LiveRefreshController,
    NotificationCenter,
    Snapshot,
    get_report,
)
from storefront_analytics.analytics.date_range import parse_date_range
from storefront_analytics.config import AnalyticsSettings

logger = structlog.get_logger(__name__)

PipelineKey = Tuple[str, str, AnalyticsFilters]


@dataclass
class LiveEntry:
    pipeline: AnalyticsPipeline
    controller: LiveRefreshController
    started: asyncio.Task

    async def stop(self) -> None:
        if not self.started.done():
            self.started.cancel()
        await asyncio.wait([self.started])
        await self.controller.stop()
        await self.pipeline.close()


class PipelineRegistry:

    def __init__(
        self,
        source: DataSource,
        settings: AnalyticsSettings,
        notifications: Optional[NotificationCenter] = None,
    ):
        self.source = source
        self.settings = settings
        if notifications is None:
            notifications = NotificationCenter(settings.notification_history)
        self.notifications = notifications
        self._live: "OrderedDict[PipelineKey, LiveEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._live)

    def _pipeline(self, report_name: str, date_range, filters, custom_start=None, custom_end=None):
        return AnalyticsPipeline(
            get_report(report_name),
            self.source,
            date_range=date_range,
            custom_start=custom_start,
            custom_end=custom_end,
            filters=filters,
            settings=self.settings,
            notifications=self.notifications,
        )

    async def live_pipeline(
        self,
        report_name: str,
        date_range: str,
        filters: AnalyticsFilters,
    ) -> AnalyticsPipeline:
        """Get or start the live pipeline for a preset range."""
        report = get_report(report_name)
        tag = parse_date_range(date_range) if report.date_filtered else DateRange.TODAY
        key = (report.name, tag.value, filters)

        entry = self._live.get(key)
        if entry is None:
            pipeline = self._pipeline(report.name, tag, filters)
            controller = LiveRefreshController(pipeline, self.settings.refresh_debounce_seconds)
            # stored before the first await; concurrent callers share the entry
            entry = LiveEntry(pipeline, controller, asyncio.create_task(controller.start()))
            self._live[key] = entry
            logger.info("Live pipeline created", report=report.name, date_range=tag.value, filters=filters.cache_key())
            await self._evict()
        else:
            self._live.move_to_end(key)

        try:
            await asyncio.shield(entry.started)
        except asyncio.CancelledError:
            # evicted before it finished starting: serve it as is
            if not entry.started.cancelled():
                raise
        except Exception:
            if self._live.get(key) is entry:
                del self._live[key]
                await entry.stop()
            raise
        return entry.pipeline

    async def _evict(self) -> None:
        while len(self._live) > self.settings.max_live_pipelines:
            key, entry = self._live.popitem(last=False)
            logger.info("Live pipeline evicted", report=key[0], date_range=key[1], filters=key[2].cache_key())
            await entry.stop()

    async def snapshot(
        self,
        report_name: str,
        date_range: str,
        filters: AnalyticsFilters,
        custom_start: Optional[datetime] = None,
        custom_end: Optional[datetime] = None,
    ) -> Tuple[AnalyticsPipeline, Optional[Snapshot]]:
        """
        Latest snapshot for a request.

        Raises:
            InvalidDateRangeError: unknown range or inverted custom window
            KeyError: unknown report
        """
        if parse_date_range(date_range) == DateRange.CUSTOM:
            pipeline = self._pipeline(report_name, date_range, filters, custom_start, custom_end)
            try:
                snapshot = await pipeline.refetch()
            finally:
                await pipeline.close()
            return pipeline, snapshot

        pipeline = await self.live_pipeline(report_name, date_range, filters)
        if pipeline.snapshot is None:
            await pipeline.wait_idle()
        return pipeline, pipeline.snapshot

    async def refetch(self, report_name: str, date_range: str, filters: AnalyticsFilters) -> AnalyticsPipeline:
        if parse_date_range(date_range) == DateRange.CUSTOM:
            raise InvalidDateRangeError("Custom ranges are not kept live; request the report directly")
        pipeline = await self.live_pipeline(report_name, date_range, filters)
        await pipeline.refetch()
        return pipeline

    async def close(self) -> None:
        live, self._live = self._live, OrderedDict()
        for entry in live.values():
            await entry.stop()
        logger.info("Pipeline registry closed", pipelines=len(live))

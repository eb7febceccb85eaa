"""
Live Refresh Controller

Keeps a pipeline current by listening to change notifications on the
report's watched collections. Bursts of notifications are folded by a
trailing-edge debounce before a refresh is requested.
"""

import asyncio
from enum import Enum
from typing import List, Optional

import structlog

from storefront_analytics.config import get_settings

from .change_feed import SubscriptionHandle
from .pipeline import AnalyticsPipeline

logger = structlog.get_logger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class LiveRefreshController:
    """
    Subscribes a pipeline to its data source.

    Example:
        async with LiveRefreshController(pipeline) as controller:
            ...  # pipeline refreshes itself on every change burst
    """

    def __init__(
        self,
        pipeline: AnalyticsPipeline,
        debounce_seconds: Optional[float] = None,
    ):
        self.pipeline = pipeline
        if debounce_seconds is None:
            debounce_seconds = get_settings().analytics.refresh_debounce_seconds
        self.debounce_seconds = debounce_seconds

        self._handles: List[SubscriptionHandle] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.notifications_received = 0
        self.refreshes_requested = 0

    @property
    def state(self) -> RefreshState:
        return RefreshState.REFRESHING if self.pipeline.is_loading else RefreshState.IDLE

    @property
    def is_running(self) -> bool:
        return bool(self._handles)

    async def start(self, initial_refresh: bool = True) -> None:
        if self._handles:
            return
        self._loop = asyncio.get_running_loop()

        for collection in self.pipeline.report.watched:
            handle = await self.pipeline.source.subscribe(collection, self._on_change)
            self._handles.append(handle)

        logger.info(
            "Live refresh started",
            report=self.pipeline.report.name,
            watched=list(self.pipeline.report.watched),
        )
        if initial_refresh:
            self.pipeline.request_refresh()

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        handles, self._handles = self._handles, []
        for handle in handles:
            await self.pipeline.source.unsubscribe(handle)

        if handles:
            logger.info("Live refresh stopped", report=self.pipeline.report.name)

    def _on_change(self, collection: str) -> None:
        if not self._handles or self._loop is None:
            return
        self.notifications_received += 1

        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce_seconds, self._fire, collection)

    def _fire(self, collection: str) -> None:
        self._timer = None
        self.refreshes_requested += 1
        logger.debug(
            "Change burst settled, refreshing",
            report=self.pipeline.report.name,
            collection=collection,
            state=self.state.value,
        )
        self.pipeline.request_refresh()

    async def __aenter__(self) -> "LiveRefreshController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

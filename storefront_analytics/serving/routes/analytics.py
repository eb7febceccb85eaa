"""
Analytics API Endpoints

Dashboard-facing access to report snapshots and notifications.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from storefront_analytics.analytics import (
    REPORTS,
    AnalyticsFilters,
    AnalyticsPipeline,
    InvalidDateRangeError,
    Snapshot,
)
from storefront_analytics.serving.registry import PipelineRegistry

router = APIRouter()
logger = structlog.get_logger(__name__)


def get_registry(request: Request) -> PipelineRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Analytics data source not initialized")
    return registry


def _filters(device_type: Optional[str], category: Optional[str]) -> AnalyticsFilters:
    return AnalyticsFilters(device_type=device_type or None, category=category or None)


def _payload(pipeline: AnalyticsPipeline, snapshot: Optional[Snapshot]) -> Dict[str, Any]:
    if snapshot is None:
        latest = [
            n.description
            for n in pipeline.notifications.recent(limit=5)
            if n.report == pipeline.report.name
        ]
        raise HTTPException(
            status_code=503,
            detail={
                "message": pipeline.report.error_title,
                "reason": latest[0] if latest else None,
            },
        )
    return {"pipeline": pipeline.describe(), "snapshot": snapshot.to_dict()}


async def _report_response(
    registry: PipelineRegistry,
    report: str,
    date_range: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
    filters: AnalyticsFilters,
) -> Dict[str, Any]:
    try:
        pipeline, snapshot = await registry.snapshot(
            report,
            date_range or registry.settings.default_range,
            filters,
            custom_start=start,
            custom_end=end,
        )
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _payload(pipeline, snapshot)


@router.get("/ecommerce")
async def get_ecommerce_analytics(
    date_range: Optional[str] = Query(None, alias="range", description="today, yesterday, 7days, 30days, thisMonth, custom"),
    start: Optional[datetime] = Query(None, description="Custom range start"),
    end: Optional[datetime] = Query(None, description="Custom range end"),
    device_type: Optional[str] = None,
    category: Optional[str] = None,
    registry: PipelineRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """
    Cart, checkout, funnel and product KPIs.

    Preset ranges are served from a live pipeline that refreshes on
    order, cart and wishlist changes.
    """
    return await _report_response(
        registry, "ecommerce", date_range, start, end, _filters(device_type, category)
    )


@router.get("/traffic")
async def get_traffic_analytics(
    date_range: Optional[str] = Query(None, alias="range"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    device_type: Optional[str] = None,
    registry: PipelineRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Visits, visitors, bounce rate and page flow."""
    return await _report_response(
        registry, "traffic", date_range, start, end, _filters(device_type, None)
    )


@router.get("/live")
async def get_live_stats(registry: PipelineRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """Order status counts and revenue over the full order history."""
    return await _report_response(registry, "live", None, None, None, AnalyticsFilters())


@router.post("/{report}/refetch")
async def refetch_report(
    report: str,
    date_range: Optional[str] = Query(None, alias="range"),
    device_type: Optional[str] = None,
    category: Optional[str] = None,
    registry: PipelineRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Force a refresh of a live pipeline and return its snapshot."""
    if report not in REPORTS:
        raise HTTPException(status_code=404, detail=f"Unknown report {report!r}")

    try:
        pipeline = await registry.refetch(
            report,
            date_range or registry.settings.default_range,
            _filters(device_type, category),
        )
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Report refetched", report=report, sequence=pipeline.issued_sequence)
    return _payload(pipeline, pipeline.snapshot)


@router.get("/notifications")
async def get_notifications(
    limit: int = Query(20, ge=1, le=100),
    registry: PipelineRegistry = Depends(get_registry),
) -> List[Dict[str, Any]]:
    """Most recent user-visible notifications, newest first."""
    return [n.to_dict() for n in registry.notifications.recent(limit)]

"""
Date Range Resolution

Maps the dashboard's symbolic range tags to concrete half-open
``[start, end)`` windows anchored to the moment of the call.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from .errors import InvalidDateRangeError


class DateRange(str, Enum):
    """Symbolic date ranges offered by the dashboard"""
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"
    THIS_MONTH = "thisMonth"
    CUSTOM = "custom"


@dataclass(frozen=True)
class DateWindow:
    """Half-open interval of record creation times"""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_local(moment) < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> "DateWindow":
        """The equally long window that ends where this one starts."""
        return DateWindow(start=self.start - self.duration, end=self.start)


def as_local(moment: datetime) -> datetime:
    """Attach the host timezone to naive datetimes; aware ones pass through."""
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def _on_wall_clock(wall: datetime, like: datetime) -> datetime:
    """
    Attach the zone of ``like`` to the naive wall-clock time ``wall``.

    Moments carrying the host offset are re-localised through the host
    rules, since ``astimezone()`` only records a fixed offset.
    """
    if like.utcoffset() == like.astimezone().utcoffset():
        return wall.astimezone()
    return wall.replace(tzinfo=like.tzinfo)


def _midnight(moment: datetime, days_back: int = 0) -> datetime:
    """Local midnight ``days_back`` calendar days before ``moment``."""
    wall = moment.replace(tzinfo=None, hour=0, minute=0, second=0, microsecond=0)
    return _on_wall_clock(wall - timedelta(days=days_back), moment)


def parse_date_range(value: Union[str, DateRange]) -> DateRange:
    """Coerce a range tag, rejecting unknown values."""
    try:
        return DateRange(value)
    except ValueError:
        allowed = [r.value for r in DateRange]
        raise InvalidDateRangeError(f"Unknown date range {value!r}, expected one of {allowed}") from None


def resolve_date_range(
    date_range: Union[str, DateRange],
    custom_start: Optional[datetime] = None,
    custom_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> DateWindow:
    """
    Resolve a range tag into a concrete window.

    Args:
        date_range: One of today, yesterday, 7days, 30days, thisMonth, custom
        custom_start: Window start for ``custom`` (defaults to today's midnight)
        custom_end: Window end for ``custom`` (defaults to now)
        now: Anchor instant, defaults to the current local time

    Returns:
        DateWindow with ``start <= end``

    Raises:
        InvalidDateRangeError: unknown tag, or a custom start after its end
    """
    range_tag = parse_date_range(date_range)
    now = as_local(now) if now is not None else datetime.now().astimezone()
    today = _midnight(now)

    if range_tag == DateRange.TODAY:
        return DateWindow(start=today, end=now)
    if range_tag == DateRange.YESTERDAY:
        return DateWindow(start=_midnight(now, 1), end=today)
    if range_tag == DateRange.LAST_7_DAYS:
        return DateWindow(start=_midnight(now, 7), end=now)
    if range_tag == DateRange.LAST_30_DAYS:
        return DateWindow(start=_midnight(now, 30), end=now)
    if range_tag == DateRange.THIS_MONTH:
        return DateWindow(start=_midnight(now, now.day - 1), end=now)

    start = as_local(custom_start) if custom_start is not None else today
    end = as_local(custom_end) if custom_end is not None else now
    if start > end:
        raise InvalidDateRangeError(
            f"Custom range start {start.isoformat()} is after end {end.isoformat()}"
        )
    return DateWindow(start=start, end=end)

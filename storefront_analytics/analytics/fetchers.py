"""
Raw Data Fetchers

Issues every collection fetch of a report concurrently and joins them
before any reduction happens. Required collections abort the cycle when
they fail; optional ones degrade to an empty list.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from .date_range import DateWindow
from .errors import RequiredCollectionError
from .sources import DataSource, FetchQuery

logger = structlog.get_logger(__name__)


class Period(str, Enum):
    CURRENT = "current"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class CollectionSpec:
    """
    One fetch of a report.

    ``key`` names the result (two specs may read the same collection for
    different periods). Collections that are not ``date_filtered`` are
    fetched in full, only ``equals`` applies.
    """
    key: str
    collection: str
    required: bool = True
    date_filtered: bool = True
    period: Period = Period.CURRENT
    equals: Tuple[Tuple[str, Any], ...] = ()

    def query(self, window: Optional[DateWindow]) -> FetchQuery:
        if not self.date_filtered or window is None:
            return FetchQuery(equals=self.equals)
        if self.period == Period.PREVIOUS:
            window = window.previous()
        return FetchQuery(start=window.start, end=window.end, equals=self.equals)


@dataclass
class FetchResult:
    """Rows per spec key, plus the optional collections that failed"""
    rows: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    degraded: List[str] = field(default_factory=list)

    def __getitem__(self, key: str) -> List[Dict[str, Any]]:
        return self.rows[key]


async def fetch_collections(
    source: DataSource,
    specs: Sequence[CollectionSpec],
    window: Optional[DateWindow],
) -> FetchResult:
    """
    Fetch all collections in parallel.

    Raises:
        RequiredCollectionError: the first required collection (in spec
            order) that failed
    """
    outcomes = await asyncio.gather(
        *(source.fetch(spec.collection, spec.query(window)) for spec in specs),
        return_exceptions=True,
    )

    result = FetchResult()
    for spec, outcome in zip(specs, outcomes):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome

        if isinstance(outcome, Exception):
            if spec.required:
                logger.error(
                    "Required collection fetch failed",
                    collection=spec.collection,
                    key=spec.key,
                    error=str(outcome),
                )
                raise RequiredCollectionError(spec.collection, outcome) from outcome

            logger.warning(
                "Optional collection fetch failed, treating as empty",
                collection=spec.collection,
                key=spec.key,
                error=str(outcome),
            )
            result.rows[spec.key] = []
            result.degraded.append(spec.key)
            continue

        result.rows[spec.key] = outcome

    return result

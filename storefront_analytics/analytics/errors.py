"""
Analytics Exceptions
"""
from typing import Optional


class AnalyticsError(Exception):
    """Base class for analytics pipeline errors"""


class InvalidDateRangeError(AnalyticsError, ValueError):
    """Raised when a date range tag or custom window cannot be resolved"""


class UnknownCollectionError(AnalyticsError, KeyError):
    """Raised when a data source has no collection with the requested name"""

    def __init__(self, collection: str):
        super().__init__(collection)
        self.collection = collection

    def __str__(self) -> str:
        return f"Unknown collection: {self.collection}"


class FetchError(AnalyticsError):
    """Raised by data sources when a collection cannot be read"""

    def __init__(self, collection: str, message: Optional[str] = None):
        super().__init__(message or f"Failed to fetch {collection}")
        self.collection = collection


class RequiredCollectionError(AnalyticsError):
    """A collection the reducers cannot do without failed to load"""

    def __init__(self, collection: str, cause: BaseException):
        super().__init__(f"Required collection {collection} failed: {cause}")
        self.collection = collection
        self.cause = cause

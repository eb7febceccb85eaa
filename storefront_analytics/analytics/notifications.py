"""
User-visible notifications raised by analytics pipelines.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: Severity = Severity.INFO
    report: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now().astimezone())

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["severity"] = self.severity.value
        return payload


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """
    Bounded notification history with listener fan-out.

    A failing listener is logged and skipped; the remaining listeners
    still receive the notification.
    """

    def __init__(self, history: int = 50):
        self._history: Deque[Notification] = deque(maxlen=history)
        self._listeners: List[NotificationListener] = []

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def notify(self, notification: Notification) -> Notification:
        self._history.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error("Notification listener failed", error=str(e), title=notification.title)
        return notification

    def error(self, title: str, description: str, report: Optional[str] = None) -> Notification:
        return self.notify(Notification(title, description, Severity.ERROR, report))

    def warning(self, title: str, description: str, report: Optional[str] = None) -> Notification:
        return self.notify(Notification(title, description, Severity.WARNING, report))

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        """Newest first."""
        items = list(reversed(self._history))
        return items[:limit] if limit is not None else items

    def clear(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)

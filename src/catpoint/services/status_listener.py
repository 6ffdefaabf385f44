"""
Status Listeners - 状态变更通知

- StatusListener: observer contract used by SecurityService
- EventLog: listener keeping the most recent events for the control API
"""

from abc import ABC, abstractmethod
from collections import deque
from threading import Lock
from typing import Any, Dict, List

from ..domain.enums import AlarmStatus
from ..domain.models import SecurityEvent


class StatusListener(ABC):
    """Receives alarm status and camera verdict updates."""

    @abstractmethod
    def notify(self, status: AlarmStatus) -> None:
        """Called once per actual alarm status change."""
        pass

    @abstractmethod
    def cat_detected(self, cat_present: bool) -> None:
        """Called for every camera verdict, changed or not."""
        pass

    def sensor_status_changed(self) -> None:
        """Called after sensors were added, removed or (de)activated."""
        pass


class EventLog(StatusListener):
    """Bounded in-memory history of listener callbacks.

    Callbacks may arrive from the API worker thread running image
    classification, so access is locked.
    """

    def __init__(self, max_events: int = 100):
        self.max_events = max_events
        self._events: deque[SecurityEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def notify(self, status: AlarmStatus) -> None:
        self._append("alarm_status", {"alarm_status": status.value})

    def cat_detected(self, cat_present: bool) -> None:
        self._append("cat_detected", {"cat_present": cat_present})

    def sensor_status_changed(self) -> None:
        self._append("sensors_changed", {})

    def _append(self, kind: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._events.appendleft(SecurityEvent(kind=kind, payload=payload))

    def recent(self, limit: int = 10) -> List[SecurityEvent]:
        """Newest first."""
        with self._lock:
            return list(self._events)[:limit]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

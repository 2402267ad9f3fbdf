"""
Notification sink for attendance workflow events.

The real-time transport is an external collaborator. Services only see the
NotificationSink protocol and receive a concrete sink from the caller
(FastAPI dependency get_notifier). Delivery is best effort and always happens
after the database transaction has committed.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from app.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)


def user_target(user_id: int) -> str:
    return f"user:{user_id}"


def org_target(organization_id: int) -> str:
    return f"org:{organization_id}"


class NotificationSink(Protocol):
    def notify(self, target: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: writes each event to the application log."""

    def notify(self, target: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info("notify: target=%s event=%s payload=%s", target, event, payload)


class RecordingNotificationSink:
    """Keeps events in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify(self, target: str, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((target, event, payload))

    def for_event(self, event: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [e for e in self.events if e[1] == event]


def dispatch(
    sink: Optional[NotificationSink],
    target: str,
    event: str,
    payload: Dict[str, Any],
) -> bool:
    """
    Send one event. Sink failures are logged and swallowed: a committed
    attendance change must never be reported as failed because delivery failed.

    Returns:
        True when the sink accepted the event
    """
    if sink is None:
        return False
    try:
        sink.notify(target, event, sanitize_for_json(payload))
        return True
    except Exception:
        logger.exception("Notification delivery failed: target=%s event=%s", target, event)
        return False


def dispatch_many(
    sink: Optional[NotificationSink],
    messages: Iterable[Tuple[str, str, Dict[str, Any]]],
) -> int:
    """Send (target, event, payload) tuples in order; returns how many were delivered."""
    return sum(1 for target, event, payload in messages if dispatch(sink, target, event, payload))

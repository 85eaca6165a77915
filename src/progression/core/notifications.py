"""Completion notification dispatch.

Delivery (SMS, WhatsApp, ...) lives outside this package; the engine only
hands a Notification to the configured dispatcher. Dispatch is
fire-and-forget: failures are logged and never reach the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# Completing a live session is not announced
SILENT_CONTENT_TYPES = ("zoom",)


@dataclass
class Notification:
    student_id: str
    content_title: str
    content_type: str
    course: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "content_title": self.content_title,
            "content_type": self.content_type,
            "course": self.course,
        }


class NotificationDispatcher:
    """Interface for completion notification delivery."""

    def dispatch(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: records notifications in the log only."""

    def dispatch(self, notification: Notification) -> None:
        logger.info("notification_dispatched", **notification.to_dict())


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the global dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = LoggingNotificationDispatcher()
    return _dispatcher


def set_notification_dispatcher(dispatcher: NotificationDispatcher) -> None:
    """Install a dispatcher (e.g. an SMS gateway adapter)."""
    global _dispatcher
    _dispatcher = dispatcher


def reset_notification_dispatcher() -> None:
    """Reset the dispatcher (for testing)."""
    global _dispatcher
    _dispatcher = None


def notify_completion(
    student_id: str, content_title: str, content_type: str, course: str
) -> bool:
    """Send a completion notification.

    Returns:
        True if the dispatcher accepted it, False if skipped or failed
    """
    if content_type in SILENT_CONTENT_TYPES:
        logger.debug("notification_skipped", student_id=student_id, content_type=content_type)
        return False

    notification = Notification(
        student_id=student_id,
        content_title=content_title,
        content_type=content_type,
        course=course,
    )
    try:
        get_notification_dispatcher().dispatch(notification)
    except Exception as e:
        logger.error(
            "notification_failed",
            student_id=student_id,
            content_title=content_title,
            error=str(e),
        )
        return False
    return True

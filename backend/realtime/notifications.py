"""
Notification port for lease engine events.

The engine never waits on delivery. Each event is:
- queued on the Celery worker for email delivery (deliver_notification_task)
- pushed to the recipient's personal WebSocket group: user_<owner_id>

A failure anywhere in here is logged by ``safe_notify`` and never reaches
the state transition that produced the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    recipient_email: str
    recipient_name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient_id: Optional[int] = None

    @classmethod
    def for_owner(cls, kind: str, owner, payload: Dict[str, Any]) -> "NotificationEvent":
        """Build an event addressed to a fleet owner account."""
        return cls(
            kind=kind,
            recipient_email=owner.email or "",
            recipient_name=owner.display_name,
            payload=payload,
            recipient_id=owner.id,
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationPort:
    """Fire-and-forget side channel invoked on every engine transition."""

    def notify(self, event: NotificationEvent) -> bool:
        raise NotImplementedError


class ChannelsNotificationPort(NotificationPort):
    """Default port: Celery worker for email, channel layer for in-app events."""

    def notify(self, event: NotificationEvent) -> bool:
        if not getattr(settings, "NOTIFICATIONS_ENABLED", True):
            return False

        if event.recipient_email:
            from realtime.tasks import deliver_notification_task
            deliver_notification_task.delay(event.as_dict())

        if event.recipient_id:
            push_owner_event(event)

        return True


def push_owner_event(event: NotificationEvent) -> bool:
    """
    Send a lease event to a fleet owner's personal group: user_<owner_id>

    Returns:
        True if sent, False when no channel layer is configured
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    message = {
        "type": "lease_event",
        "kind": event.kind,
        "payload": event.payload,
    }
    logger.debug("WS -> user_%s: %s", event.recipient_id, message)
    async_to_sync(channel_layer.group_send)(f"user_{event.recipient_id}", message)
    return True


def safe_notify(notifier: NotificationPort, event: NotificationEvent) -> bool:
    """Hand an event to the port; log and swallow any failure."""
    try:
        return bool(notifier.notify(event))
    except Exception:
        logger.exception(
            "Failed to queue %s notification for owner %s",
            event.kind,
            event.recipient_id,
        )
        return False


def get_default_notifier() -> NotificationPort:
    return ChannelsNotificationPort()

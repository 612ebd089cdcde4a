"""Celery tasks for outbound lease notifications."""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

NOTIFICATION_SUBJECTS = {
    "match_request": "New match request for your driver",
    "driver_offer_request": "A fleet offered a driver for your load",
    "match_accepted": "Your match was accepted",
    "match_declined": "Your match request was declined",
    "match_countered": "You received a counter offer",
    "match_cancelled": "A match request was cancelled",
    "match_expired": "A match request expired",
    "tla_ready": "Trip Lease Agreement ready for your signature",
    "tla_signed": "Trip Lease Agreement fully signed",
    "tla_voided": "Trip Lease Agreement voided",
    "trip_started": "Trip started",
    "trip_completed": "Trip completed",
}


def render_notification(event: dict):
    """Build (subject, body) for an event dict produced by NotificationEvent.as_dict()."""
    kind = event.get("kind", "")
    payload = event.get("payload") or {}
    subject = NOTIFICATION_SUBJECTS.get(kind, "XtraFleet update")

    lines = [f"Hello {event.get('recipient_name') or 'there'},", ""]
    origin = payload.get("loadOrigin")
    destination = payload.get("loadDestination")
    if origin and destination:
        lines.append(f"Route: {origin} -> {destination}")
    if payload.get("driverName"):
        lines.append(f"Driver: {payload['driverName']}")
    if payload.get("rate") is not None:
        lines.append(f"Rate: ${payload['rate']:,.2f}")
    if payload.get("tripDuration"):
        lines.append(f"Trip duration: {payload['tripDuration']}")
    if payload.get("reason"):
        lines.append(f"Reason: {payload['reason']}")
    if payload.get("newStatus"):
        lines.append(f"Status: {payload['newStatus']}")
    return subject, "\n".join(lines)


@shared_task
def deliver_notification_task(event: dict):
    """Deliver one queued lease notification by email."""
    recipient = event.get("recipient_email")
    if not recipient:
        logger.info("Skipping %s notification with no recipient email", event.get("kind"))
        return False

    subject, body = render_notification(event)
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient])
    except Exception as e:
        logger.error(f"Error delivering {event.get('kind')} notification to {recipient}: {e}")
        return False
    return True

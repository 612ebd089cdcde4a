"""Notification events raised by agreement and trip transitions."""

from realtime.notifications import NotificationEvent, safe_notify


def tla_payload(tla, old_status, actor_id, **extra):
    payload = {
        "tlaId": tla.id,
        "matchId": tla.match_id,
        "oldStatus": old_status,
        "newStatus": tla.status,
        "actorId": actor_id,
        "driverName": tla.driver_snapshot.get("name"),
        "loadOrigin": tla.trip.get("origin"),
        "loadDestination": tla.trip.get("destination"),
        "rate": tla.payment.get("amount"),
    }
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


def notify_owners(notifier, kind, tla, owners, old_status, actor_id, **extra) -> int:
    """Send one event per owner; returns how many were handed to the port."""
    payload = tla_payload(tla, old_status, actor_id, **extra)
    sent = 0
    for owner in owners:
        if safe_notify(notifier, NotificationEvent.for_owner(kind, owner, payload)):
            sent += 1
    return sent

"""
Realtime app for lease engine notifications.

This app provides:
- The notification port the engines call on every transition
- Celery task for email delivery of notifications
- WebSocket consumer streaming lease events to fleet owners
- JWT/Cookie authentication middleware for WebSocket connections

Key Components:
    - notifications.py: NotificationEvent, NotificationPort, safe_notify
    - tasks.py: deliver_notification_task
    - consumers/: WebSocket consumers (fleet)

Usage:
    from realtime.notifications import NotificationEvent, safe_notify, get_default_notifier
    from realtime.consumers import FleetConsumer
"""

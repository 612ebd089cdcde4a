"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.fleet_consumer import FleetConsumer

websocket_urlpatterns = [
    # Fleet owner lease events
    # URL: ws://localhost:8000/ws/fleet/?token=<jwt>
    re_path(
        r"ws/fleet/$",
        FleetConsumer.as_asgi(),
        name="fleet-ws"
    ),
]

"""Realtime consumers for WebSocket communication."""

from .base import OwnerConsumer
from .fleet_consumer import FleetConsumer

__all__ = [
    "OwnerConsumer",
    "FleetConsumer",
]

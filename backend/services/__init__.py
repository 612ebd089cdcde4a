"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - core: Clock, expiry policy, error taxonomy and snapshot value objects
    - matching: Driver/load fit scoring and ranking
    - negotiation: Match request lifecycle (create, respond, cancel, expire)
    - agreements: Trip Lease Agreement signing and trip tracking
    - ratings: Driver rating aggregation
"""

# Expose the engines at package level
from .negotiation import MatchNegotiationEngine
from .agreements import TLASigningEngine, TripTracker
from .ratings import RatingAggregator

__all__ = [
    "MatchNegotiationEngine",
    "TLASigningEngine",
    "TripTracker",
    "RatingAggregator",
]

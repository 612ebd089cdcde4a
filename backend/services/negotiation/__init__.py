"""
Match negotiation service.

This module handles:
    - Creating match requests between fleets
    - Accept / decline / counter responses with expiry dominance
    - Cancellation by the initiator
    - Sweeping matches past their expiry instant
"""

from .match_lifecycle import MatchNegotiationEngine
from .match_store import MatchStore

__all__ = [
    "MatchNegotiationEngine",
    "MatchStore",
]

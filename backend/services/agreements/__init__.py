"""
Trip Lease Agreement service.

This module handles:
    - Generating agreements from accepted matches
    - Collecting lessor and lessee e-signatures
    - Voiding agreements (staff)
    - Trip start/end tracking and post-trip driver availability
"""

from .agreement_store import AgreementStore
from .signing import TLASigningEngine
from .tla_builder import generate_tla, render_tla_text
from .trip_tracking import TripTracker

__all__ = [
    "AgreementStore",
    "TLASigningEngine",
    "TripTracker",
    "generate_tla",
    "render_tla_text",
]

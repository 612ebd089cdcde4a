"""
Driver/load matching service.

This module handles:
    - Scoring a driver against a load
    - Ranking candidate drivers for a load (and loads for a driver)
    - Driver compliance banding from CDL and medical card expiry
"""

from .scoring import (
    calculate_match_score,
    compliance_status,
    find_matching_drivers,
    find_matching_loads,
    match_quality_label,
)

__all__ = [
    "calculate_match_score",
    "compliance_status",
    "find_matching_drivers",
    "find_matching_loads",
    "match_quality_label",
]

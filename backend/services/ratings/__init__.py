"""
Driver rating service.

This module handles:
    - Atomic running-average updates of a driver's rating
    - One rating per completed agreement
    - Append-only rating history
"""

from .aggregation import RatingAggregator, compute_running_average

__all__ = [
    "RatingAggregator",
    "compute_running_average",
]

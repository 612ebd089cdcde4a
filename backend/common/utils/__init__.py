"""Common utility functions."""

from .durations import format_trip_duration, trip_duration_minutes
from .responses import engine_error_response

__all__ = [
    "format_trip_duration",
    "trip_duration_minutes",
    "engine_error_response",
]

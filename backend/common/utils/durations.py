"""Trip duration helpers."""

from datetime import datetime


def trip_duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between two instants, rounded half up."""
    seconds = (ended_at - started_at).total_seconds()
    return int((seconds + 30) // 60)


def format_trip_duration(minutes: int) -> str:
    """
    Human readable trip duration.

    125 -> "2 hours 5 min", 120 -> "2 hours", 45 -> "45 minutes", 60 -> "1 hour"
    """
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins} minutes"

    hour_label = "hour" if hours == 1 else "hours"
    if mins == 0:
        return f"{hours} {hour_label}"
    return f"{hours} {hour_label} {mins} min"

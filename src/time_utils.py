from datetime import datetime, timezone
from typing import Optional


def to_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_duration(start_time: str, end_time: str) -> str:
    """
    Human readable duration between two ISO timestamps.

    Whole seconds are broken into hours, minutes and seconds, leaving out leading
    zero units: "1h 2m 3s", "15m 30s", "42s".
    """
    diff_ms = (parse_iso(end_time) - parse_iso(start_time)).total_seconds() * 1000
    seconds = int(diff_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def calculate_elapsed_time(start_time: str, now: Optional[str] = None) -> str:
    return format_duration(start_time, now or utc_now_iso())

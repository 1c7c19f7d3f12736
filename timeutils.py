"""Minute-of-day helpers used to lay out a doctor's slots."""

from typing import Iterator, Tuple

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: str) -> int:
    """Parse ``"HH:MM"`` into minutes since midnight, e.g. ``"09:30" -> 570``."""
    try:
        hours_text, minutes_text = value.split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM") from exc

    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        raise ValueError(f"Invalid time {value!r}, past end of day")
    return total


def minutes_to_time(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def generate_time_windows(
    start: str, end: str, duration_minutes: int
) -> Iterator[Tuple[int, int]]:
    """
    Yield consecutive ``(start_minute, end_minute)`` windows.

    generate_time_windows("09:00", "11:00", 60) -> (540, 600), (600, 660)
    """
    if duration_minutes <= 0:
        raise ValueError("Slot duration must be positive")

    current = time_to_minutes(start)
    end_minute = time_to_minutes(end)
    while current < end_minute:
        yield current, current + duration_minutes
        current += duration_minutes

"""Availability resolver - expands weekly windows into a day's slot grid"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Optional

from ...shared.validators import minutes_to_time, time_to_minutes


@dataclass(frozen=True, order=True)
class Slot:
    """Half-open interval [start, end) in minutes since midnight"""

    start: int
    end: int

    @classmethod
    def from_times(cls, start_time: str, end_time: str) -> "Slot":
        return cls(time_to_minutes(start_time), time_to_minutes(end_time))

    @classmethod
    def starting_at(cls, start_time: str, duration: int) -> "Slot":
        start = time_to_minutes(start_time)
        return cls(start, start + duration)

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and self.end > start

    def starts_on(self, day: date) -> datetime:
        return datetime.combine(day, time(self.start // 60, self.start % 60))


def windows_for_day(windows: Iterable, day: date) -> list:
    """Active windows whose weekday matches ``day`` (0=Monday), earliest first"""
    weekday = day.weekday()
    matching = [w for w in windows if w.is_active and w.day_of_week == weekday]
    return sorted(matching, key=lambda w: time_to_minutes(w.start_time))


def resolve_slots(windows: Iterable, day: date, duration: int, buffer: int = 0) -> list[Slot]:
    """
    Expand the availability windows matching ``day`` into candidate slots.

    Slots start at each window's opening time and step by ``duration + buffer``;
    a slot is emitted only if it ends at or before the window's closing time.
    Duplicate start times from overlapping windows collapse into one slot.

    Args:
        windows: Availability rows (anything with day_of_week/start_time/end_time/is_active)
        day: Calendar date to resolve
        duration: Consultation length in minutes
        buffer: Gap in minutes between consecutive slots

    Returns:
        Slots sorted by start time; empty if the clinic has no window that day
    """
    if duration <= 0:
        raise ValueError("Slot duration must be positive")

    step = duration + max(buffer or 0, 0)
    by_start: dict[int, Slot] = {}

    for window in windows_for_day(windows, day):
        current = time_to_minutes(window.start_time)
        closes = time_to_minutes(window.end_time)
        while current + duration <= closes:
            by_start.setdefault(current, Slot(current, current + duration))
            current += step

    return [by_start[start] for start in sorted(by_start)]


def find_slot(slots: Iterable[Slot], start_time: str) -> Optional[Slot]:
    """Return the slot starting at ``start_time``, if the grid offers one"""
    start = time_to_minutes(start_time)
    for slot in slots:
        if slot.start == start:
            return slot
    return None


def format_display_time(value: str) -> str:
    """Format "14:30" as "2:30 PM"."""
    hours, minutes = (int(part) for part in value.split(":"))
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{minutes:02d} {period}"


def period_of_day(slot: Slot) -> str:
    if slot.start < 12 * 60:
        return "morning"
    if slot.start < 17 * 60:
        return "afternoon"
    return "evening"

"""Wall-clock source for booking-window and cancellation-window checks"""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Server wall clock (naive local time, same as stored appointment times)"""

    def now(self) -> datetime:
        return datetime.now()


class FrozenClock:
    """Clock pinned to a fixed instant; ``advance`` moves it forward"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests"""
    return SystemClock()

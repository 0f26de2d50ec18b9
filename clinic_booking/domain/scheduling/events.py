"""Appointment lifecycle events and the notifier seam"""

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class AppointmentEvent(str, Enum):
    BOOKED = "appointment.booked"
    CONFIRMED = "appointment.confirmed"
    COMPLETED = "appointment.completed"
    CANCELLED = "appointment.cancelled"
    RESCHEDULED = "appointment.rescheduled"
    REMINDER = "appointment.reminder"


class Notifier(Protocol):
    """Receives committed lifecycle events; must not block the caller"""

    def notify(self, appointment_id: int, event_kind: AppointmentEvent) -> None: ...


class NullNotifier:
    def notify(self, appointment_id: int, event_kind: AppointmentEvent) -> None:
        logger.debug(f"Notification dropped for appointment {appointment_id}: {event_kind.value}")


class RecordingNotifier:
    """Keeps events in memory for inspection"""

    def __init__(self):
        self.events: list[tuple[int, AppointmentEvent]] = []

    def notify(self, appointment_id: int, event_kind: AppointmentEvent) -> None:
        self.events.append((appointment_id, event_kind))

"""
Appointment Notification Service
Turns committed appointment events into patient WhatsApp messages.
Booking writes never wait on delivery: events are queued (ARQ) or run as
FastAPI background tasks after the response is sent.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session, joinedload

from ..config import REMINDER_LEAD_HOURS
from ..database import SessionLocal
from ..domain.scheduling.availability import format_display_time
from ..domain.scheduling.conflicts import hold_expired
from ..domain.scheduling.events import AppointmentEvent
from ..domain.scheduling.policy import BookingPolicy
from ..domain.scheduling.rules import appointment_starts_at
from ..models import Appointment, AppointmentRules, AppointmentStatus
from .twilio_service import WhatsAppClient, send_whatsapp_message

logger = logging.getLogger(__name__)

NOTIFICATION_TASK = "send_appointment_notification_task"

MESSAGE_TYPES = {
    AppointmentEvent.BOOKED: "APPOINTMENT_CONFIRMATION",
    AppointmentEvent.CONFIRMED: "APPOINTMENT_CONFIRMED",
    AppointmentEvent.CANCELLED: "APPOINTMENT_CANCELLATION",
    AppointmentEvent.RESCHEDULED: "APPOINTMENT_RESCHEDULE",
    AppointmentEvent.REMINDER: "APPOINTMENT_REMINDER",
}


def _display_date(value: date) -> str:
    return value.strftime("%A, %d %B %Y")


def _clinic_footer(appointment: Appointment) -> str:
    clinic = appointment.clinic
    lines = [f"📍 {clinic.name}"]
    if clinic.address:
        lines.append(clinic.address)
    if clinic.phone:
        lines.append(f"📞 {clinic.phone}")
    return "\n".join(lines)


def _details(appointment: Appointment) -> str:
    lines = []
    if appointment.consultation_type:
        lines.append(f"📋 Type: {appointment.consultation_type.name}")
    if appointment.doctor_profile:
        lines.append(f"👨‍⚕️ Doctor: {appointment.doctor_profile.name}")
    lines.append(f"📅 Date: {_display_date(appointment.date)}")
    lines.append(f"⏰ Time: {format_display_time(appointment.start_time)}")
    lines.append(f"🔖 Booking Ref: {appointment.booking_ref}")
    return "\n".join(lines)


def build_message(appointment: Appointment, event: AppointmentEvent) -> Optional[str]:
    """Message body for an event, or None when the event has no patient message"""
    greeting = f"Hi {appointment.patient.name},"

    if event == AppointmentEvent.BOOKED:
        return (
            f"✅ *Appointment Booked*\n\n{greeting}\n\n"
            f"Your appointment request has been received.\n\n"
            f"{_details(appointment)}\n\n{_clinic_footer(appointment)}\n\n"
            f"We look forward to seeing you!"
        )

    if event == AppointmentEvent.CONFIRMED:
        return (
            f"✅ *Appointment Confirmed*\n\n{greeting}\n\n"
            f"Your appointment is confirmed.\n\n"
            f"{_details(appointment)}\n\n{_clinic_footer(appointment)}"
        )

    if event == AppointmentEvent.CANCELLED:
        reason = (
            f"\n\nReason: {appointment.cancellation_reason}"
            if appointment.cancellation_reason
            else ""
        )
        return (
            f"❌ *Appointment Cancelled*\n\n{greeting}\n\n"
            f"Your appointment on {_display_date(appointment.date)} at "
            f"{format_display_time(appointment.start_time)} has been cancelled.\n\n"
            f"🔖 Booking Ref: {appointment.booking_ref}{reason}\n\n"
            f"To book a new appointment, please contact {appointment.clinic.name}.\n\nThank you."
        )

    if event == AppointmentEvent.RESCHEDULED:
        previous = ""
        if appointment.original_date and appointment.original_time:
            previous = (
                f"Previously: {_display_date(appointment.original_date)} at "
                f"{format_display_time(appointment.original_time)}\n\n"
            )
        return (
            f"🔄 *Appointment Rescheduled*\n\n{greeting}\n\n{previous}"
            f"New appointment details:\n{_details(appointment)}\n\n"
            f"{_clinic_footer(appointment)}\n\nThank you."
        )

    if event == AppointmentEvent.REMINDER:
        return (
            f"⏰ *Appointment Reminder*\n\n{greeting}\n\n"
            f"This is a reminder of your upcoming appointment.\n\n"
            f"{_details(appointment)}\n\n{_clinic_footer(appointment)}\n\n"
            f"Please arrive 10 minutes early."
        )

    return None


async def send_appointment_notification(
    db: Session, client: WhatsAppClient, appointment_id: int, event_kind: str
) -> dict:
    """
    Send the patient message for one appointment event.

    Returns:
        Dict with sent flag and error/skip reason
    """
    event = AppointmentEvent(event_kind)
    appointment = (
        db.query(Appointment)
        .options(
            joinedload(Appointment.clinic),
            joinedload(Appointment.patient),
            joinedload(Appointment.consultation_type),
            joinedload(Appointment.doctor_profile),
        )
        .filter(Appointment.id == appointment_id)
        .first()
    )
    if not appointment:
        logger.warning(f"⚠️ Appointment {appointment_id} not found for {event.value}")
        return {"sent": False, "error": "Appointment not found"}

    rules = db.query(AppointmentRules).filter(AppointmentRules.clinic_id == appointment.clinic_id).first()
    policy = BookingPolicy.from_rules(rules)
    if event in (AppointmentEvent.BOOKED, AppointmentEvent.CONFIRMED) and not policy.send_confirmation:
        logger.debug(f"Confirmation messages disabled for clinic {appointment.clinic_id}")
        return {"sent": False, "skipped": "Confirmation messages disabled"}
    if event == AppointmentEvent.REMINDER and not policy.send_reminder:
        logger.debug(f"Reminders disabled for clinic {appointment.clinic_id}")
        return {"sent": False, "skipped": "Reminders disabled"}

    body = build_message(appointment, event)
    if body is None:
        return {"sent": False, "skipped": f"No message for {event.value}"}

    success, error = await send_whatsapp_message(
        db,
        client,
        clinic_id=appointment.clinic_id,
        to_phone=appointment.patient.phone,
        message_body=body,
        message_type=MESSAGE_TYPES[event],
        appointment_id=appointment.id,
    )
    return {"sent": success, "error": error}


def find_due_reminders(db: Session, now: datetime, lead: timedelta) -> list[Appointment]:
    """Live appointments starting within ``lead`` of ``now`` that have not been reminded"""
    horizon = now + lead
    candidates = (
        db.query(Appointment)
        .filter(
            Appointment.status.in_(
                [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
            ),
            Appointment.reminder_sent_at.is_(None),
            Appointment.date >= now.date(),
            Appointment.date <= horizon.date(),
        )
        .order_by(Appointment.date, Appointment.start_time)
        .all()
    )
    return [
        a
        for a in candidates
        if now < appointment_starts_at(a) <= horizon and not hold_expired(a, now)
    ]


async def send_due_reminders(
    db: Session, client: WhatsAppClient, now: datetime, lead: Optional[timedelta] = None
) -> dict:
    """
    Send one reminder per due appointment and stamp reminder_sent_at.

    Skipped and failed sends are stamped too; each appointment gets a single attempt.

    Returns:
        Dict with sent/skipped/failed counts
    """
    counts = {"sent": 0, "skipped": 0, "failed": 0}
    for appointment in find_due_reminders(db, now, lead or timedelta(hours=REMINDER_LEAD_HOURS)):
        result = await send_appointment_notification(
            db, client, appointment.id, AppointmentEvent.REMINDER.value
        )
        if result.get("sent"):
            counts["sent"] += 1
        elif result.get("skipped"):
            counts["skipped"] += 1
        else:
            counts["failed"] += 1

        appointment.reminder_sent_at = now
        db.commit()

    if any(counts.values()):
        logger.info(f"⏰ Reminders: {counts['sent']} sent, {counts['skipped']} skipped, {counts['failed']} failed")
    return counts


async def dispatch_notification(arq_pool, appointment_id: int, event_kind: str) -> None:
    """
    Queue the notification on the ARQ worker, or send inline when no queue is
    available. Failures are logged; they never reach the booking caller.
    """
    try:
        if arq_pool is not None:
            job = await arq_pool.enqueue_job(NOTIFICATION_TASK, appointment_id, event_kind)
            logger.info(f"📨 Queued {event_kind} for appointment {appointment_id} (job {job.job_id if job else 'duplicate'})")
            return

        db = SessionLocal()
        try:
            async with WhatsAppClient.from_config() as client:
                await send_appointment_notification(db, client, appointment_id, event_kind)
        finally:
            db.close()
    except Exception as e:
        logger.error(f"❌ Failed to deliver {event_kind} for appointment {appointment_id}: {e}")


class BackgroundTaskNotifier:
    """Notifier that hands events to FastAPI background tasks (run after the response)"""

    def __init__(self, background_tasks: BackgroundTasks, arq_pool=None):
        self.background_tasks = background_tasks
        self.arq_pool = arq_pool

    def notify(self, appointment_id: int, event_kind: AppointmentEvent) -> None:
        self.background_tasks.add_task(
            dispatch_notification, self.arq_pool, appointment_id, event_kind.value
        )

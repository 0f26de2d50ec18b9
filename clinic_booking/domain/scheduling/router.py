"""Scheduling router - public booking endpoints and the staff appointment dashboard"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_staff
from ...config import BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import Appointment, AppointmentStatus, ClinicStaff
from ...rate_limiter import create_rate_limiter
from ...services.notification_service import BackgroundTaskNotifier
from ...shared.clock import Clock, get_clock
from ...shared.validators import parse_date, validate_phone
from .availability import Slot, format_display_time, period_of_day
from .errors import Rejection, RejectionKind
from .events import Notifier
from .schemas import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatsResponse,
    AvailableDatesResponse,
    BookingRequest,
    CancelRequest,
    ConsultationTypeSummary,
    DoctorSummary,
    NextSlotResponse,
    NotesUpdateRequest,
    PaymentRequest,
    PublicAppointmentResponse,
    PublicClinicResponse,
    RescheduleRequest,
    SlotResponse,
    SlotsResponse,
    SlotStatsResponse,
    StaffRescheduleRequest,
    StatusUpdateRequest,
)
from .service import BookingService, PatientDetails

logger = logging.getLogger(__name__)

public_router = APIRouter(prefix="/public", tags=["Public Booking"])
router = APIRouter(prefix="/clinic/appointments", tags=["Appointments"])

booking_rate_limiter = create_rate_limiter(
    BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS, key_prefix="booking"
)


def get_notifier(request: Request, background_tasks: BackgroundTasks) -> Notifier:
    """Dependency injection for the post-commit notifier"""
    return BackgroundTaskNotifier(background_tasks, getattr(request.app.state, "arq_pool", None))


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, clock=clock, notifier=notifier)


def unwrap(result):
    if isinstance(result, Rejection):
        raise result.to_http()
    return result


def query_date(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse(
        time=slot.start_time,
        endTime=slot.end_time,
        displayTime=format_display_time(slot.start_time),
        displayEndTime=format_display_time(slot.end_time),
        duration=slot.duration,
        period=period_of_day(slot),
    )


def appointment_response(a: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=a.id,
        bookingRef=a.booking_ref,
        clinicId=a.clinic_id,
        date=a.date.isoformat(),
        startTime=a.start_time,
        endTime=a.end_time,
        duration=a.duration,
        status=a.status,
        fee=a.fee,
        consultationTypeId=a.consultation_type_id,
        consultationTypeName=a.consultation_type.name if a.consultation_type else None,
        doctorProfileId=a.doctor_profile_id,
        doctorName=a.doctor_profile.name if a.doctor_profile else None,
        patientName=a.patient.name if a.patient else None,
        patientPhone=a.patient.phone if a.patient else None,
        reasonForVisit=a.reason_for_visit,
        notes=a.notes,
        holdExpiresAt=a.hold_expires_at,
        cancellationReason=a.cancellation_reason,
        rescheduleCount=a.reschedule_count or 0,
        originalDate=a.original_date.isoformat() if a.original_date else None,
        originalTime=a.original_time,
        reminderSentAt=a.reminder_sent_at,
        createdAt=a.created_at,
    )


def public_appointment_response(a: Appointment) -> PublicAppointmentResponse:
    return PublicAppointmentResponse(
        bookingRef=a.booking_ref,
        clinicName=a.clinic.name,
        date=a.date.isoformat(),
        startTime=a.start_time,
        endTime=a.end_time,
        status=a.status,
        fee=a.fee,
        consultationTypeName=a.consultation_type.name if a.consultation_type else None,
        doctorName=a.doctor_profile.name if a.doctor_profile else None,
        patientName=a.patient.name if a.patient else None,
        rescheduleCount=a.reschedule_count or 0,
    )


def _verified_appointment(service: BookingService, booking_ref: str, phone: str) -> Appointment:
    """Public changes require the phone number the booking was made with"""
    appointment = unwrap(service.get_by_booking_ref(booking_ref))
    if appointment.patient.phone != phone:
        logger.warning(f"⚠️ Phone mismatch for booking {appointment.booking_ref}")
        raise Rejection.of(RejectionKind.PHONE_MISMATCH).to_http()
    return appointment


# ============================================================================
# PUBLIC BOOKING
# ============================================================================


@public_router.get("/clinics/{slug}", response_model=PublicClinicResponse)
async def get_public_clinic(slug: str, service: BookingService = Depends(get_booking_service)):
    """Clinic profile with its doctors and bookable consultation types"""
    clinic = unwrap(service.get_public_clinic(slug))
    return PublicClinicResponse(
        slug=clinic.slug,
        name=clinic.name,
        phone=clinic.phone,
        address=clinic.address,
        city=clinic.city,
        doctors=[
            DoctorSummary(
                id=d.id, name=d.name, specialization=d.specialization, isPrimary=d.is_primary
            )
            for d in service.repo.get_doctors(service.db, clinic.id)
        ],
        consultationTypes=[
            ConsultationTypeSummary.model_validate(ct)
            for ct in service.repo.get_consultation_types(service.db, clinic.id)
        ],
        requirePayment=service.get_policy(clinic.id).require_payment,
    )


@public_router.get("/clinics/{slug}/slots", response_model=SlotsResponse)
async def get_available_slots(
    slug: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    consultation_type_id: int = Query(...),
    doctor_profile_id: Optional[int] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """Free slots for a date; a closed day returns an empty list with dayClosed=true"""
    day = query_date(date)
    clinic = unwrap(service.get_public_clinic(slug))
    day_slots = unwrap(
        service.available_slots(clinic.id, day, consultation_type_id, doctor_profile_id)
    )
    return SlotsResponse(
        date=day.isoformat(),
        dayClosed=day_slots.closed,
        slots=[slot_response(s) for s in day_slots.slots],
        totalSlots=day_slots.total,
        availableSlots=len(day_slots.slots),
    )


@public_router.get("/clinics/{slug}/dates", response_model=AvailableDatesResponse)
async def get_available_dates(
    slug: str,
    days: int = Query(30, ge=1, le=90),
    service: BookingService = Depends(get_booking_service),
):
    clinic = unwrap(service.get_public_clinic(slug))
    dates = unwrap(service.available_dates(clinic.id, days))
    return AvailableDatesResponse(dates=[d.isoformat() for d in dates])


@public_router.get("/clinics/{slug}/next-slot", response_model=NextSlotResponse)
async def get_next_available_slot(
    slug: str,
    consultation_type_id: int = Query(...),
    doctor_profile_id: Optional[int] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    clinic = unwrap(service.get_public_clinic(slug))
    found = unwrap(service.next_available_slot(clinic.id, consultation_type_id, doctor_profile_id))
    if found is None:
        return NextSlotResponse(found=False)
    day, slot = found
    return NextSlotResponse(found=True, date=day.isoformat(), slot=slot_response(slot))


@public_router.post(
    "/clinics/{slug}/appointments",
    response_model=PublicAppointmentResponse,
    status_code=201,
    dependencies=[Depends(booking_rate_limiter)],
)
async def book_appointment(
    slug: str,
    data: BookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Book a slot; the appointment starts PENDING"""
    clinic = unwrap(service.get_public_clinic(slug))
    logger.info(f"📥 Booking request for {slug} on {data.date} at {data.time}")
    appointment = unwrap(
        service.book(
            clinic.id,
            data.consultationTypeId,
            data.day,
            data.time,
            PatientDetails(
                name=data.patient.name, phone=data.patient.phone, email=data.patient.email
            ),
            doctor_profile_id=data.doctorProfileId,
            reason_for_visit=data.reasonForVisit,
        )
    )
    return public_appointment_response(appointment)


@public_router.get("/appointments/{booking_ref}", response_model=PublicAppointmentResponse)
async def get_public_appointment(
    booking_ref: str, service: BookingService = Depends(get_booking_service)
):
    return public_appointment_response(unwrap(service.get_by_booking_ref(booking_ref)))


@public_router.post(
    "/appointments/{booking_ref}/cancel",
    response_model=PublicAppointmentResponse,
    dependencies=[Depends(booking_rate_limiter)],
)
async def cancel_public_appointment(
    booking_ref: str,
    data: CancelRequest,
    service: BookingService = Depends(get_booking_service),
):
    appointment = _verified_appointment(service, booking_ref, data.phone)
    return public_appointment_response(unwrap(service.cancel(appointment.id, data.reason)))


@public_router.post(
    "/appointments/{booking_ref}/reschedule",
    response_model=PublicAppointmentResponse,
    dependencies=[Depends(booking_rate_limiter)],
)
async def reschedule_public_appointment(
    booking_ref: str,
    data: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
):
    appointment = _verified_appointment(service, booking_ref, data.phone)
    return public_appointment_response(
        unwrap(service.reschedule(appointment.id, data.day, data.time))
    )


# ============================================================================
# STAFF DASHBOARD
# ============================================================================


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    date: Optional[str] = Query(None, description="Single day (YYYY-MM-DD)"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    status: Optional[AppointmentStatus] = Query(None),
    doctor_profile_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    start = query_date(start_date) if start_date else None
    end = query_date(end_date) if end_date else None
    if date:
        start = end = query_date(date)

    items, total = service.list_appointments(
        staff.clinic_id,
        start=start,
        end=end,
        status=status.value if status else None,
        doctor_profile_id=doctor_profile_id,
        limit=limit,
        offset=offset,
    )
    return AppointmentListResponse(
        items=[appointment_response(a) for a in items], total=total, limit=limit, offset=offset
    )


@router.get("/stats", response_model=AppointmentStatsResponse)
async def get_appointment_stats(
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    return AppointmentStatsResponse(**service.appointment_stats(staff.clinic_id))


@router.get("/slot-stats", response_model=SlotStatsResponse)
async def get_slot_stats(
    date: str = Query(...),
    consultation_type_id: Optional[int] = Query(None),
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    stats = unwrap(service.slot_stats(staff.clinic_id, query_date(date), consultation_type_id))
    return SlotStatsResponse(**{**stats, "date": stats["date"].isoformat()})


@router.get("/patient", response_model=list[AppointmentResponse])
async def get_patient_appointments(
    phone: str = Query(..., description="Patient phone number"),
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    """Upcoming PENDING and CONFIRMED appointments for a patient, soonest first"""
    try:
        normalized = validate_phone(phone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    appointments = service.upcoming_for_patient(staff.clinic_id, normalized)
    return [appointment_response(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    return appointment_response(unwrap(service.get_appointment(appointment_id, staff.clinic_id)))


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: StatusUpdateRequest,
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    logger.info(f"📝 {staff.email} setting appointment {appointment_id} to {data.status.value}")
    appointment = unwrap(
        service.update_status(appointment_id, data.status.value, staff.clinic_id, data.reason)
    )
    return appointment_response(appointment)


@router.patch("/{appointment_id}/notes", response_model=AppointmentResponse)
async def update_appointment_notes(
    appointment_id: int,
    data: NotesUpdateRequest,
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    return appointment_response(
        unwrap(service.add_notes(appointment_id, data.notes, clinic_id=staff.clinic_id))
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: StaffRescheduleRequest,
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    appointment = unwrap(
        service.reschedule(appointment_id, data.day, data.time, clinic_id=staff.clinic_id)
    )
    return appointment_response(appointment)


@router.post("/{appointment_id}/payment", response_model=AppointmentResponse)
async def record_payment(
    appointment_id: int,
    data: PaymentRequest,
    staff: ClinicStaff = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    appointment = unwrap(
        service.record_payment(
            appointment_id,
            data.status.value,
            external_payment_id=data.externalPaymentId,
            amount=data.amount,
            clinic_id=staff.clinic_id,
        )
    )
    return appointment_response(appointment)

"""
Shared fixtures for the booking tests.

Each test gets its own SQLite file database so that threaded tests can open
independent connections against the same data.
"""

import tempfile
import unittest
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from sqlalchemy.orm import sessionmaker

from clinic_booking import models_twilio  # noqa: F401
from clinic_booking.database import Base, build_engine
from clinic_booking.domain.scheduling.events import RecordingNotifier
from clinic_booking.domain.scheduling.service import BookingService, PatientDetails
from clinic_booking.models import (
    AppointmentRules,
    Availability,
    BlockedSlot,
    Clinic,
    ClinicStaff,
    ConsultationType,
    DoctorProfile,
)
from clinic_booking.shared.clock import FrozenClock

# Monday morning; TOMORROW is the day the default clinic opens
NOW = datetime(2026, 3, 2, 8, 0)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)
PHONE = "+919876543210"
OTHER_PHONE = "+919812345678"


class DatabaseTestCase(unittest.TestCase):
    """Fresh schema per test plus factories for clinic configuration"""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tmpdir.name) / "booking.db"
        self.engine = build_engine(f"sqlite:///{db_path}")
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.db = self.Session()
        self.clock = FrozenClock(NOW)
        self.notifier = RecordingNotifier()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        self._tmpdir.cleanup()

    # Factories

    def make_clinic(self, slug="sunrise", buffer_time=0, **fields) -> Clinic:
        clinic = Clinic(
            slug=slug,
            name=fields.pop("name", "Sunrise Clinic"),
            buffer_time=buffer_time,
            **fields,
        )
        self.db.add(clinic)
        self.db.commit()
        return clinic

    def make_doctor(self, clinic, name="Dr. Mehta", is_primary=True, **fields) -> DoctorProfile:
        doctor = DoctorProfile(clinic_id=clinic.id, name=name, is_primary=is_primary, **fields)
        self.db.add(doctor)
        self.db.commit()
        return doctor

    def make_window(self, clinic, day_of_week, start="09:00", end="12:00", is_active=True):
        window = Availability(
            clinic_id=clinic.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_active=is_active,
        )
        self.db.add(window)
        self.db.commit()
        return window

    def make_consultation_type(
        self, clinic, name="General Consultation", duration=30, fee=Decimal("500.00"), **fields
    ) -> ConsultationType:
        ct = ConsultationType(clinic_id=clinic.id, name=name, duration=duration, fee=fee, **fields)
        self.db.add(ct)
        self.db.commit()
        return ct

    def set_rules(self, clinic, **values) -> AppointmentRules:
        rules = self.db.query(AppointmentRules).filter_by(clinic_id=clinic.id).first()
        if rules is None:
            rules = AppointmentRules(clinic_id=clinic.id)
            self.db.add(rules)
        for key, value in values.items():
            setattr(rules, key, value)
        self.db.commit()
        return rules

    def block(self, clinic, day: date, start=None, end=None, reason="Vacation") -> BlockedSlot:
        blocked = BlockedSlot(
            clinic_id=clinic.id, date=day, start_time=start, end_time=end, reason=reason
        )
        self.db.add(blocked)
        self.db.commit()
        return blocked

    def make_staff(self, clinic, role="ADMIN", uid="staff-uid") -> ClinicStaff:
        staff = ClinicStaff(
            clinic_id=clinic.id, firebase_uid=uid, email="desk@sunrise.test", role=role
        )
        self.db.add(staff)
        self.db.commit()
        return staff

    def standard_clinic(self):
        """Clinic open 09:00-12:00 tomorrow with one doctor and a 30 minute type"""
        self.clinic = self.make_clinic()
        self.doctor = self.make_doctor(self.clinic)
        self.window = self.make_window(self.clinic, TOMORROW.weekday())
        self.ct = self.make_consultation_type(self.clinic)

    # Helpers

    def service(self, db=None, notifier=None) -> BookingService:
        return BookingService(
            db or self.db, clock=self.clock, notifier=notifier or self.notifier
        )

    def patient(self, phone=PHONE, name="Asha Rao", email=None) -> PatientDetails:
        return PatientDetails(name=name, phone=phone, email=email)

    def book(self, start="09:00", day=TOMORROW, phone=PHONE, **kwargs):
        return self.service().book(
            self.clinic.id, self.ct.id, day, start, self.patient(phone=phone), **kwargs
        )

"""Clinic configuration repository"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import AppointmentRules, Availability, BlockedSlot, ConsultationType


class ClinicConfigRepository:
    """Repository for clinic configuration rows"""

    # Availability windows

    @staticmethod
    def get_windows(db: Session, clinic_id: int) -> list[Availability]:
        return (
            db.query(Availability)
            .filter(Availability.clinic_id == clinic_id)
            .order_by(Availability.day_of_week, Availability.start_time)
            .all()
        )

    @staticmethod
    def get_window(db: Session, clinic_id: int, window_id: int) -> Optional[Availability]:
        return (
            db.query(Availability)
            .filter(Availability.id == window_id, Availability.clinic_id == clinic_id)
            .first()
        )

    @staticmethod
    def replace_windows(db: Session, clinic_id: int, windows: list[dict]) -> list[Availability]:
        db.query(Availability).filter(Availability.clinic_id == clinic_id).delete(
            synchronize_session=False
        )
        rows = [Availability(clinic_id=clinic_id, **w) for w in windows]
        db.add_all(rows)
        db.commit()
        return ClinicConfigRepository.get_windows(db, clinic_id)

    @staticmethod
    def add_window(db: Session, clinic_id: int, **window) -> Availability:
        row = Availability(clinic_id=clinic_id, **window)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete(db: Session, row) -> None:
        db.delete(row)
        db.commit()

    # Consultation types

    @staticmethod
    def get_consultation_types(db: Session, clinic_id: int) -> list[ConsultationType]:
        return (
            db.query(ConsultationType)
            .filter(ConsultationType.clinic_id == clinic_id)
            .order_by(ConsultationType.is_active.desc(), ConsultationType.duration, ConsultationType.id)
            .all()
        )

    @staticmethod
    def get_consultation_type(
        db: Session, clinic_id: int, consultation_type_id: int
    ) -> Optional[ConsultationType]:
        return (
            db.query(ConsultationType)
            .filter(
                ConsultationType.id == consultation_type_id,
                ConsultationType.clinic_id == clinic_id,
            )
            .first()
        )

    @staticmethod
    def create_consultation_type(db: Session, clinic_id: int, **data) -> ConsultationType:
        row = ConsultationType(clinic_id=clinic_id, **data)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def update(db: Session, row, **updates):
        for key, value in updates.items():
            if value is not None and hasattr(row, key):
                setattr(row, key, value)
        db.commit()
        db.refresh(row)
        return row

    # Rules

    @staticmethod
    def get_rules(db: Session, clinic_id: int) -> Optional[AppointmentRules]:
        return db.query(AppointmentRules).filter(AppointmentRules.clinic_id == clinic_id).first()

    @staticmethod
    def upsert_rules(db: Session, clinic_id: int, **updates) -> AppointmentRules:
        rules = ClinicConfigRepository.get_rules(db, clinic_id)
        if rules is None:
            rules = AppointmentRules(clinic_id=clinic_id)
            db.add(rules)
        for key, value in updates.items():
            setattr(rules, key, value)
        db.commit()
        db.refresh(rules)
        return rules

    # Blocked slots

    @staticmethod
    def get_blocked_slots(
        db: Session, clinic_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[BlockedSlot]:
        query = db.query(BlockedSlot).filter(BlockedSlot.clinic_id == clinic_id)
        if start is not None:
            query = query.filter(BlockedSlot.date >= start)
        if end is not None:
            query = query.filter(BlockedSlot.date <= end)
        return query.order_by(BlockedSlot.date, BlockedSlot.start_time).all()

    @staticmethod
    def get_blocked_slot(db: Session, clinic_id: int, blocked_id: int) -> Optional[BlockedSlot]:
        return (
            db.query(BlockedSlot)
            .filter(BlockedSlot.id == blocked_id, BlockedSlot.clinic_id == clinic_id)
            .first()
        )

    @staticmethod
    def add_blocked_slot(db: Session, clinic_id: int, **data) -> BlockedSlot:
        row = BlockedSlot(clinic_id=clinic_id, **data)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

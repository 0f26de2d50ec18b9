"""
Add the double-booking guard to existing PostgreSQL databases

- clinics.booking_seq: counter bumped by every booking transaction (row lock)
- appointments.hold_expires_at: optional expiry of PENDING holds
- uq_appointments_active_slot: partial unique index on
  (clinic_id, doctor_profile_id, date, start_time) for non-cancelled appointments

Fresh databases get all of this from Base.metadata.create_all().
Fails if live duplicate bookings already exist; resolve those first with
the query printed by --check.
"""

# Ensure this script can be run directly from the repo root
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import text

from clinic_booking.database import engine

DUPLICATES_QUERY = """
    SELECT clinic_id, doctor_profile_id, date, start_time, COUNT(*) AS bookings
    FROM appointments
    WHERE status <> 'CANCELLED'
    GROUP BY clinic_id, doctor_profile_id, date, start_time
    HAVING COUNT(*) > 1
"""


def check():
    with engine.connect() as conn:
        rows = conn.execute(text(DUPLICATES_QUERY)).fetchall()
    if rows:
        print(f"Found {len(rows)} double-booked slots:")
        for row in rows:
            print(f"  clinic={row.clinic_id} doctor={row.doctor_profile_id} {row.date} {row.start_time} x{row.bookings}")
    else:
        print("No double-booked slots found")
    return rows


def upgrade():
    with engine.connect() as conn:
        conn.execute(
            text(
                """
                ALTER TABLE clinics
                ADD COLUMN IF NOT EXISTS booking_seq INTEGER NOT NULL DEFAULT 0;
                """
            )
        )
        conn.execute(
            text(
                """
                ALTER TABLE appointments
                ADD COLUMN IF NOT EXISTS hold_expires_at TIMESTAMP;
                """
            )
        )
        conn.execute(
            text(
                """
                ALTER TABLE appointment_rules
                ADD COLUMN IF NOT EXISTS pending_hold_minutes INTEGER;
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot
                ON appointments (clinic_id, doctor_profile_id, date, start_time)
                WHERE status <> 'CANCELLED';
                """
            )
        )
        conn.commit()
        print("Migration add_appointment_slot_guard applied successfully")


def downgrade():
    with engine.connect() as conn:
        conn.execute(text("DROP INDEX IF EXISTS uq_appointments_active_slot"))
        conn.execute(text("ALTER TABLE appointment_rules DROP COLUMN IF EXISTS pending_hold_minutes"))
        conn.execute(text("ALTER TABLE appointments DROP COLUMN IF EXISTS hold_expires_at"))
        conn.execute(text("ALTER TABLE clinics DROP COLUMN IF EXISTS booking_seq"))
        conn.commit()
        print("Migration add_appointment_slot_guard rolled back")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage the appointment double-booking guard")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    parser.add_argument("--check", action="store_true", help="List double-booked slots only")
    args = parser.parse_args()

    if args.check:
        check()
    elif args.down:
        downgrade()
    else:
        upgrade()

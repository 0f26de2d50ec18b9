"""
Add appointments.reminder_sent_at for the scheduled reminder job

Fresh databases get this from Base.metadata.create_all().
"""

# Ensure this script can be run directly from the repo root
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import text

from clinic_booking.database import engine


def upgrade():
    with engine.connect() as conn:
        conn.execute(
            text(
                """
                ALTER TABLE appointments
                ADD COLUMN IF NOT EXISTS reminder_sent_at TIMESTAMP;
                """
            )
        )
        conn.commit()
        print("Migration add_appointment_reminders applied successfully")


def downgrade():
    with engine.connect() as conn:
        conn.execute(text("ALTER TABLE appointments DROP COLUMN IF EXISTS reminder_sent_at"))
        conn.commit()
        print("Migration add_appointment_reminders rolled back")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage the appointment reminder column")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        downgrade()
    else:
        upgrade()

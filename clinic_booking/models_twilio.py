"""
Twilio WhatsApp Models
Audit log of appointment messages sent to patients
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class MessageLog(Base):
    """Track WhatsApp messages sent via Twilio"""

    __tablename__ = "message_logs"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)

    # Message details
    to_phone = Column(String(40), nullable=False)
    message_type = Column(String(50), nullable=False)
    message_body = Column(Text, nullable=False)

    # Twilio response
    provider_message_sid = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)  # sent, failed, skipped
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    appointment = relationship("Appointment")

"""
Twilio WhatsApp Service
Sends appointment messages to patients and records every attempt in message_logs
"""

import logging
import re
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import (
    DEFAULT_COUNTRY_CODE,
    TWILIO_ACCOUNT_SID,
    TWILIO_API_BASE_URL,
    TWILIO_AUTH_TOKEN,
    TWILIO_WHATSAPP_FROM,
)
from ..models_twilio import MessageLog

logger = logging.getLogger(__name__)


def format_whatsapp_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalize a patient phone to Twilio's ``whatsapp:+<digits>`` address"""
    phone = phone.replace("whatsapp:", "").strip()
    digits = re.sub(r"\D", "", phone)
    if phone.startswith("+"):
        return f"whatsapp:+{digits}"
    if len(digits) == 10:
        return f"whatsapp:+{country_code}{digits}"
    return f"whatsapp:+{digits}"


class WhatsAppClient:
    """
    Thin Twilio Messages API client over a shared httpx.AsyncClient.

    Owners must call ``aclose()`` (or use ``async with``) to release the
    underlying connection pool.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        base_url: str = TWILIO_API_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")
        self.http = http_client or httpx.AsyncClient(timeout=10.0)

    @classmethod
    def from_config(cls) -> "WhatsAppClient":
        return cls(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM)

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def post_message(self, to: str, body: str) -> httpx.Response:
        from_number = self.from_number
        if not from_number.startswith("whatsapp:"):
            from_number = f"whatsapp:{from_number}"
        return await self.http.post(
            f"{self.base_url}/Accounts/{self.account_sid}/Messages.json",
            auth=(self.account_sid, self.auth_token),
            data={"To": to, "From": from_number, "Body": body},
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "WhatsAppClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def _log_message(db: Session, **fields) -> MessageLog:
    log = MessageLog(**fields)
    db.add(log)
    db.commit()
    return log


async def send_whatsapp_message(
    db: Session,
    client: WhatsAppClient,
    clinic_id: int,
    to_phone: str,
    message_body: str,
    message_type: str,
    appointment_id: Optional[int] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send a WhatsApp message via Twilio

    Args:
        db: Database session
        client: WhatsApp client holding the Twilio credentials
        clinic_id: Clinic the message is sent on behalf of
        to_phone: Recipient phone number
        message_body: Message content
        message_type: APPOINTMENT_CONFIRMATION, APPOINTMENT_CANCELLATION, ...
        appointment_id: Optional appointment the message is about

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        logger.debug(f"No phone number for appointment {appointment_id}")
        return False, "No phone number provided"

    to = format_whatsapp_number(to_phone)
    log_fields = {
        "clinic_id": clinic_id,
        "appointment_id": appointment_id,
        "to_phone": to,
        "message_type": message_type,
        "message_body": message_body,
    }

    if not client.is_configured:
        logger.warning(f"⚠️ Twilio WhatsApp not configured, skipping {message_type} to {to}")
        _log_message(db, status="skipped", error_message="Twilio not configured", **log_fields)
        return False, "Twilio not configured"

    logger.info(f"📱 Sending WhatsApp {message_type} to {to} (clinic {clinic_id})")
    try:
        response = await client.post_message(to, message_body)
    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio API error: {str(e)}")
        _log_message(db, status="failed", error_message=str(e), **log_fields)
        return False, str(e)

    if response.status_code in (200, 201):
        message_sid = response.json().get("sid")
        _log_message(db, status="sent", provider_message_sid=message_sid, **log_fields)
        logger.info(f"✅ WhatsApp sent: {message_type} to {to} (SID: {message_sid})")
        return True, None

    try:
        error_data = response.json()
    except ValueError:
        error_data = {}
    error_message = error_data.get("message") or f"HTTP {response.status_code}"
    error_code = error_data.get("code")
    if error_code:
        error_message = f"[{error_code}] {error_message}"

    _log_message(db, status="failed", error_message=error_message, **log_fields)
    logger.error(f"❌ Twilio API error for {message_type} to {to}: {error_message}")
    return False, error_message

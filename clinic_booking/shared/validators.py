"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

from ..config import DEFAULT_COUNTRY_CODE

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def validate_phone(phone: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """
    Validate and normalize a patient phone number to E.164 format.

    Numbers entered without a country code (10 digits, optionally with a
    leading trunk 0) get ``country_code`` prepended.

    Args:
        phone: Phone number string in various formats
        country_code: Digits of the default country code (no "+")

    Returns:
        Normalized phone number in E.164 format (+<country><number>)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    if not has_plus and digits.startswith("0"):
        digits = digits[1:]

    if not has_plus and len(digits) == 10:
        digits = f"{country_code}{digits}"

    # E.164 allows at most 15 digits including the country code
    if len(digits) < 11 or len(digits) > 15:
        raise ValueError("Phone number must include 10 digits plus a valid country code")

    return f"+{digits}"


def validate_time_string(value: Optional[str]) -> Optional[str]:
    """
    Validate a 24-hour "HH:MM" time string.

    Raises:
        ValueError: If the value is not zero-padded HH:MM
    """
    if value is None:
        return value

    if not TIME_PATTERN.match(value):
        raise ValueError("Invalid time format (HH:MM)")

    return value


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date string"""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError) as e:
        raise ValueError("Invalid date format. Use YYYY-MM-DD") from e


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight"""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM" """
    return f"{minutes // 60:02d}:{minutes % 60:02d}"

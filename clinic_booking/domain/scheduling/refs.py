"""Patient-facing booking reference codes"""

import secrets
from datetime import date

# Excludes look-alike characters 0/O and 1/I
REF_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REF_PREFIX = "TD"
REF_RANDOM_LENGTH = 5


def generate_booking_ref(created_on: date) -> str:
    """e.g. TD261019K7QXM - prefix, creation date (YYMMDD), random suffix"""
    suffix = "".join(secrets.choice(REF_ALPHABET) for _ in range(REF_RANDOM_LENGTH))
    return f"{REF_PREFIX}{created_on:%y%m%d}{suffix}"

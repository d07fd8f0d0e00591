"""
utils/validation_utils.py

Purpose: Input validation

- Mobile number normalization and validation
- OTP format checks
- Interest selection checks
- Input sanitization
"""

import re
from typing import List, Optional

from utils.constants import MAX_INTERESTS, MOBILE_LENGTH, OTP_LENGTH


def normalize_mobile_number(phone: str) -> Optional[str]:
    """
    Strips separators and a leading +91/91 country code.

    Args:
        phone: Raw phone number as typed

    Returns:
        Bare 10-digit number, or None if the input cannot be one
    """
    if not phone:
        return None

    phone = re.sub(r"[\s\-\(\)]", "", phone)

    if phone.startswith("+91"):
        phone = phone[3:]
    elif phone.startswith("91") and len(phone) == MOBILE_LENGTH + 2:
        phone = phone[2:]

    if not re.match(rf"^\d{{{MOBILE_LENGTH}}}$", phone):
        return None

    return phone


def validate_otp_format(otp: str) -> bool:
    """
    Validates OTP format (must be 6 digits).
    """
    if not otp:
        return False

    return bool(re.match(rf"^\d{{{OTP_LENGTH}}}$", otp.strip()))


def validate_interests(interests: List[str]) -> List[str]:
    """
    Drops blanks and duplicates, keeping selection order.

    Returns:
        Cleaned interest ids (may be longer than MAX_INTERESTS; only the
        first MAX_INTERESTS are stored on the profile)
    """
    cleaned = []
    for interest in interests or []:
        interest = (interest or "").strip()
        if interest and interest not in cleaned:
            cleaned.append(interest)
    return cleaned


def profile_interest_fields(interests: List[str]) -> dict:
    """
    Maps a selection onto the profile's three interest columns.
    """
    return {
        f"Interest_cat_{index + 1}": interests[index] if index < len(interests) else None
        for index in range(MAX_INTERESTS)
    }


def sanitize_input(text: str, max_length: int = 254) -> str:
    """
    Sanitizes free text such as an email address.

    Args:
        text: Input text
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    text = text[:max_length]
    text = re.sub(r"[<>{}\[\]]", "", text)
    text = " ".join(text.split())

    return text.strip()


def to_e164(mobile: str, country_code: str = "+91") -> str:
    """
    Formats a bare mobile number for the hosted SMS endpoint.
    """
    return f"{country_code}{mobile}"


def mask_mobile(mobile: str) -> str:
    """
    Masks all but the last four digits for logging.
    """
    if not mobile:
        return ""
    return "*" * max(len(mobile) - 4, 0) + mobile[-4:]

"""
Input sanitization and validation for contact form submissions.
Bounds field lengths and enforces required-field and email-format rules.
"""

import re
from enum import Enum
from typing import Optional

from email_validator import validate_email, EmailNotValidError


MISSING_FIELDS_MESSAGE = "Please fill in Name, Email, Subject, and Message."
INVALID_EMAIL_MESSAGE = "Please enter a valid email address."

_WHITESPACE = re.compile(r"\s")


class ValidationResult(str, Enum):
    VALID = "valid"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_EMAIL = "invalid_email"


def sanitize_text(text: Optional[str], max_length: int = 2000) -> str:
    """
    Normalize a raw field value.

    Args:
        text: Raw input (None is treated as empty)
        max_length: Maximum length in characters

    Returns:
        Trimmed text with CRLF/CR converted to LF, truncated to max_length
        characters and trimmed again so the result is stable under a second
        pass. Slicing a str counts code points, so a multi-byte
        character is never split.
    """
    if not text:
        return ""

    text = text.strip()
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    if len(text) > max_length:
        text = text[:max_length].rstrip()

    return text


def sanitize_header_value(value: str) -> str:
    """Strip line breaks from a value that ends up in a mail header."""
    return (value or "").replace("\r", " ").replace("\n", " ").strip()


def is_valid_email(email: str) -> bool:
    """
    Check email address syntax (local-part "@" domain with a dot, no whitespace).
    Deliverability (DNS) is not checked.
    """
    if not email or _WHITESPACE.search(email):
        return False
    if email.count("@") != 1 or "." not in email.rsplit("@", 1)[1]:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_contact_fields(
    name: str,
    email: str,
    subject: str,
    message: str,
    phone: str = "",
) -> ValidationResult:
    """
    Validate already sanitized contact fields.
    Phone is optional and never fails validation.
    """
    if not name or not email or not subject or not message:
        return ValidationResult.MISSING_REQUIRED_FIELD

    if not is_valid_email(email):
        return ValidationResult.INVALID_EMAIL

    return ValidationResult.VALID


def validation_error_message(result: ValidationResult) -> Optional[str]:
    """User-facing message for a failed validation, None when valid."""
    if result is ValidationResult.MISSING_REQUIRED_FIELD:
        return MISSING_FIELDS_MESSAGE
    if result is ValidationResult.INVALID_EMAIL:
        return INVALID_EMAIL_MESSAGE
    return None

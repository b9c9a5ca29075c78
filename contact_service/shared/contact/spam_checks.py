"""Honeypot and minimum-elapsed-time checks for contact submissions."""

import re
import time
from typing import Optional

from contact_service.shared.contact.config import MAX_HONEYPOT_LENGTH
from contact_service.shared.contact.input_validation import sanitize_text


TOO_FAST_MESSAGE = "Please wait a moment and try again."
DEFAULT_MIN_ELAPSED_MS = 3000

_LEADING_INTEGER = re.compile(r"\s*(\d+)")


def is_honeypot_triggered(value: Optional[str]) -> bool:
    """The hidden field is filled in (after sanitization) only by bots."""
    return sanitize_text(value, MAX_HONEYPOT_LENGTH) != ""


def parse_started_at(raw: Optional[str]) -> int:
    """
    Parse the client-side render timestamp (milliseconds since epoch).
    Only the leading digits count, so "1700000000000.5" reads as 1700000000000.
    Missing, blank, non-numeric and non-positive values all yield 0,
    which disables the timing check.
    """
    if raw is None:
        return 0
    match = _LEADING_INTEGER.match(raw)
    if not match:
        return 0
    return int(match.group(1))


def current_time_ms() -> int:
    return int(time.time() * 1000)


def is_submitted_too_fast(
    started_at_ms: int,
    now_ms: Optional[int] = None,
    min_elapsed_ms: int = DEFAULT_MIN_ELAPSED_MS,
) -> bool:
    """True when the form was submitted less than min_elapsed_ms after it was rendered."""
    if started_at_ms <= 0:
        return False
    if now_ms is None:
        now_ms = current_time_ms()
    return now_ms - started_at_ms < min_elapsed_ms

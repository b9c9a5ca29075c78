"""Pydantic schemas for contact API."""

from pydantic import BaseModel, field_validator
from typing import Optional

from contact_service.shared.contact.config import (
    MAX_NAME_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_PHONE_LENGTH,
    MAX_SUBJECT_LENGTH,
    MAX_MESSAGE_LENGTH,
)
from contact_service.shared.contact.input_validation import sanitize_text


class ContactSubmission(BaseModel):
    """Sanitized contact form fields. Values are trimmed, LF-normalized and length bounded."""
    name: str = ""
    email: str = ""
    phone: str = ""
    subject: str = ""
    message: str = ""

    @field_validator('name', mode='before')
    @classmethod
    def sanitize_name(cls, v):
        return sanitize_text(v, MAX_NAME_LENGTH)

    @field_validator('email', mode='before')
    @classmethod
    def sanitize_email(cls, v):
        return sanitize_text(v, MAX_EMAIL_LENGTH)

    @field_validator('phone', mode='before')
    @classmethod
    def sanitize_phone(cls, v):
        return sanitize_text(v, MAX_PHONE_LENGTH)

    @field_validator('subject', mode='before')
    @classmethod
    def sanitize_subject(cls, v):
        return sanitize_text(v, MAX_SUBJECT_LENGTH)

    @field_validator('message', mode='before')
    @classmethod
    def sanitize_message(cls, v):
        return sanitize_text(v, MAX_MESSAGE_LENGTH)


class ContactResponse(BaseModel):
    """Schema for contact form response. error is only set when ok is False."""
    ok: bool
    error: Optional[str] = None

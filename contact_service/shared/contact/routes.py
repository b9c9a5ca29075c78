"""Contact route: accepts website form submissions and forwards them to support."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Form, HTTPException, Request, status

from contact_service.shared.contact.config import ContactSettings
from contact_service.shared.contact.email_utils import ContactNotifier
from contact_service.shared.contact.input_validation import (
    ValidationResult,
    validate_contact_fields,
    validation_error_message,
)
from contact_service.shared.contact.rate_limit import (
    RATE_LIMIT_MESSAGE,
    SlidingWindowRateLimiter,
    get_client_ip,
)
from contact_service.shared.contact.schemas import ContactResponse, ContactSubmission
from contact_service.shared.contact.spam_checks import (
    TOO_FAST_MESSAGE,
    is_honeypot_triggered,
    is_submitted_too_fast,
    parse_started_at,
)

router = APIRouter(prefix="/api", tags=["contact"])


def get_contact_settings(request: Request) -> ContactSettings:
    return request.app.state.contact_settings


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.contact_rate_limiter


def get_notifier(request: Request) -> ContactNotifier:
    return request.app.state.contact_notifier


@router.post(
    "/contact",
    response_model=ContactResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
def submit_contact_form(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    website: Optional[str] = Form(None),
    started_at: Optional[str] = Form(None),
    settings: ContactSettings = Depends(get_contact_settings),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    notifier: ContactNotifier = Depends(get_notifier),
):
    """
    Submit a message from the website contact form.

    Steps, each of which may end the request:
    - Honeypot: a filled hidden ``website`` field gets a fake success
    - Timing: submissions less than the minimum delay after render are refused
    - Rate limiting: sliding window per client IP, shared across workers
    - Validation: name, email, subject and message are required
    - Delivery: support notification (must succeed) and auto-reply (best effort)

    Declared as a plain function so FastAPI runs it in the threadpool;
    both the store lock and SMTP block.
    """
    client_ip = get_client_ip(request, settings.trust_forwarded_for)

    if is_honeypot_triggered(website):
        # Pretend success to avoid tipping off bots
        logging.info(f"Honeypot triggered by {client_ip}")
        return ContactResponse(ok=True)

    if is_submitted_too_fast(parse_started_at(started_at), min_elapsed_ms=settings.min_elapsed_ms):
        logging.info(f"Contact form submitted too fast by {client_ip}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=TOO_FAST_MESSAGE)

    if not limiter.admit(client_ip):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=RATE_LIMIT_MESSAGE)

    submission = ContactSubmission(
        name=name,
        email=email,
        phone=phone,
        subject=subject,
        message=message,
    )
    result = validate_contact_fields(
        submission.name,
        submission.email,
        submission.subject,
        submission.message,
        submission.phone,
    )
    if result is not ValidationResult.VALID:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation_error_message(result))

    outcome = notifier.notify(submission, client_ip=client_ip, host=request.headers.get("host"))

    # Only the support notification decides the outcome; the auto-reply is best effort
    if not outcome.notify_sent:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Could not send message right now. Please email {settings.support_email} directly.",
        )

    logging.info(f"Contact form message from {submission.email} delivered (auto-reply sent: {outcome.autoreply_sent})")
    return ContactResponse(ok=True)

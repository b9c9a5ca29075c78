"""Email delivery for contact form submissions: support notification and auto-reply."""

import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, NamedTuple, Optional, Protocol

from contact_service.shared.contact.config import ContactSettings
from contact_service.shared.contact.input_validation import sanitize_header_value
from contact_service.shared.contact.schemas import ContactSubmission


AUTO_REPLY_SUBJECT = "Thanks, we got your message"


class MailTransport(Protocol):
    def send(self, to: str, subject: str, body: str, headers: Dict[str, str]) -> bool:
        ...


class NotificationOutcome(NamedTuple):
    notify_sent: bool
    autoreply_sent: bool


class SMTPMailTransport:
    """Send plain text UTF-8 mail through an SMTP relay configured from the environment."""

    def __init__(self, settings: ContactSettings):
        self.settings = settings

    def send(self, to: str, subject: str, body: str, headers: Dict[str, str]) -> bool:
        """
        Send a single plain text message.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain text body
            headers: Extra headers (From, Reply-To, ...)

        Returns:
            True if the relay accepted the message, False otherwise
        """
        settings = self.settings
        try:
            if not settings.smtp_user or not settings.smtp_password:
                logging.error("SMTP credentials not configured")
                return False

            msg = MIMEText(body, "plain", "utf-8")
            msg["To"] = to
            msg["Subject"] = sanitize_header_value(subject)
            for key, value in headers.items():
                msg[key] = sanitize_header_value(value)
            if "From" not in msg:
                msg["From"] = settings.smtp_user

            with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
                if settings.smtp_use_tls:
                    server.starttls()  # Enable encryption
                server.login(settings.smtp_user, settings.smtp_password)
                server.send_message(msg)

            logging.info(f"Email '{subject}' sent successfully to {to}")
            return True

        except Exception as e:
            logging.error(f"Failed to send email to {to}: {str(e)}", exc_info=True)
            return False


class ContactNotifier:
    """Compose and send the two messages produced by a contact submission."""

    def __init__(self, transport: MailTransport, settings: ContactSettings):
        self.transport = transport
        self.settings = settings

    def _from_header(self) -> str:
        return formataddr((self.settings.from_name, self.settings.from_email))

    def build_notification(self, submission: ContactSubmission, client_ip: str, host: Optional[str]):
        site = self.settings.site_name
        ip_line = f"IP: {client_ip}\n" if client_ip else ""
        subject = f"[{site} Contact] {submission.subject}"
        body = (
            f"New message from {site} website contact form\n\n"
            f"Name: {submission.name}\n"
            f"Email: {submission.email}\n"
            f"Phone: {submission.phone}\n"
            f"Subject: {submission.subject}\n"
            f"{ip_line}"
            f"Host: {host or self.settings.site_host}\n\n"
            f"Message:\n{submission.message}\n"
        )
        headers = {
            "From": self._from_header(),
            "Reply-To": formataddr((submission.name, submission.email)),
        }
        return subject, body, headers

    def build_auto_reply(self, submission: ContactSubmission):
        body = (
            f"Hi {submission.name},\n\n"
            "Thanks, we got your message and will get back to you as soon as we can.\n\n"
            f"- {self.settings.site_name}\n"
        )
        headers = {
            "From": self._from_header(),
            "Reply-To": self.settings.support_email,
        }
        return AUTO_REPLY_SUBJECT, body, headers

    def _send(self, to: str, subject: str, body: str, headers: Dict[str, str]) -> bool:
        try:
            return bool(self.transport.send(to, subject, body, headers))
        except Exception as e:
            logging.error(f"Mail transport raised while sending to {to}: {str(e)}", exc_info=True)
            return False

    def notify(self, submission: ContactSubmission, client_ip: str = "", host: Optional[str] = None) -> NotificationOutcome:
        """
        Send the support notification, then the auto-reply.
        Both are always attempted; each outcome is reported independently.
        """
        subject, body, headers = self.build_notification(submission, client_ip, host)
        notify_sent = self._send(self.settings.support_email, subject, body, headers)
        if not notify_sent:
            logging.error(f"Contact notification for {submission.email} was not delivered")

        subject, body, headers = self.build_auto_reply(submission)
        autoreply_sent = self._send(submission.email, subject, body, headers)
        if not autoreply_sent:
            logging.warning(f"Auto-reply to {submission.email} was not delivered")

        return NotificationOutcome(notify_sent=notify_sent, autoreply_sent=autoreply_sent)

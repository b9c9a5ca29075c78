"""Configuration for the contact form endpoint, read from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


# Maximum lengths (in characters) for each submitted field
MAX_NAME_LENGTH = 120
MAX_EMAIL_LENGTH = 180
MAX_PHONE_LENGTH = 60
MAX_SUBJECT_LENGTH = 140
MAX_MESSAGE_LENGTH = 5000
MAX_HONEYPOT_LENGTH = 200

RATE_LIMIT_FILENAME = "rate_limit.json"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


@dataclass(frozen=True)
class ContactSettings:
    """Settings shared by the rate limiter, the notifier and the contact route."""
    site_name: str = "Alttek"
    site_host: str = "alttek.ca"
    support_email: str = "support@alttek.ca"
    from_email: str = "no-reply@alttek.ca"
    from_name: str = "Alttek Website"

    data_dir: Path = Path("data")
    rate_limit_window_seconds: int = 600
    rate_limit_max_requests: int = 5
    rate_limit_lock_timeout: Optional[float] = 5.0
    min_elapsed_ms: int = 3000
    trust_forwarded_for: bool = False

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True

    cors_allowed_origins: List[str] = field(default_factory=list)

    @property
    def rate_limit_file(self) -> Path:
        return self.data_dir / RATE_LIMIT_FILENAME

    @classmethod
    def from_env(cls) -> "ContactSettings":
        """
        Build settings from the process environment.

        Numeric variables that cannot be parsed raise ValueError so a bad
        deployment fails at startup instead of on the first submission.
        A lock timeout of 0 or less means "wait indefinitely".
        """
        lock_timeout = float(os.environ.get("CONTACT_RATE_LIMIT_LOCK_TIMEOUT", "5.0"))
        window = int(os.environ.get("CONTACT_RATE_LIMIT_WINDOW_SECONDS", "600"))
        max_requests = int(os.environ.get("CONTACT_RATE_LIMIT_MAX_REQUESTS", "5"))
        if window <= 0 or max_requests <= 0:
            raise ValueError("Rate limit window and max requests must be positive")

        return cls(
            site_name=os.environ.get("CONTACT_SITE_NAME", "Alttek"),
            site_host=os.environ.get("CONTACT_SITE_HOST", "alttek.ca"),
            support_email=os.environ.get("SUPPORT_EMAIL", "support@alttek.ca"),
            from_email=os.environ.get("CONTACT_FROM_EMAIL", "no-reply@alttek.ca"),
            from_name=os.environ.get("CONTACT_FROM_NAME", "Alttek Website"),
            data_dir=Path(os.environ.get("CONTACT_DATA_DIR", "data")),
            rate_limit_window_seconds=window,
            rate_limit_max_requests=max_requests,
            rate_limit_lock_timeout=lock_timeout if lock_timeout > 0 else None,
            min_elapsed_ms=int(os.environ.get("CONTACT_MIN_ELAPSED_MS", "3000")),
            trust_forwarded_for=_env_bool("CONTACT_TRUST_FORWARDED_FOR", False),
            smtp_host=os.environ.get("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.environ.get("SMTP_PORT", "587")),
            smtp_user=os.environ.get("SMTP_USER") or None,
            smtp_password=os.environ.get("SMTP_PASSWORD") or None,
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            cors_allowed_origins=_env_list("CORS_ALLOWED_ORIGINS"),
        )

"""
Process-wide configuration, read once from the environment.

Values are injected into services at construction time; nothing below the
HTTP layer reads os.environ directly.
"""

import os
from dataclasses import dataclass
from typing import Optional

from lifecycle.classifier import DEFAULT_MIN_ANSWERED_SECONDS
from lifecycle.dispatcher import DEFAULT_PHONE_PATTERN, DEFAULT_PHONE_REGION
from lifecycle.provider import BlandClient


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret showing only the last 4 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


@dataclass
class Settings:
    # Call provider
    bland_api_key: Optional[str] = None
    bland_api_url: str = BlandClient.DEFAULT_BASE_URL
    call_summarize: bool = True
    call_record: bool = True
    http_timeout_seconds: float = 30.0

    # Lifecycle policy
    default_phone_region: str = DEFAULT_PHONE_REGION
    phone_pattern: str = DEFAULT_PHONE_PATTERN
    dispatch_max_attempts: int = 3
    poll_interval_seconds: float = 15.0
    poll_max_attempts: int = 10
    min_answered_seconds: float = DEFAULT_MIN_ANSWERED_SECONDS
    duration_filter_enabled: bool = True
    require_calendar_id: bool = False

    # Destination and scripts
    destination_webhook_url: Optional[str] = None
    call_script: str = "email_capture"
    company_name: str = "our service"

    # Inbound auth
    jwt_secret: Optional[str] = None
    jwt_expires_minutes: int = 60

    # SMS (Twilio) and SMS replies (OpenAI)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    debug: bool = False
    port: int = 3091

    def __post_init__(self):
        """Reject retry budgets that would fail every request."""
        for name in ("dispatch_max_attempts", "poll_max_attempts"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name.upper()} must be at least 1, got {value}")
        if self.poll_interval_seconds < 0:
            raise ValueError(f"POLL_INTERVAL_SECONDS cannot be negative, got {self.poll_interval_seconds}")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bland_api_key=os.getenv("BLAND_API_KEY"),
            bland_api_url=os.getenv("BLAND_API_URL", BlandClient.DEFAULT_BASE_URL),
            call_summarize=_env_bool("CALL_SUMMARIZE", True),
            call_record=_env_bool("CALL_RECORD", True),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
            default_phone_region=os.getenv("DEFAULT_PHONE_REGION", DEFAULT_PHONE_REGION),
            phone_pattern=os.getenv("PHONE_PATTERN", DEFAULT_PHONE_PATTERN),
            dispatch_max_attempts=_env_int("DISPATCH_MAX_ATTEMPTS", 3),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 15.0),
            poll_max_attempts=_env_int("POLL_MAX_ATTEMPTS", 10),
            min_answered_seconds=_env_float("MIN_ANSWERED_SECONDS", DEFAULT_MIN_ANSWERED_SECONDS),
            duration_filter_enabled=_env_bool("DURATION_FILTER_ENABLED", True),
            require_calendar_id=_env_bool("REQUIRE_CALENDAR_ID", False),
            destination_webhook_url=os.getenv("DESTINATION_WEBHOOK_URL") or None,
            call_script=os.getenv("CALL_SCRIPT", "email_capture"),
            company_name=os.getenv("COMPANY_NAME", "our service"),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_expires_minutes=_env_int("JWT_EXPIRES_MINUTES", 60),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            debug=_env_bool("DEBUG", False),
            port=_env_int("PORT", 3091),
        )

    @property
    def required_lead_fields(self):
        fields = ["phone", "name", "email"]
        if self.require_calendar_id:
            fields.append("calendarId")
        return fields

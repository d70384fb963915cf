"""
Process configuration from environment variables.

Settings are read once per service instance via load_settings(). The .env
file is loaded by app.main before anything calls this.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# The ElevenLabs agent's own number. It shows up in call-ended payloads
# next to the customer's and must never be mistaken for it.
DEFAULT_AGENT_PHONE_NUMBER = "+15856678990"
DEFAULT_ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid float for {env_var}: {raw!r}") from None


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {env_var}: {raw!r}") from None


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret showing only last 4 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


@dataclass(frozen=True)
class Settings:
    # ElevenLabs (outbound call initiation)
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_agent_id: Optional[str] = None
    elevenlabs_phone_number_id: Optional[str] = None
    elevenlabs_base_url: str = DEFAULT_ELEVENLABS_BASE_URL
    elevenlabs_timeout_seconds: float = 30.0

    # Twilio (SMS)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    twilio_http_timeout_seconds: float = 8.0

    agent_phone_number: str = DEFAULT_AGENT_PHONE_NUMBER

    # Upper bound on one SMS dispatch as seen by the webhook
    sms_dispatch_timeout_seconds: float = 10.0

    webhook_debug_capacity: int = 10
    debug: bool = False

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)

    @property
    def excluded_phone_numbers(self) -> Tuple[str, ...]:
        """Numbers owned by us; never a customer."""
        return tuple(n for n in (self.twilio_from_number, self.agent_phone_number) if n)

    def missing_outbound_call_settings(self) -> List[str]:
        """Env var names required by /outbound-call that are not set."""
        required = [
            ("ELEVENLABS_API_KEY", self.elevenlabs_api_key),
            ("ELEVENLABS_AGENT_ID", self.elevenlabs_agent_id),
            ("ELEVENLABS_PHONE_NUMBER_ID", self.elevenlabs_phone_number_id),
        ]
        return [name for name, value in required if not value]

    def missing_twilio_settings(self) -> List[str]:
        required = [
            ("TWILIO_ACCOUNT_SID", self.twilio_account_sid),
            ("TWILIO_AUTH_TOKEN", self.twilio_auth_token),
            ("TWILIO_FROM_NUMBER", self.twilio_from_number),
        ]
        return [name for name, value in required if not value]


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Raises:
        ValueError: If a numeric variable is malformed
    """
    capacity = _safe_int("WEBHOOK_DEBUG_CAPACITY", "10")
    if capacity < 1:
        raise ValueError(f"WEBHOOK_DEBUG_CAPACITY must be >= 1, got {capacity}")

    return Settings(
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY") or None,
        elevenlabs_agent_id=os.getenv("ELEVENLABS_AGENT_ID") or None,
        elevenlabs_phone_number_id=os.getenv("ELEVENLABS_PHONE_NUMBER_ID") or None,
        elevenlabs_base_url=os.getenv("ELEVENLABS_BASE_URL", DEFAULT_ELEVENLABS_BASE_URL).rstrip("/"),
        elevenlabs_timeout_seconds=_safe_float("ELEVENLABS_TIMEOUT_SECONDS", "30"),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
        twilio_from_number=os.getenv("TWILIO_FROM_NUMBER") or None,
        twilio_http_timeout_seconds=_safe_float("TWILIO_HTTP_TIMEOUT_SECONDS", "8"),
        agent_phone_number=os.getenv("AGENT_PHONE_NUMBER", DEFAULT_AGENT_PHONE_NUMBER),
        sms_dispatch_timeout_seconds=_safe_float("SMS_DISPATCH_TIMEOUT_SECONDS", "10"),
        webhook_debug_capacity=capacity,
        debug=os.getenv("DEBUG", "false").lower() == "true",
    )

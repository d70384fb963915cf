"""
SMS Service - sends templated follow-up SMS via Twilio.

This service:
1. Looks up the literal template body (never composes text)
2. Re-checks that the destination is not our own sending/agent number
3. Sends exactly one message via the Twilio REST API
4. Reports the message SID or the provider's error detail

Failures are reported, NEVER retried. A duplicate SMS to a bank customer
is worse than a missed one.

Python 3.9 compatible - uses typing.Optional, typing.Union
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from engine.probes import is_excluded_phone, mask_phone
from engine.templates import TemplateId, get_template

from .config import Settings, load_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one send attempt."""
    success: bool
    message_id: Optional[str] = None
    error_detail: Optional[str] = None


class SmsDispatcher:
    """Service for sending template SMS through Twilio."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        """Initialize Twilio client.

        Does NOT crash if Twilio not configured - send() returns a failure
        result instead.

        Args:
            settings: Settings to use (defaults to the environment)
            client: Pre-built Twilio client (tests inject a mock here)
        """
        self.settings = settings or load_settings()
        self.from_number = self.settings.twilio_from_number
        self.client = client

        if self.client is None and self.settings.twilio_configured:
            self.client = TwilioClient(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=self.settings.twilio_http_timeout_seconds),
            )

        if self.is_configured:
            logger.info(f"SmsDispatcher configured with sender: {self.from_number}")
        else:
            logger.warning(
                f"SmsDispatcher: Twilio credentials not configured "
                f"(missing={self.settings.missing_twilio_settings()}) - SMS will fail"
            )

    @property
    def is_configured(self) -> bool:
        """Check if Twilio is properly configured."""
        return self.client is not None and bool(self.from_number)

    def send(self, to_phone: str, template_id: Union[TemplateId, str]) -> DispatchResult:
        """Send a template SMS.

        Args:
            to_phone: Customer phone number
            template_id: Template to send

        Returns:
            DispatchResult with Twilio message SID or error detail

        Raises:
            UnknownTemplateError: If template_id is not registered
        """
        if not self.is_configured:
            logger.error("SMS not sent: missing Twilio credentials")
            return DispatchResult(success=False, error_detail="Missing Twilio credentials")

        if not to_phone:
            logger.error("SMS not sent: no destination phone")
            return DispatchResult(
                success=False,
                error_detail="customer_phone_not_resolved: destination phone is empty",
            )

        # Extraction already filters these out; checked again here so a
        # change upstream can never make us text ourselves
        if is_excluded_phone(to_phone, self.settings.excluded_phone_numbers):
            logger.error(
                f"CRITICAL: destination {mask_phone(to_phone)} matches our own number - "
                f"customer phone was not extracted from the webhook"
            )
            return DispatchResult(
                success=False,
                error_detail="customer_phone_not_resolved: destination matches the sending/agent number",
            )

        template = get_template(template_id)

        try:
            message = self.client.messages.create(
                body=template.body,
                from_=self.from_number,
                to=to_phone,
            )
        except TwilioRestException as e:
            logger.error(
                f"Twilio SMS error: status={e.status} code={e.code} msg={e.msg} "
                f"to={mask_phone(to_phone)} template={template.id.value}"
            )
            return DispatchResult(success=False, error_detail=str(e.msg))
        except Exception as e:
            logger.error(f"Twilio SMS send failed: {type(e).__name__}: {e}")
            return DispatchResult(success=False, error_detail=str(e) or type(e).__name__)

        logger.info(
            f"SMS sent: SID={message.sid}, template={template.id.value}, to={mask_phone(to_phone)}"
        )
        return DispatchResult(success=True, message_id=message.sid)


# Singleton instance (created lazily)
_sms_dispatcher: Optional[SmsDispatcher] = None


def get_sms_dispatcher() -> SmsDispatcher:
    """Get or create the SmsDispatcher singleton."""
    global _sms_dispatcher
    if _sms_dispatcher is None:
        _sms_dispatcher = SmsDispatcher()
    return _sms_dispatcher

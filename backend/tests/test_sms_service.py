"""
Tests for the Twilio SMS dispatcher.

These tests verify that:
1. Missing credentials fail without touching Twilio
2. The destination is re-checked against our own numbers
3. Exactly one Twilio call per send, with the literal template body
4. Twilio errors are reported verbatim and NEVER retried
"""

from unittest.mock import MagicMock, patch

import pytest
from twilio.base.exceptions import TwilioRestException

from app.config import Settings
from app.sms_service import SmsDispatcher
from engine.templates import TEMPLATES, TemplateId, UnknownTemplateError

GATEWAY = "+15550001111"
AGENT = "+15856678990"
CUSTOMER = "+971501234567"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        twilio_account_sid="ACtest00000000000000000000000000",
        twilio_auth_token="test-token",
        twilio_from_number=GATEWAY,
        agent_phone_number=AGENT,
    )


@pytest.fixture
def twilio_client() -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SM0123456789")
    return client


@pytest.fixture
def dispatcher(settings: Settings, twilio_client: MagicMock) -> SmsDispatcher:
    return SmsDispatcher(settings, client=twilio_client)


class TestConfiguration:
    """Tests for credential handling."""

    def test_missing_credentials_fail_without_calling_twilio(self):
        dispatcher = SmsDispatcher(Settings(twilio_from_number=None))

        result = dispatcher.send(CUSTOMER, TemplateId.COMPLAINT)

        assert dispatcher.is_configured is False
        assert result.success is False
        assert result.error_detail == "Missing Twilio credentials"

    def test_client_built_from_settings(self, settings: Settings):
        with patch("app.sms_service.TwilioClient") as mock_client_cls:
            dispatcher = SmsDispatcher(settings)

        assert dispatcher.is_configured is True
        args, kwargs = mock_client_cls.call_args
        assert args == (settings.twilio_account_sid, settings.twilio_auth_token)
        assert "http_client" in kwargs

    def test_missing_from_number_is_not_configured(self, twilio_client: MagicMock):
        dispatcher = SmsDispatcher(Settings(), client=twilio_client)
        assert dispatcher.is_configured is False


class TestDestinationGuard:
    """The dispatcher refuses to text our own numbers."""

    @pytest.mark.parametrize("to_phone", [GATEWAY, "1 555 000 1111", AGENT, "+1-585-667-8990"])
    def test_own_number_is_refused(self, dispatcher: SmsDispatcher, twilio_client: MagicMock, to_phone: str):
        result = dispatcher.send(to_phone, TemplateId.OUTBOUND_CONFIRMATION)

        assert result.success is False
        assert result.error_detail.startswith("customer_phone_not_resolved:")
        twilio_client.messages.create.assert_not_called()

    def test_empty_destination_is_refused(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        result = dispatcher.send("", TemplateId.OUTBOUND_CONFIRMATION)

        assert result.success is False
        assert result.error_detail.startswith("customer_phone_not_resolved:")
        twilio_client.messages.create.assert_not_called()


class TestSend:
    """Tests for the Twilio call itself."""

    def test_success_returns_sid(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        result = dispatcher.send(CUSTOMER, TemplateId.REWARDS_TNC)

        assert result.success is True
        assert result.message_id == "SM0123456789"
        assert result.error_detail is None
        twilio_client.messages.create.assert_called_once_with(
            body=TEMPLATES[TemplateId.REWARDS_TNC].body,
            from_=GATEWAY,
            to=CUSTOMER,
        )

    def test_accepts_template_id_string(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        result = dispatcher.send(CUSTOMER, "COMPLAINT")

        assert result.success is True
        assert twilio_client.messages.create.call_args.kwargs["body"] == TEMPLATES[TemplateId.COMPLAINT].body

    def test_twilio_error_is_reported_not_retried(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        twilio_client.messages.create.side_effect = TwilioRestException(
            400,
            "https://api.twilio.com/2010-04-01/Accounts/AC/Messages.json",
            msg="The 'To' number +971501234567 is not a valid phone number.",
            code=21211,
            method="POST",
        )

        result = dispatcher.send(CUSTOMER, TemplateId.COMPLAINT)

        assert result.success is False
        assert result.error_detail == "The 'To' number +971501234567 is not a valid phone number."
        assert twilio_client.messages.create.call_count == 1

    def test_transport_error_is_reported(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        twilio_client.messages.create.side_effect = ConnectionError("connection reset")

        result = dispatcher.send(CUSTOMER, TemplateId.COMPLAINT)

        assert result.success is False
        assert result.error_detail == "connection reset"
        assert twilio_client.messages.create.call_count == 1

    def test_unknown_template_raises_before_sending(self, dispatcher: SmsDispatcher, twilio_client: MagicMock):
        with pytest.raises(UnknownTemplateError):
            dispatcher.send(CUSTOMER, "FREE_TEXT")

        twilio_client.messages.create.assert_not_called()

"""
Tests for operational endpoints and configuration.

These tests verify that:
1. GET /health reports setting presence, never values
2. GET /test-sms sends the fixed test template (400/500 on misuse)
3. /webhook-debug captures, shows and clears a bounded buffer
4. Settings parse the environment with clear errors
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import (
    DEFAULT_AGENT_PHONE_NUMBER,
    Settings,
    load_settings,
    mask_secret,
)
from app.debug_store import DebugPayloadStore
from app.main import app
from app.sms_service import SmsDispatcher
from engine.templates import TEMPLATES, TemplateId

GATEWAY = "+15550001111"
CUSTOMER = "+971501234567"

ENV_VARS = [
    "ELEVENLABS_API_KEY", "ELEVENLABS_AGENT_ID", "ELEVENLABS_PHONE_NUMBER_ID",
    "ELEVENLABS_BASE_URL", "ELEVENLABS_TIMEOUT_SECONDS",
    "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER", "TWILIO_HTTP_TIMEOUT_SECONDS",
    "AGENT_PHONE_NUMBER", "SMS_DISPATCH_TIMEOUT_SECONDS", "WEBHOOK_DEBUG_CAPACITY", "DEBUG",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every setting this service reads."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
async def client():
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def twilio_client() -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SMtest")
    return client


@pytest.fixture
def configured_dispatcher(twilio_client: MagicMock):
    settings = Settings(
        twilio_account_sid="ACtest00000000000000000000000000",
        twilio_auth_token="test-token",
        twilio_from_number=GATEWAY,
    )
    dispatcher = SmsDispatcher(settings, client=twilio_client)
    with patch("app.sms_service._sms_dispatcher", dispatcher):
        yield dispatcher


class TestHealth:
    """Tests for GET /health"""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient, clean_env):
        clean_env.setenv("ELEVENLABS_API_KEY", "xi-secret-key")

        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["env"] == {
            "hasApiKey": True,
            "hasAgentId": False,
            "hasPhoneId": False,
            "hasTwilio": False,
        }
        assert "xi-secret-key" not in response.text


class TestSmsTest:
    """Tests for GET /test-sms"""

    @pytest.mark.asyncio
    async def test_missing_phone_returns_400(self, client: AsyncClient):
        response = await client.get("/test-sms")

        assert response.status_code == 400
        assert response.json()["detail"].startswith("missing_phone:")

    @pytest.mark.asyncio
    async def test_unconfigured_returns_500(self, client: AsyncClient):
        with patch("app.sms_service._sms_dispatcher", SmsDispatcher(Settings())):
            response = await client.get("/test-sms", params={"phone": CUSTOMER})

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error"] == "Missing Twilio credentials"
        assert detail["credentials"] == {
            "TWILIO_ACCOUNT_SID": "NOT SET",
            "TWILIO_AUTH_TOKEN": "NOT SET",
            "TWILIO_FROM_NUMBER": "NOT SET",
        }

    @pytest.mark.asyncio
    async def test_sends_test_template(self, client: AsyncClient, configured_dispatcher, twilio_client):
        response = await client.get("/api/test-sms", params={"phone": CUSTOMER})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["messageId"] == "SMtest"
        assert data["to"] == CUSTOMER
        assert data["fromNumber"] == GATEWAY
        assert data["credentials"]["TWILIO_ACCOUNT_SID"] == "Set (ACtest...)"
        assert data["credentials"]["TWILIO_AUTH_TOKEN"] == "Set (hidden)"
        assert "test-token" not in response.text
        twilio_client.messages.create.assert_called_once_with(
            body=TEMPLATES[TemplateId.TEST_MESSAGE].body,
            from_=GATEWAY,
            to=CUSTOMER,
        )

    @pytest.mark.asyncio
    async def test_own_number_returns_500(self, client: AsyncClient, configured_dispatcher, twilio_client):
        response = await client.get("/test-sms", params={"phone": GATEWAY})

        assert response.status_code == 500
        assert response.json()["detail"]["error"].startswith("customer_phone_not_resolved:")
        twilio_client.messages.create.assert_not_called()


class TestWebhookDebug:
    """Tests for /webhook-debug"""

    @pytest.fixture(autouse=True)
    def store(self):
        store = DebugPayloadStore(capacity=2)
        with patch("app.main.debug_store", store):
            yield store

    @pytest.mark.asyncio
    async def test_empty_buffer(self, client: AsyncClient):
        response = await client.get("/webhook-debug")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "No webhook payload received yet"
        assert data["bufferedCount"] == 0
        assert data["capacity"] == 2
        assert data["payload"] is None

    @pytest.mark.asyncio
    async def test_capture_and_show(self, client: AsyncClient):
        post = await client.post(
            "/webhook-debug",
            json={"type": "post_call_transcription"},
            headers={"Authorization": "Bearer secret", "X-Trace": "t1"},
        )
        assert post.status_code == 200
        assert post.json()["received"] is True

        data = (await client.get("/api/webhook-debug")).json()
        assert data["payload"] == {"type": "post_call_transcription"}
        assert data["bufferedCount"] == 1
        headers = data["recent"][0]["headers"]
        assert headers["x-trace"] == "t1"
        assert "authorization" not in headers

    @pytest.mark.asyncio
    async def test_body_not_logged_at_info(self, client: AsyncClient, caplog):
        caplog.set_level(logging.INFO)

        await client.post("/webhook-debug", json={"to": CUSTOMER, "type": "call_ended"})

        assert CUSTOMER not in caplog.text
        assert "Keys: ['to', 'type']" in caplog.text

    @pytest.mark.asyncio
    async def test_buffer_is_bounded(self, client: AsyncClient):
        for i in range(3):
            await client.post("/webhook-debug", json={"n": i})

        data = (await client.get("/webhook-debug")).json()
        assert data["bufferedCount"] == 2
        assert data["payload"] == {"n": 2}
        assert [e["payload"] for e in data["recent"]] == [{"n": 2}, {"n": 1}]

    @pytest.mark.asyncio
    async def test_non_json_is_captured_as_empty(self, client: AsyncClient):
        await client.post("/webhook-debug", content=b"garbage", headers={"content-type": "text/plain"})

        data = (await client.get("/webhook-debug")).json()
        assert data["payload"] == {}

    @pytest.mark.asyncio
    async def test_reset(self, client: AsyncClient):
        await client.post("/webhook-debug", json={"n": 1})

        response = await client.delete("/webhook-debug")

        assert response.json() == {"cleared": 1}
        data = (await client.get("/webhook-debug")).json()
        assert data["bufferedCount"] == 0


class TestDebugPayloadStore:
    """Tests for the ring buffer itself."""

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            DebugPayloadStore(capacity=0)

    def test_latest_and_len(self):
        store = DebugPayloadStore(capacity=3)
        assert store.latest() is None

        store.record({"a": 1})
        store.record({"b": 2}, {"x-trace": "t"})

        assert len(store) == 2
        assert store.latest().payload == {"b": 2}
        assert store.latest().headers == {"x-trace": "t"}

    def test_reset_returns_count(self):
        store = DebugPayloadStore(capacity=3)
        store.record({})
        assert store.reset() == 1
        assert store.reset() == 0


class TestSettings:
    """Tests for environment parsing."""

    def test_defaults(self, clean_env):
        settings = load_settings()

        assert settings.agent_phone_number == DEFAULT_AGENT_PHONE_NUMBER
        assert settings.sms_dispatch_timeout_seconds == 10.0
        assert settings.webhook_debug_capacity == 10
        assert settings.twilio_configured is False
        assert settings.missing_outbound_call_settings() == [
            "ELEVENLABS_API_KEY", "ELEVENLABS_AGENT_ID", "ELEVENLABS_PHONE_NUMBER_ID",
        ]

    def test_reads_environment(self, clean_env):
        clean_env.setenv("TWILIO_ACCOUNT_SID", "ACxyz")
        clean_env.setenv("TWILIO_AUTH_TOKEN", "tok")
        clean_env.setenv("TWILIO_FROM_NUMBER", GATEWAY)
        clean_env.setenv("ELEVENLABS_BASE_URL", "https://eu.example.test/")
        clean_env.setenv("SMS_DISPATCH_TIMEOUT_SECONDS", "2.5")

        settings = load_settings()

        assert settings.twilio_configured is True
        assert settings.missing_twilio_settings() == []
        assert settings.excluded_phone_numbers == (GATEWAY, DEFAULT_AGENT_PHONE_NUMBER)
        assert settings.elevenlabs_base_url == "https://eu.example.test"
        assert settings.sms_dispatch_timeout_seconds == 2.5

    def test_bad_float_names_the_variable(self, clean_env):
        clean_env.setenv("SMS_DISPATCH_TIMEOUT_SECONDS", "soon")

        with pytest.raises(ValueError, match="SMS_DISPATCH_TIMEOUT_SECONDS"):
            load_settings()

    @pytest.mark.parametrize("value", ["0", "-1", "ten"])
    def test_bad_debug_capacity(self, clean_env, value):
        clean_env.setenv("WEBHOOK_DEBUG_CAPACITY", value)

        with pytest.raises(ValueError, match="WEBHOOK_DEBUG_CAPACITY"):
            load_settings()

    @pytest.mark.parametrize("value,expected", [
        (None, "(not set)"),
        ("", "(not set)"),
        ("abc", "****"),
        ("sk-1234567890", "****7890"),
    ])
    def test_mask_secret(self, value, expected):
        assert mask_secret(value) == expected

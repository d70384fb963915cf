"""
Call Notifier Backend - FastAPI Application

Two flows:
- POST /outbound-call: validate and forward an outbound AI call to ElevenLabs
- POST /webhook/call-ended: classify the finished call and, if warranted,
  send ONE pre-approved template SMS via Twilio

The webhook ALWAYS answers HTTP 200. SMS text is NEVER generated - only
hardcoded templates are sent.

Python 3.9 compatible.
"""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from engine.templates import TemplateId

from .config import Settings, load_settings, mask_secret
from .debug_store import DebugPayloadStore
from .elevenlabs_service import (
    ConfigurationError,
    OutboundCallService,
    ProviderError,
    validate_outbound_request,
)
from .models import (
    DebugCaptureResponse,
    DebugSnapshotResponse,
    HealthResponse,
    OutboundCallRequest,
    OutboundCallResponse,
    SmsTestResponse,
    WebhookAckResponse,
)
from .sms_service import get_sms_dispatcher
from .webhook_service import WebhookOrchestrator

APP_VERSION = "1.0.0"

# Never echoed back by /webhook-debug
SENSITIVE_HEADERS = {"authorization", "cookie", "xi-api-key", "x-api-key"}

# Load environment variables from backend/.env
# Try multiple paths to ensure we find .env
env_paths = [
    Path(__file__).parent.parent / ".env",  # backend/.env
    Path.cwd() / ".env",  # current working directory
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()  # fallback to default behavior

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Service instances (created in lifespan, or lazily on first use)
webhook_orchestrator: Optional[WebhookOrchestrator] = None
outbound_call_service: Optional[OutboundCallService] = None
debug_store: Optional[DebugPayloadStore] = None


def get_webhook_orchestrator() -> WebhookOrchestrator:
    global webhook_orchestrator
    if webhook_orchestrator is None:
        webhook_orchestrator = WebhookOrchestrator(get_sms_dispatcher())
    return webhook_orchestrator


def get_outbound_call_service() -> OutboundCallService:
    """
    Raises:
        ConfigurationError: If ElevenLabs settings are missing
    """
    global outbound_call_service
    if outbound_call_service is None:
        outbound_call_service = OutboundCallService()
    return outbound_call_service


def get_debug_store() -> DebugPayloadStore:
    global debug_store
    if debug_store is None:
        debug_store = DebugPayloadStore(load_settings().webhook_debug_capacity)
    return debug_store


def _credential_status(settings: Settings) -> Dict[str, str]:
    """Twilio credential presence, safe to return to a client."""
    sid = settings.twilio_account_sid
    return {
        "TWILIO_ACCOUNT_SID": f"Set ({sid[:6]}...)" if sid else "NOT SET",
        "TWILIO_AUTH_TOKEN": "Set (hidden)" if settings.twilio_auth_token else "NOT SET",
        "TWILIO_FROM_NUMBER": settings.twilio_from_number or "NOT SET",
    }


def _payload_keys(event: Any) -> List[str]:
    return sorted(str(k) for k in event.keys()) if isinstance(event, dict) else []


async def _read_event(request: Request) -> Any:
    """
    Parse a webhook body leniently.

    JSON object -> dict; other JSON -> {"payload": value}; form post -> dict
    of fields; empty or unparseable -> {}.
    """
    raw = await request.body()
    if not raw or not raw.strip():
        return {}

    try:
        body = json.loads(raw)
    except ValueError:
        content_type = request.headers.get("content-type", "")
        if "form" in content_type:
            form = await request.form()
            return {key: value for key, value in form.items() if isinstance(value, str)}
        logger.warning(f"Webhook body is not JSON ({len(raw)} bytes, content-type={content_type!r})")
        return {}

    if isinstance(body, dict):
        return body
    return {"payload": body}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - initialize services."""
    global webhook_orchestrator, outbound_call_service, debug_store

    logger.info("=" * 60)
    logger.info("Initializing Call Notifier Backend")
    logger.info("=" * 60)

    settings = load_settings()

    logger.info(f"ELEVENLABS_API_KEY present: {bool(settings.elevenlabs_api_key)} ({mask_secret(settings.elevenlabs_api_key)})")
    logger.info(f"ELEVENLABS_AGENT_ID present: {bool(settings.elevenlabs_agent_id)}")
    logger.info(f"ELEVENLABS_PHONE_NUMBER_ID present: {bool(settings.elevenlabs_phone_number_id)}")
    logger.info(f"TWILIO_ACCOUNT_SID present: {bool(settings.twilio_account_sid)} ({mask_secret(settings.twilio_account_sid)})")
    logger.info(f"TWILIO_FROM_NUMBER: {settings.twilio_from_number or '(not set)'}")
    logger.info(f"SMS_DISPATCH_TIMEOUT_SECONDS: {settings.sms_dispatch_timeout_seconds}")

    # Call initiation is disabled (500 per request) if ElevenLabs is not configured
    try:
        outbound_call_service = OutboundCallService(settings)
        logger.info("Outbound call service initialized successfully")
    except ConfigurationError as e:
        logger.error(f"Outbound call service NOT initialized - {e}")

    # Webhook path never fails to start; missing Twilio is reported per request
    dispatcher = get_sms_dispatcher()
    if dispatcher.is_configured:
        logger.info("SMS dispatcher initialized successfully")
    else:
        logger.warning("SMS dispatcher NOT fully configured - webhooks will report sms_error")
    webhook_orchestrator = WebhookOrchestrator(dispatcher, settings)

    debug_store = DebugPayloadStore(settings.webhook_debug_capacity)

    logger.info("=" * 60)

    yield

    # Shutdown
    if outbound_call_service:
        await outbound_call_service.close()
    logger.info("Shutting down Call Notifier Backend")


app = FastAPI(
    title="Call Notifier Backend",
    description="Outbound AI calls and post-call template SMS notifications",
    version=APP_VERSION,
    lifespan=lifespan,
)

# The static front-end calls this API cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint. Reports which settings are present, never their values."""
    settings = load_settings()
    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        env={
            "hasApiKey": bool(settings.elevenlabs_api_key),
            "hasAgentId": bool(settings.elevenlabs_agent_id),
            "hasPhoneId": bool(settings.elevenlabs_phone_number_id),
            "hasTwilio": settings.twilio_configured,
        },
    )


# ============================================================
# Outbound Call Initiation
# ============================================================

@app.post("/outbound-call", response_model=OutboundCallResponse)
@app.post("/api/outbound-call", response_model=OutboundCallResponse)
async def outbound_call(request: Request) -> OutboundCallResponse:
    """
    Initiate an outbound AI voice call.

    Errors:
        400: Validation failed (every violated field listed)
        500: ElevenLabs not configured, or unexpected error
        4xx/5xx: ElevenLabs error status passed through
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    errors = validate_outbound_request(payload)
    if errors:
        logger.warning(f"Outbound call validation failed: {errors}")
        raise HTTPException(
            status_code=400,
            detail={"error": "validation_failed", "details": errors},
        )

    try:
        service = get_outbound_call_service()
    except ConfigurationError as e:
        logger.error(f"Outbound call rejected - server configuration error: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"server_configuration_error: {e}",
        )

    call_request = OutboundCallRequest(
        phoneNumber=payload["phoneNumber"],
        fullName=payload["fullName"],
        preferredLanguage=payload["preferredLanguage"],
        callReason=payload["callReason"],
        contextData=payload.get("contextData") or {},
    )

    try:
        return await service.initiate_call(call_request)

    except ProviderError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=f"elevenlabs_api_error: {e.message}",
        )
    except Exception as e:
        logger.error(f"Outbound call error: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"outbound_call_failed: {str(e) or type(e).__name__}",
        )


# ============================================================
# Call-Ended Webhook (ALWAYS HTTP 200)
# ============================================================

@app.post("/webhook/call-ended", response_model=WebhookAckResponse, response_model_exclude_none=True)
@app.post("/api/webhook/call-ended", response_model=WebhookAckResponse, response_model_exclude_none=True)
async def webhook_call_ended(request: Request) -> WebhookAckResponse:
    """
    Receive the provider's call-ended webhook and send a follow-up SMS if warranted.

    GUARANTEE: This endpoint NEVER returns a non-200 status.
    - Unknown payload shape: best-effort extraction
    - No customer phone: sms_sent=false with reason
    - Gateway failure or timeout: sms_sent=false with sms_error
    - Anything unexpected: sms_sent=false with error
    """
    try:
        event = await _read_event(request)
        logger.info("=" * 60)
        logger.info(
            f"WEBHOOK RECEIVED: Call Ended "
            f"keys={_payload_keys(event)}"
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW PAYLOAD: {json.dumps(event, default=str)[:5000]}")

        return await get_webhook_orchestrator().handle(event)

    except Exception as e:
        # FINAL SAFETY NET: body parsing or service construction failed
        logger.error(f"METRIC webhook_endpoint_error error={type(e).__name__}", exc_info=True)
        return WebhookAckResponse(sms_sent=False, error=str(e) or type(e).__name__)


# ============================================================
# Operational Endpoints
# ============================================================

@app.get("/test-sms", response_model=SmsTestResponse)
@app.get("/api/test-sms", response_model=SmsTestResponse)
async def send_test_sms(phone: Optional[str] = Query(None)) -> SmsTestResponse:
    """
    Send the fixed test SMS to verify Twilio configuration.

    Errors:
        400: Missing phone parameter
        500: Twilio not configured or send failed
    """
    if not phone:
        raise HTTPException(
            status_code=400,
            detail="missing_phone: usage /test-sms?phone=+1234567890",
        )

    dispatcher = get_sms_dispatcher()
    credentials = _credential_status(dispatcher.settings)

    if not dispatcher.is_configured:
        raise HTTPException(
            status_code=500,
            detail={"error": "Missing Twilio credentials", "credentials": credentials},
        )

    result = await asyncio.to_thread(dispatcher.send, phone, TemplateId.TEST_MESSAGE)
    if not result.success:
        raise HTTPException(
            status_code=500,
            detail={"error": result.error_detail, "credentials": credentials},
        )

    return SmsTestResponse(
        success=True,
        message="Test SMS sent successfully",
        messageId=result.message_id,
        to=phone,
        fromNumber=dispatcher.from_number,
        credentials=credentials,
    )


@app.post("/webhook-debug", response_model=DebugCaptureResponse)
@app.post("/api/webhook-debug", response_model=DebugCaptureResponse)
async def webhook_debug_capture(request: Request) -> DebugCaptureResponse:
    """Capture any payload so operators can see exactly what a provider sends."""
    event = await _read_event(request)
    headers = {k: v for k, v in request.headers.items() if k.lower() not in SENSITIVE_HEADERS}
    entry = get_debug_store().record(event, headers)

    logger.info("=" * 60)
    logger.info(f"DEBUG WEBHOOK RECEIVED at {entry.received_at}")
    logger.info(f"Keys: {_payload_keys(event)}")
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Body: {json.dumps(event, default=str, indent=2)}")
    logger.info("=" * 60)

    return DebugCaptureResponse(timestamp=entry.received_at)


@app.get("/webhook-debug", response_model=DebugSnapshotResponse)
@app.get("/api/webhook-debug", response_model=DebugSnapshotResponse)
async def webhook_debug_snapshot() -> DebugSnapshotResponse:
    store = get_debug_store()
    entries = store.snapshot()
    if not entries:
        return DebugSnapshotResponse(
            message="No webhook payload received yet",
            hint="Point the provider's webhook at /webhook-debug temporarily",
            capacity=store.capacity,
        )

    latest = entries[0]
    return DebugSnapshotResponse(
        lastReceivedAt=latest.received_at,
        payload=latest.payload,
        bufferedCount=len(entries),
        capacity=store.capacity,
        recent=[e.to_dict() for e in entries],
    )


@app.delete("/webhook-debug")
@app.delete("/api/webhook-debug")
async def webhook_debug_reset():
    removed = get_debug_store().reset()
    logger.info(f"Webhook debug buffer cleared ({removed} entries)")
    return {"cleared": removed}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)

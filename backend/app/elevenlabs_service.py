"""
ElevenLabs Service - initiates outbound AI voice calls.

This service:
1. Validates the call request (collects ALL violations, not just the first)
2. Builds the outbound context and language-aware first message
3. Forwards to the ElevenLabs Twilio outbound-call API

The voice agent gets the customer context as dynamic variables; it never
authenticates, collects data, or creates complaints on outbound calls.

Python 3.9 compatible - uses typing.Dict, typing.List, typing.Optional
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
import phonenumbers
from phonenumbers import NumberParseException

from .config import Settings, load_settings
from .models import (
    OutboundCallData,
    OutboundCallRequest,
    OutboundCallResponse,
    OutboundContext,
    OutboundCustomer,
)

logger = logging.getLogger(__name__)

OUTBOUND_CALL_PATH = "/v1/convai/twilio/outbound-call"


class ConfigurationError(RuntimeError):
    """Required ElevenLabs settings are missing."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(
            f"Missing environment variables: {', '.join(missing)}. "
            f"Please configure ELEVENLABS_API_KEY, ELEVENLABS_AGENT_ID, and ELEVENLABS_PHONE_NUMBER_ID."
        )


class ProviderError(Exception):
    """ElevenLabs returned a non-success status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"ElevenLabs API error ({status_code}): {message}")


# =============================================================================
# REQUEST VALIDATION & SHAPING (pure)
# =============================================================================

def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_outbound_request(payload: Any) -> List[str]:
    """
    Validate a raw /outbound-call body.

    Returns:
        One message per violated field (empty list if valid)
    """
    if not isinstance(payload, dict):
        return ["Request body must be a JSON object"]

    errors: List[str] = []

    phone = payload.get("phoneNumber")
    if not _is_non_empty_string(phone):
        errors.append("Phone number is required")
    elif not phone.startswith("+"):
        errors.append("Phone number must be in E.164 format (e.g., +971...)")
    else:
        try:
            parsed = phonenumbers.parse(phone, None)
            if not phonenumbers.is_possible_number(parsed):
                errors.append(f"Phone number is not a possible number: {phone}")
        except NumberParseException:
            errors.append(f"Phone number could not be parsed: {phone}")

    if not _is_non_empty_string(payload.get("fullName")):
        errors.append("Full name is required")
    if not _is_non_empty_string(payload.get("preferredLanguage")):
        errors.append("Preferred language is required")
    if not _is_non_empty_string(payload.get("callReason")):
        errors.append("Call reason is required")

    context_data = payload.get("contextData")
    if context_data is not None and not isinstance(context_data, dict):
        errors.append("Context data must be an object")

    return errors


def first_name_of(full_name: str) -> str:
    parts = full_name.split()
    return parts[0] if parts else full_name


def is_arabic(preferred_language: str) -> bool:
    return "arabic" in preferred_language.lower()


def build_outbound_context(request: OutboundCallRequest) -> OutboundContext:
    """Context object telling the agent why we are calling and what it may not do."""
    return OutboundContext(
        customer=OutboundCustomer(
            fullName=request.fullName,
            preferredLanguage=request.preferredLanguage,
        ),
        reason=request.callReason,
        contextData=request.contextData,
    )


def build_first_message(request: OutboundCallRequest) -> str:
    """Greeting spoken by the agent, in the customer's preferred language."""
    first_name = first_name_of(request.fullName)
    if is_arabic(request.preferredLanguage):
        return f"مرحباً {first_name}، أنا مساعد ماشرق الذكي. أتصل بك اليوم بخصوص {request.callReason}."
    return (
        f"Hello {first_name}, this is Mashreq AI Assistant. "
        f"I'm calling you today regarding {request.callReason}."
    )


def build_dynamic_variables(request: OutboundCallRequest, context: OutboundContext) -> Dict[str, str]:
    """Flat string variables for the agent prompt; contextData keys become context_<key>."""
    variables: Dict[str, str] = {
        "customer_name": request.fullName,
        "customer_first_name": first_name_of(request.fullName),
        "preferred_language": request.preferredLanguage,
        "call_type": "OUTBOUND",
        "call_reason": request.callReason,
        "outbound_context": context.model_dump_json(),
    }
    for key, value in request.contextData.items():
        if isinstance(value, str):
            variables[f"context_{key}"] = value
        else:
            variables[f"context_{key}"] = json.dumps(value, default=str)
    return variables


def build_request_body(
    request: OutboundCallRequest,
    context: OutboundContext,
    agent_id: str,
    phone_number_id: str,
) -> Dict[str, Any]:
    return {
        "agent_id": agent_id,
        "agent_phone_number_id": phone_number_id,
        "to_number": request.phoneNumber,
        "conversation_initiation_client_data": {
            "dynamic_variables": build_dynamic_variables(request, context),
            "conversation_config_override": {
                "agent": {
                    "first_message": build_first_message(request),
                    "language": "ar" if is_arabic(request.preferredLanguage) else "en",
                },
            },
        },
    }


def provider_error_message(data: Any) -> str:
    """Best-effort message from the provider's error body.

    Tries detail.message, detail, message; falls back to the JSON body.
    """
    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        if detail:
            return detail if isinstance(detail, str) else json.dumps(detail)
        if data.get("message"):
            return str(data["message"])
    if isinstance(data, str):
        return data
    return json.dumps(data, default=str)


# =============================================================================
# SERVICE
# =============================================================================

class OutboundCallService:
    """Service for ElevenLabs outbound call initiation."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        """
        Raises:
            ConfigurationError: If ElevenLabs settings are missing
        """
        self.settings = settings or load_settings()
        missing = self.settings.missing_outbound_call_settings()
        if missing:
            raise ConfigurationError(missing)

        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.elevenlabs_base_url,
            timeout=self.settings.elevenlabs_timeout_seconds,
        )
        logger.info("ElevenLabs outbound call service initialized")

    async def close(self):
        """Close the HTTP client."""
        await self.http_client.aclose()
        logger.info("ElevenLabs outbound call service closed")

    async def initiate_call(self, request: OutboundCallRequest) -> OutboundCallResponse:
        """Start an outbound call.

        Args:
            request: Validated call request

        Returns:
            OutboundCallResponse with conversation and call ids

        Raises:
            ProviderError: If ElevenLabs returns a non-2xx status
            httpx.HTTPError: On network failure
        """
        context = build_outbound_context(request)
        body = build_request_body(
            request,
            context,
            agent_id=self.settings.elevenlabs_agent_id,
            phone_number_id=self.settings.elevenlabs_phone_number_id,
        )

        logger.info(
            f"Initiating outbound call: to={request.phoneNumber}, "
            f"customer={request.fullName}, reason={request.callReason}"
        )
        logger.debug(f"ElevenLabs request body: {json.dumps(body, ensure_ascii=False)}")

        response = await self.http_client.post(
            OUTBOUND_CALL_PATH,
            json=body,
            headers={"xi-api-key": self.settings.elevenlabs_api_key},
        )

        try:
            data = response.json()
        except ValueError:
            data = response.text

        if response.is_error:
            message = provider_error_message(data)
            logger.error(f"ElevenLabs API error: status={response.status_code} message={message}")
            raise ProviderError(response.status_code, message)

        data = data if isinstance(data, dict) else {}
        conversation_id = data.get("conversation_id")
        call_sid = data.get("callSid") or data.get("call_sid")
        logger.info(f"Outbound call initiated: conversationId={conversation_id}, callSid={call_sid}")

        return OutboundCallResponse(
            success=True,
            message="Outbound call initiated successfully",
            data=OutboundCallData(
                conversationId=str(conversation_id) if conversation_id is not None else None,
                callSid=str(call_sid) if call_sid is not None else None,
                phoneNumber=request.phoneNumber,
                customer=request.fullName,
                callReason=request.callReason,
                outboundContext=context,
            ),
        )

"""
Call-ended webhook orchestration.

Glues extraction -> classification -> template -> SMS dispatch and turns
every outcome into a WebhookAckResponse.

GUARANTEE: handle() never raises. The provider treats anything but HTTP 200
as a failed delivery and retries, which would mean duplicate SMS. Every
internal fault becomes `sms_sent: false` with the error detail.

Every delivery emits exactly one `AUDIT webhook_decision {...}` log line
with enough detail to reconstruct the decision offline.

Python 3.9 compatible - uses typing.Any, typing.Dict, typing.Optional
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from engine.classify import classify_transcript
from engine.extract import extract_call_facts
from engine.probes import mask_phone
from engine.templates import TemplateId

from .config import Settings, load_settings
from .models import WebhookAckResponse
from .sms_service import DispatchResult, SmsDispatcher, get_sms_dispatcher

logger = logging.getLogger(__name__)

NO_PHONE_REASON = "no phone number found in webhook payload"


class WebhookOrchestrator:
    """Runs the post-call SMS decision pipeline for one delivery at a time.

    Holds no per-delivery state; safe to share across concurrent requests.
    """

    def __init__(self, dispatcher: Optional[SmsDispatcher] = None, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.dispatcher = dispatcher or get_sms_dispatcher()

    async def handle(self, event: Any) -> WebhookAckResponse:
        """Process one call-ended event. Never raises.

        Args:
            event: Parsed webhook body (arbitrary shape)

        Returns:
            WebhookAckResponse to send back with HTTP 200
        """
        audit: Dict[str, Any] = {"outcome": "started"}

        try:
            facts = extract_call_facts(event, self.settings.excluded_phone_numbers)
            audit.update(
                conversation_id=facts.conversation_id,
                direction=facts.direction.value,
                direction_source=facts.direction_source,
                phone=mask_phone(facts.customer_phone),
                phone_source=facts.phone_source,
                rejected_phone_paths=list(facts.rejected_phone_paths),
                transcript_source=facts.transcript_source,
                transcript_chars=len(facts.transcript_text),
                payload_keys=sorted(str(k) for k in event.keys()) if isinstance(event, dict) else [],
            )
            logger.debug(f"Transcript preview: {facts.transcript_text[:500]!r}")

            if not facts.phone_found:
                return self._finish(
                    audit,
                    "no_phone",
                    WebhookAckResponse(sms_sent=False, reason=NO_PHONE_REASON),
                )

            decision = classify_transcript(facts.transcript_text, facts.direction)
            audit.update(
                should_send=decision.should_send,
                template=decision.template_id.value if decision.template_id else None,
                reason=decision.reason,
            )

            if not decision.should_send or decision.template_id is None:
                return self._finish(
                    audit,
                    "suppressed",
                    WebhookAckResponse(sms_sent=False, reason=decision.reason),
                )

            result = await self._dispatch(facts.customer_phone, decision.template_id)
            audit.update(message_id=result.message_id, sms_error=result.error_detail)

            if result.success:
                return self._finish(
                    audit,
                    "sms_sent",
                    WebhookAckResponse(
                        sms_sent=True,
                        sms_type=decision.template_id.value,
                        message_id=result.message_id,
                        reason=decision.reason,
                    ),
                )

            return self._finish(
                audit,
                "sms_failed",
                WebhookAckResponse(
                    sms_sent=False,
                    sms_type=decision.template_id.value,
                    sms_error=result.error_detail,
                    reason=decision.reason,
                ),
            )

        except Exception as e:
            # FINAL SAFETY NET: still a 200 to the provider
            detail = str(e) or type(e).__name__
            logger.error(
                f"METRIC webhook_unexpected_error error={type(e).__name__} "
                f"conversationId={audit.get('conversation_id')}",
                exc_info=True,
            )
            audit.update(error=detail)
            return self._finish(
                audit,
                "internal_error",
                WebhookAckResponse(sms_sent=False, error=detail),
            )

    async def _dispatch(self, to_phone: str, template_id: TemplateId) -> DispatchResult:
        """Run the blocking Twilio call off the event loop, bounded by a timeout.

        On timeout the worker thread may still complete; we never retry, so
        the worst case is a sent SMS reported as failed.
        """
        timeout = self.settings.sms_dispatch_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.dispatcher.send, to_phone, template_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"SMS dispatch timed out after {timeout}s to={mask_phone(to_phone)}")
            return DispatchResult(
                success=False,
                error_detail=f"sms_dispatch_timeout: no gateway response within {timeout}s",
            )

    @staticmethod
    def _finish(audit: Dict[str, Any], outcome: str, response: WebhookAckResponse) -> WebhookAckResponse:
        audit["outcome"] = outcome
        audit["sms_sent"] = response.sms_sent
        logger.info(f"AUDIT webhook_decision {json.dumps(audit, default=str, sort_keys=True)}")
        logger.info(
            f"METRIC webhook_processed outcome={outcome} sms_sent={response.sms_sent} "
            f"conversationId={audit.get('conversation_id')}"
        )
        return response

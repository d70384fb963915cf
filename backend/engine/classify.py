"""
Deterministic transcript classifier.

Decides whether a finished call warrants a follow-up SMS and which
template to use. This is a plain keyword match, NOT a model:
- Block keywords are checked first and always win
- Trigger categories are checked in priority order (explicit document and
  reference requests first, general confirmations last)
- OUTBOUND calls with no explicit request get the outbound confirmation

Keywords must describe a REQUEST to send something, not a mere mention of
a topic.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from .extract import CallDirection
from .templates import TemplateId


@dataclass(frozen=True)
class ClassificationRule:
    """One trigger category. Priority is its position in TRIGGER_RULES."""
    category: str
    keywords: Tuple[str, ...]
    template_id: TemplateId


@dataclass(frozen=True)
class ClassificationDecision:
    should_send: bool
    template_id: Optional[TemplateId]
    reason: str


# Failed verification or unresolved calls - never send anything
BLOCK_KEYWORDS: Tuple[str, ...] = (
    "unable to verify",
    "cannot proceed",
    "visit branch",
    "call again",
    "verification failed",
    "could not verify",
    "identity not confirmed",
    "please visit",
    "try again later",
)

TRIGGER_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        category="rewards_tnc",
        keywords=(
            "send terms and conditions",
            "send the terms",
            "send me the terms",
            "send t&c",
            "send tnc",
            "send t and c",
            "terms and conditions by sms",
            "terms and conditions via sms",
            "terms by sms",
            "terms via sms",
            "t&c by sms",
            "t&c via sms",
            "tnc by sms",
            "tnc via sms",
        ),
        template_id=TemplateId.REWARDS_TNC,
    ),
    ClassificationRule(
        category="transaction_reference",
        keywords=(
            "send swift",
            "send the swift",
            "send reference number",
            "send the reference",
            "send transaction",
            "swift by sms",
            "swift via sms",
            "reference by sms",
            "reference via sms",
            "transaction details by sms",
            "transaction details via sms",
        ),
        template_id=TemplateId.TRANSACTION_REFERENCE,
    ),
    ClassificationRule(
        category="redemption",
        keywords=(
            "send redemption",
            "send me redemption",
            "send the redemption",
            "send me the redemption",
            "redemption rules",
            "redemption by sms",
            "redemption via sms",
            "redeem by sms",
            "redeem via sms",
            "rewards redemption",
            "how to redeem",
        ),
        template_id=TemplateId.REDEMPTION,
    ),
    # Agent promised a complaint / case confirmation
    ClassificationRule(
        category="complaint",
        keywords=(
            "case reference",
            "complaint reference",
            "initiated a complaint",
            "raise a complaint",
            "raised a complaint",
            "complaint to investigate",
            "log a complaint",
            "logged a complaint",
            "complaint confirmation",
            "complaint status",
        ),
        template_id=TemplateId.COMPLAINT,
    ),
    ClassificationRule(
        category="summary",
        keywords=(
            "send summary via sms",
            "send me a summary",
            "send confirmation via sms",
            "send me confirmation",
            "send details via sms",
        ),
        template_id=TemplateId.CALL_SUMMARY,
    ),
)

OUTBOUND_FALLBACK_TEMPLATE = TemplateId.OUTBOUND_CONFIRMATION


def classify_transcript(transcript: str, direction: CallDirection) -> ClassificationDecision:
    """
    Classify a transcript into a send/suppress decision.

    Pure function: same input, same decision. Empty transcripts fall
    through to the outbound fallback or "no match".

    Args:
        transcript: Flattened transcript text
        direction: Call direction from the extractor

    Returns:
        ClassificationDecision with a human-readable reason
    """
    text = (transcript or "").lower()

    for keyword in BLOCK_KEYWORDS:
        if keyword in text:
            return ClassificationDecision(
                should_send=False,
                template_id=None,
                reason=f"blocked: {keyword}",
            )

    for rule in TRIGGER_RULES:
        for keyword in rule.keywords:
            if keyword in text:
                return ClassificationDecision(
                    should_send=True,
                    template_id=rule.template_id,
                    reason=f"matched {rule.category} keyword: {keyword}",
                )

    if direction == CallDirection.OUTBOUND:
        return ClassificationDecision(
            should_send=True,
            template_id=OUTBOUND_FALLBACK_TEMPLATE,
            reason="outbound call completed",
        )

    return ClassificationDecision(
        should_send=False,
        template_id=None,
        reason="no trigger keywords matched",
    )

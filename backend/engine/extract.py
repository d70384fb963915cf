"""
Call-ended payload extraction.

This module pulls three facts out of a call-ended webhook whose shape is
not fixed (it varies between provider versions):
- call direction
- customer phone number
- transcript text

It uses a tiered approach per field:
1. Tier A (Probes): ordered Probe descriptors over known paths
2. Tier B (Scan): depth-bounded walk over the whole payload

Extraction NEVER raises on missing or malformed input. Absence is reported
as UNKNOWN / "" plus the source fields, so callers can decide and log why.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .probes import (
    MAX_WALK_DEPTH,
    Probe,
    is_excluded_phone,
    is_present,
    normalize_phone,
    probes,
    to_json,
    walk_strings,
)

PAYLOAD_SOURCE = "<payload>"


class CallDirection(str, Enum):
    OUTBOUND = "OUTBOUND"
    INBOUND = "INBOUND"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ExtractedCallFacts:
    """Facts extracted from one call-ended event. Immutable."""
    direction: CallDirection = CallDirection.UNKNOWN
    customer_phone: str = ""
    transcript_text: str = ""
    conversation_id: Optional[str] = None

    # Audit trail: which probe (or scan path) produced each value
    direction_source: Optional[str] = None
    phone_source: Optional[str] = None
    transcript_source: Optional[str] = None
    rejected_phone_paths: Tuple[str, ...] = ()

    @property
    def phone_found(self) -> bool:
        return bool(self.customer_phone)


# =============================================================================
# PROBE TABLES
# =============================================================================

DIRECTION_PROBES: Tuple[Probe, ...] = probes(
    "call_type",
    "callType",
    "type",
    "direction",
    "metadata.call_type",
    "data.call_type",
    "call.type",
    "call.direction",
    "data.metadata.phone_call.direction",
    "data.conversation_initiation_client_data.dynamic_variables.call_type",
    "conversation_initiation_client_data.dynamic_variables.call_type",
)

# Fields that name the customer regardless of direction
_CUSTOMER_PHONE_PATHS = (
    "customer_phone",
    "customerPhone",
    "phone_number",
    "call.customer_number",
    "metadata.customer_phone",
    "data.metadata.phone_call.external_number",
    "conversation_initiation_client_data.dynamic_variables.customer_phone",
    "data.conversation_initiation_client_data.dynamic_variables.customer_phone",
)

_TO_PHONE_PATHS = (
    "to",
    "to_number",
    "call.to",
    "metadata.to",
    "analysis.call_to",
)

_FROM_PHONE_PATHS = (
    "from",
    "from_number",
    "call.from",
    "metadata.from",
)

# OUTBOUND: we dialled the customer, so "to" is the customer. Never use "from".
OUTBOUND_PHONE_PROBES: Tuple[Probe, ...] = probes(*_TO_PHONE_PATHS, *_CUSTOMER_PHONE_PATHS)

# INBOUND / UNKNOWN: explicit customer fields first, "from" only as last resort
INBOUND_PHONE_PROBES: Tuple[Probe, ...] = probes(
    *_CUSTOMER_PHONE_PATHS, *_TO_PHONE_PATHS, *_FROM_PHONE_PATHS
)

TRANSCRIPT_PROBES: Tuple[Probe, ...] = probes(
    "transcript",
    "transcription",
    "conversation",
    "messages",
    "data.transcript",
    "analysis.transcript",
    "call.transcript",
)

CONVERSATION_ID_PROBES: Tuple[Probe, ...] = probes(
    "conversation_id",
    "conversationId",
    "data.conversation_id",
    "call.id",
    "call_sid",
    "callSid",
    "data.metadata.phone_call.call_sid",
)

# Preference order when flattening transcript structures
_ITEM_TEXT_KEYS = ("text", "content")
_MAPPING_TEXT_KEYS = ("text", "content", "full_transcript", "messages")


# =============================================================================
# DIRECTION
# =============================================================================

def normalize_direction(value: Any) -> Optional[CallDirection]:
    """
    Map a raw direction value to CallDirection.

    Accepts "OUTBOUND", "outbound-api", "outgoing", "inbound", "incoming"...
    Returns None for values that are not a direction (e.g. an event type
    like "post_call_transcription").
    """
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered.startswith("outbound") or lowered.startswith("outgoing"):
        return CallDirection.OUTBOUND
    if lowered.startswith("inbound") or lowered.startswith("incoming"):
        return CallDirection.INBOUND
    return None


def extract_direction(event: Mapping[str, Any]) -> Tuple[CallDirection, Optional[str]]:
    """
    Return (direction, probe label).

    The first probe with a present value decides. A value that is not a
    direction (e.g. type="post_call_transcription") gives UNKNOWN and stops
    the search; its label is still returned so the audit shows which field
    decided. UNKNOWN with no source if no probe has a value.
    """
    for probe in DIRECTION_PROBES:
        value = probe.resolve(event)
        if not is_present(value):
            continue
        return normalize_direction(value) or CallDirection.UNKNOWN, probe.label
    return CallDirection.UNKNOWN, None


# =============================================================================
# PHONE
# =============================================================================

def extract_phone(
    event: Mapping[str, Any],
    direction: CallDirection,
    excluded_numbers: Sequence[str] = (),
) -> Tuple[str, Optional[str], Tuple[str, ...]]:
    """
    Find the customer phone number.

    Tier A probes the direction-appropriate paths; Tier B scans the whole
    payload only if Tier A found nothing. Any value with the same digits as
    an excluded (gateway/agent) number is rejected in both tiers.

    Returns:
        (normalized phone or "", source path or None, rejected paths)
    """
    rejected: List[str] = []

    probe_list = OUTBOUND_PHONE_PROBES if direction == CallDirection.OUTBOUND else INBOUND_PHONE_PROBES
    for probe in probe_list:
        phone = normalize_phone(probe.resolve(event))
        if phone is None:
            continue
        if is_excluded_phone(phone, excluded_numbers):
            rejected.append(probe.label)
            continue
        return phone, probe.label, tuple(rejected)

    for path, value in walk_strings(event, MAX_WALK_DEPTH):
        phone = normalize_phone(value)
        if phone is None:
            continue
        if is_excluded_phone(phone, excluded_numbers):
            rejected.append(f"scan:{path}")
            continue
        return phone, f"scan:{path}", tuple(rejected)

    return "", None, tuple(rejected)


# =============================================================================
# TRANSCRIPT
# =============================================================================

def _item_text(item: Any, depth: int) -> str:
    """Text of one transcript entry (a turn, a message, a string)."""
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        for key in _ITEM_TEXT_KEYS:
            if is_present(item.get(key)):
                return flatten_transcript(item[key], depth + 1)
        message = item.get("message")
        if is_present(message):
            text = flatten_transcript(message, depth + 1)
            role = item.get("role")
            return f"{role}: {text}" if is_present(role) else text
        if is_present(item.get("transcript")):
            return flatten_transcript(item["transcript"], depth + 1)
        return to_json(item)
    return flatten_transcript(item, depth + 1)


def flatten_transcript(data: Any, depth: int = 0) -> str:
    """
    Flatten a transcript value of unknown shape into plain text.

    - str: itself
    - list: entries joined by single spaces
    - dict: first of text / content / full_transcript / messages, else JSON
    - other scalars: str()
    """
    if data is None or depth > MAX_WALK_DEPTH:
        return ""
    if isinstance(data, str):
        return data
    if isinstance(data, (list, tuple)):
        parts = (_item_text(item, depth) for item in data)
        return " ".join(p for p in parts if p)
    if isinstance(data, Mapping):
        for key in _MAPPING_TEXT_KEYS:
            if is_present(data.get(key)):
                return flatten_transcript(data[key], depth + 1)
        return to_json(data)
    return str(data)


def extract_transcript(event: Mapping[str, Any]) -> Tuple[str, Optional[str]]:
    """
    Return (transcript text, source).

    If no probe yields text, the whole payload is serialized and used as the
    transcript (source "<payload>"). Keyword matching still works against
    anything in the payload, at the cost of precision.
    """
    for probe in TRANSCRIPT_PROBES:
        value = probe.resolve(event)
        if not is_present(value):
            continue
        text = flatten_transcript(value).strip()
        if text:
            return text, probe.label

    if event:
        return to_json(event), PAYLOAD_SOURCE
    return "", None


def extract_conversation_id(event: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    for probe in CONVERSATION_ID_PROBES:
        value = probe.resolve(event)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and is_present(value):
            return str(value), probe.label
    return None, None


# =============================================================================
# ENTRY POINT
# =============================================================================

def extract_call_facts(event: Any, excluded_numbers: Sequence[str] = ()) -> ExtractedCallFacts:
    """
    Extract direction, customer phone and transcript from a call-ended event.

    Args:
        event: Parsed webhook body (anything; non-mappings count as empty)
        excluded_numbers: Gateway/agent numbers that must never be returned
            as the customer phone

    Returns:
        ExtractedCallFacts (phone_found is False when no phone survived)
    """
    if not isinstance(event, Mapping):
        event = {}

    direction, direction_source = extract_direction(event)
    phone, phone_source, rejected = extract_phone(event, direction, excluded_numbers)
    transcript, transcript_source = extract_transcript(event)
    conversation_id, _ = extract_conversation_id(event)

    return ExtractedCallFacts(
        direction=direction,
        customer_phone=phone,
        transcript_text=transcript,
        conversation_id=conversation_id,
        direction_source=direction_source,
        phone_source=phone_source,
        transcript_source=transcript_source,
        rejected_phone_paths=rejected,
    )

"""
SMS template registry.

Every outbound SMS body is one of these pre-approved literals. Nothing here
is composed at runtime - no names, no amounts, no model output. The
classifier can only return TemplateId members, so every decision maps to
exactly one literal below.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union


class TemplateId(str, Enum):
    """Closed set of SMS template identifiers."""
    REWARDS_TNC = "REWARDS_TNC"
    TRANSACTION_REFERENCE = "TRANSACTION_REFERENCE"
    REDEMPTION = "REDEMPTION"
    COMPLAINT = "COMPLAINT"
    CALL_SUMMARY = "CALL_SUMMARY"
    OUTBOUND_CONFIRMATION = "OUTBOUND_CONFIRMATION"
    TEST_MESSAGE = "TEST_MESSAGE"  # /test-sms only, never chosen by the classifier


@dataclass(frozen=True)
class MessageTemplate:
    id: TemplateId
    body: str


class UnknownTemplateError(KeyError):
    """Raised when a template id is not in the registry."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else "unknown_template"


_TEMPLATES = {
    TemplateId.REWARDS_TNC: MessageTemplate(
        id=TemplateId.REWARDS_TNC,
        body=(
            "Mashreq Bank Rewards T&C Summary:\n"
            "• Earn points on qualifying transactions (posted within 48hrs)\n"
            "• Redeem for vouchers, cashback, or partner offers (min 500 points)\n"
            "• Points expire after 24 months from earning\n"
            "• Instant redemption via App/Web for select partners\n"
            "• No points on fees, cash withdrawals, or flagged transactions\n"
            "• Account must be active & KYC compliant\n"
            "Full T&C: mashreqbank.com/rewards-tnc"
        ),
    ),
    TemplateId.TRANSACTION_REFERENCE: MessageTemplate(
        id=TemplateId.TRANSACTION_REFERENCE,
        body=(
            "Mashreq Bank: Transaction Reference\n"
            "Your transaction details and SWIFT reference were shared during your call.\n"
            "Please retain this SMS for your records.\n"
            "For status updates or assistance, contact Mashreq Bank.\n"
            "Thank you."
        ),
    ),
    TemplateId.REDEMPTION: MessageTemplate(
        id=TemplateId.REDEMPTION,
        body=(
            "Mashreq Bank Rewards: Redemption Confirmation\n"
            "Your redemption request details were shared during the call.\n"
            "Redemption Rules:\n"
            "• Min 500 points required\n"
            "• Increments of 100 points\n"
            "• Instant redemption is final\n"
            "Thank you for using Mashreq Rewards."
        ),
    ),
    TemplateId.COMPLAINT: MessageTemplate(
        id=TemplateId.COMPLAINT,
        body=(
            "Mashreq Bank: This confirms the complaint status update shared during "
            "your call. Your case is being handled as per our service commitment. "
            "For further assistance, please call us. Thank you."
        ),
    ),
    TemplateId.CALL_SUMMARY: MessageTemplate(
        id=TemplateId.CALL_SUMMARY,
        body=(
            "Mashreq Bank: Thank you for your call. A summary of your inquiry has "
            "been noted. For any further assistance, please contact us. We value "
            "your banking relationship."
        ),
    ),
    TemplateId.OUTBOUND_CONFIRMATION: MessageTemplate(
        id=TemplateId.OUTBOUND_CONFIRMATION,
        body=(
            "Mashreq Bank: This confirms the update shared during our call today. "
            "If you have any questions, please contact us. Thank you for being a "
            "valued customer."
        ),
    ),
    TemplateId.TEST_MESSAGE: MessageTemplate(
        id=TemplateId.TEST_MESSAGE,
        body=(
            "Mashreq Bank: Test SMS from your outbound call system. "
            "If you received this, SMS is working correctly!"
        ),
    ),
}

# Read-only view; the registry is never mutated after import
TEMPLATES: Mapping[TemplateId, MessageTemplate] = MappingProxyType(_TEMPLATES)


def get_template(template_id: Union[TemplateId, str]) -> MessageTemplate:
    """
    Get the template for an id.

    Accepts the enum or its string value ("COMPLAINT").

    Raises:
        UnknownTemplateError: If the id is not registered
    """
    try:
        key = TemplateId(template_id)
    except ValueError:
        raise UnknownTemplateError(f"unknown_template: {template_id!r}") from None

    template = TEMPLATES.get(key)
    if template is None:
        raise UnknownTemplateError(f"unknown_template: {template_id!r}")
    return template


def lookup_template(template_id: Union[TemplateId, str]) -> str:
    """Return the literal SMS body for a template id."""
    return get_template(template_id).body

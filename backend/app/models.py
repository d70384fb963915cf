"""
Pydantic models for the HTTP API.
Python 3.9 compatible - uses typing.List, typing.Dict, typing.Optional
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================
# Call-ended webhook (always HTTP 200)
# ============================================================

class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the voice provider for every delivery."""
    received: bool = True
    sms_sent: bool = False
    sms_type: Optional[str] = None
    message_id: Optional[str] = None
    sms_error: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None  # Internal fault detail; still HTTP 200


# ============================================================
# Outbound call initiation
# ============================================================

class OutboundCallRequest(BaseModel):
    phoneNumber: str
    fullName: str
    preferredLanguage: str
    callReason: str
    contextData: Dict[str, Any] = Field(default_factory=dict)


class OutboundCustomer(BaseModel):
    fullName: str
    preferredLanguage: str


class OutboundRules(BaseModel):
    """Hard limits passed to the voice agent on every outbound call."""
    noAuthentication: bool = True
    noDataCollection: bool = True
    noComplaintCreation: bool = True


class OutboundContext(BaseModel):
    callType: str = "OUTBOUND"
    customer: OutboundCustomer
    reason: str
    contextData: Dict[str, Any] = Field(default_factory=dict)
    rules: OutboundRules = Field(default_factory=OutboundRules)


class OutboundCallData(BaseModel):
    conversationId: Optional[str] = None
    callSid: Optional[str] = None
    phoneNumber: str
    customer: str
    callReason: str
    outboundContext: OutboundContext


class OutboundCallResponse(BaseModel):
    success: bool = True
    message: str
    data: OutboundCallData


# ============================================================
# Operational endpoints
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    env: Dict[str, bool]


class SmsTestResponse(BaseModel):
    success: bool
    message: str
    messageId: Optional[str] = None
    to: str
    fromNumber: Optional[str] = None
    credentials: Dict[str, str]


class DebugCaptureResponse(BaseModel):
    received: bool = True
    timestamp: str
    message: str = "Payload logged successfully"


class DebugSnapshotResponse(BaseModel):
    """Latest captured payload plus buffer occupancy."""
    message: Optional[str] = None
    hint: Optional[str] = None
    lastReceivedAt: Optional[str] = None
    payload: Optional[Any] = None
    bufferedCount: int = 0
    capacity: int
    recent: List[Dict[str, Any]] = Field(default_factory=list)

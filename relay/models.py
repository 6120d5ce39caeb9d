"""
Pydantic models for the relay API.
Python 3.9 compatible - uses typing.List, typing.Dict, typing.Optional
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LeadPayload(BaseModel):
    """Inbound lead data. Unknown keys are kept as correlation metadata."""
    model_config = ConfigDict(extra="allow")

    phoneNumber: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    calendarId: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class WebhookRequest(BaseModel):
    """Request to run a lead through the full call lifecycle."""
    data: Optional[LeadPayload] = None
    webhookUrl: Optional[str] = None  # Falls back to DESTINATION_WEBHOOK_URL
    task: Optional[str] = None  # Literal task text, wins over `script`
    script: Optional[str] = None  # Name of a registered call script


class ForwardResultModel(BaseModel):
    delivered: bool
    destinationResponse: Optional[Any] = None
    error: Optional[str] = None


class WebhookResponse(BaseModel):
    message: ForwardResultModel


class TokenResponse(BaseModel):
    token: str
    expiresIn: int  # seconds


class CallLogsRequest(BaseModel):
    callId: Optional[str] = None


class CallDetailsResponse(BaseModel):
    """Filtered provider call log, no classification applied."""
    call_id: str
    call_to: Optional[str] = None
    call_from: Optional[str] = None
    call_status: Optional[str] = None
    call_duration: Optional[float] = None
    call_transcript: Optional[str] = None
    call_summary: Optional[str] = None
    call_recording: Optional[str] = None


# ============================================================
# Condition router models
# ============================================================

class ConditionUserData(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    preferredDate: Optional[str] = None  # YYYY-MM-DD
    preferredTime: Optional[str] = None


class ConditionRequest(BaseModel):
    conditionType: Union[str, List[str]]
    userData: ConditionUserData = Field(default_factory=ConditionUserData)


class ConditionResult(BaseModel):
    conditionType: str
    status: str  # "sent", "dispatched", "skipped"
    detail: Optional[str] = None


class ConditionResponse(BaseModel):
    message: str
    results: List[ConditionResult]


# ============================================================
# SMS reply models
# ============================================================

class SmsReplyRequest(BaseModel):
    message: str
    name: Optional[str] = None
    context: Optional[str] = None


class SmsReplyResponse(BaseModel):
    reply: str
    aiModel: str

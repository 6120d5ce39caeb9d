"""
Call lifecycle - dispatch, poll, classify and forward.
"""
from .cancellation import CancellationToken
from .classifier import OutcomeClassifier, classify
from .dispatcher import CallDispatcher, normalize_phone
from .errors import (
    CallLifecycleError,
    DispatchExhausted,
    ForwardDeliveryFailed,
    InvalidPhoneNumber,
    MalformedResponse,
    MissingRequiredField,
    PollExhausted,
    PollTransportError,
    RunCancelled,
)
from .forwarder import ResultForwarder, build_forward_payload
from .models import CallHandle, CallRecord, ForwardResult, Lead, Outcome, OutcomeTag
from .orchestrator import CallOrchestrator, RunStage
from .poller import CallStatusPoller, is_terminal_status
from .provider import BlandClient

__all__ = [
    "BlandClient",
    "CallDispatcher",
    "CallHandle",
    "CallLifecycleError",
    "CallOrchestrator",
    "CallRecord",
    "CallStatusPoller",
    "CancellationToken",
    "DispatchExhausted",
    "ForwardDeliveryFailed",
    "ForwardResult",
    "InvalidPhoneNumber",
    "Lead",
    "MalformedResponse",
    "MissingRequiredField",
    "Outcome",
    "OutcomeClassifier",
    "OutcomeTag",
    "PollExhausted",
    "PollTransportError",
    "ResultForwarder",
    "RunCancelled",
    "RunStage",
    "build_forward_payload",
    "classify",
    "is_terminal_status",
    "normalize_phone",
]

"""
Error taxonomy for the call lifecycle.

Every error is terminal for the run that raised it. Errors carry a stable
`code`, the `stage` they originated from and a human-readable message;
`to_dict()` is safe to hand back to API callers (no provider payloads).
"""

from typing import Any, Dict, List, Optional

from .models import CallRecord, ForwardResult, Outcome, OutcomeTag


class CallLifecycleError(Exception):
    """Base class for every failure of an orchestration run."""

    code = "call_lifecycle_error"
    default_stage: Optional[str] = None

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "stage": self.stage,
            "message": self.message,
        }

    def __str__(self) -> str:
        if self.stage:
            return f"{self.code} [{self.stage}]: {self.message}"
        return f"{self.code}: {self.message}"


class MissingRequiredField(CallLifecycleError):
    code = "missing_required_field"
    default_stage = "VALIDATING"

    def __init__(self, fields: List[str], stage: Optional[str] = None):
        self.fields = list(fields)
        super().__init__(f"Missing required field(s): {', '.join(self.fields)}", stage)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


class InvalidPhoneNumber(CallLifecycleError):
    code = "invalid_phone_number"
    default_stage = "DISPATCHING"

    def __init__(self, phone: str, reason: str = "", stage: Optional[str] = None):
        self.phone = phone
        message = f"Cannot normalize phone number {phone!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, stage)


class DispatchExhausted(CallLifecycleError):
    code = "dispatch_exhausted"
    default_stage = "DISPATCHING"

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None, stage: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Failed to dispatch phone call after {attempts} attempt(s){detail}", stage)

    @property
    def outcome(self) -> Outcome:
        return Outcome(tag=OutcomeTag.DISPATCH_FAILED, record=None)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class MalformedResponse(CallLifecycleError):
    code = "malformed_response"
    default_stage = "DISPATCHING"


class PollTransportError(CallLifecycleError):
    code = "poll_transport_error"
    default_stage = "POLLING"

    def __init__(self, call_id: str, attempt: int, cause: BaseException, stage: Optional[str] = None):
        self.call_id = call_id
        self.attempt = attempt
        self.cause = cause
        super().__init__(
            f"Failed to retrieve call details for {call_id} on attempt {attempt}: {cause}",
            stage,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["callId"] = self.call_id
        data["attempt"] = self.attempt
        return data


class PollExhausted(CallLifecycleError):
    code = "poll_exhausted"
    default_stage = "POLLING"

    def __init__(
        self,
        call_id: str,
        attempts: int,
        last_record: Optional[CallRecord] = None,
        stage: Optional[str] = None,
    ):
        self.call_id = call_id
        self.attempts = attempts
        self.last_record = last_record
        last_status = last_record.raw_status if last_record else "unknown"
        super().__init__(
            f"Call {call_id} did not complete within {attempts} attempt(s) "
            f"(last status: {last_status or 'unknown'})",
            stage,
        )

    @property
    def outcome(self) -> Outcome:
        return Outcome(tag=OutcomeTag.TIMED_OUT, record=self.last_record)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["callId"] = self.call_id
        data["attempts"] = self.attempts
        return data


class ForwardDeliveryFailed(CallLifecycleError):
    code = "forward_delivery_failed"
    default_stage = "FORWARDING"

    def __init__(self, destination_url: str, result: ForwardResult, stage: Optional[str] = None):
        self.destination_url = destination_url
        self.result = result
        super().__init__(f"Failed to deliver call details to {destination_url}: {result.error}", stage)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["result"] = self.result.to_dict()
        return data


class RunCancelled(CallLifecycleError):
    code = "run_cancelled"

    def __init__(self, stage: Optional[str] = None):
        super().__init__("Run was cancelled before completion", stage)

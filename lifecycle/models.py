"""
Data model for a single call-lifecycle run.

Every object here is created and owned by exactly one orchestration run.
Nothing is persisted and nothing is shared between runs.

Python 3.9 compatible - uses typing.Dict, typing.List, typing.Optional
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

# Payload keys that describe the lead itself, everything else is correlation metadata
LEAD_KEYS = {"phoneNumber", "phone", "name", "email"}


class OutcomeTag(str, Enum):
    ANSWERED = "ANSWERED"
    NOT_CONNECTED = "NOT_CONNECTED"
    TOO_SHORT = "TOO_SHORT"
    DISPATCH_FAILED = "DISPATCH_FAILED"
    TIMED_OUT = "TIMED_OUT"


def _metadata_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


@dataclass(frozen=True)
class Lead:
    """A contact to be called."""
    name: str = ""
    phone: str = ""
    email: str = ""
    correlation_metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Lead":
        """Build a Lead from an inbound webhook payload.

        Accepts either `phoneNumber` or `phone`. Any other non-empty key
        (calendarId, source, ...) is kept as correlation metadata. Non-string
        values are JSON-encoded.
        """
        phone = data.get("phoneNumber") or data.get("phone") or ""
        metadata = {
            key: _metadata_value(value)
            for key, value in data.items()
            if key not in LEAD_KEYS and value not in (None, "")
        }
        return cls(
            name=str(data.get("name") or "").strip(),
            phone=str(phone).strip(),
            email=str(data.get("email") or "").strip(),
            correlation_metadata=metadata,
        )

    def missing_fields(self, required: Sequence[str]) -> List[str]:
        """Return the required fields that are empty on this lead."""
        missing: List[str] = []
        for name in required:
            if name in ("name", "phone", "email"):
                value = getattr(self, name)
            else:
                value = self.correlation_metadata.get(name)
            if not value or not str(value).strip():
                missing.append(name)
        return missing


@dataclass(frozen=True)
class CallHandle:
    """Provider-issued identity of a dispatched call."""
    call_id: str
    phone: str
    dispatched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _as_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class CallRecord:
    """One snapshot of the provider's call log."""
    call_id: str
    to_number: str = ""
    from_number: str = ""
    raw_status: str = ""
    duration_seconds: float = 0.0
    transcript: str = ""
    summary: str = ""
    recording_url: str = ""

    @classmethod
    def from_provider(
        cls,
        data: Dict[str, Any],
        fallback_call_id: str = "",
        fallback_to: str = "",
    ) -> "CallRecord":
        """Map a provider call-log payload onto a CallRecord.

        `status` wins over `queue_status`; a missing or unparseable
        `call_length` is read as 0.
        """
        raw_status = data.get("status") or data.get("queue_status") or ""
        return cls(
            call_id=str(data.get("call_id") or fallback_call_id),
            to_number=str(data.get("to") or fallback_to),
            from_number=str(data.get("from") or ""),
            raw_status=str(raw_status),
            duration_seconds=_as_float(data.get("call_length")),
            transcript=data.get("concatenated_transcript") or "",
            summary=data.get("summary") or "",
            recording_url=data.get("recording_url") or "",
        )

    def to_details(self) -> Dict[str, Any]:
        """Filtered call details, without any classification applied."""
        return {
            "call_id": self.call_id,
            "call_to": self.to_number,
            "call_from": self.from_number,
            "call_status": self.raw_status,
            "call_duration": self.duration_seconds,
            "call_transcript": self.transcript,
            "call_summary": self.summary,
            "call_recording": self.recording_url,
        }


@dataclass(frozen=True)
class Outcome:
    """Normalized result of a run."""
    tag: OutcomeTag
    record: Optional[CallRecord] = None

    def __post_init__(self):
        if self.tag == OutcomeTag.DISPATCH_FAILED and self.record is not None:
            raise ValueError("DISPATCH_FAILED outcome cannot carry a call record")

    @property
    def raw_tag(self) -> str:
        return self.record.raw_status if self.record else ""

    @property
    def reported_status(self) -> str:
        """Status forwarded downstream.

        Calls that never connected, or hung up almost immediately, are
        reported as failed regardless of what the provider said.
        """
        if self.tag in (OutcomeTag.NOT_CONNECTED, OutcomeTag.TOO_SHORT):
            return "failed"
        if self.tag == OutcomeTag.DISPATCH_FAILED:
            return "failed"
        return self.raw_tag


@dataclass
class ForwardResult:
    """Terminal artifact of a run."""
    delivered: bool
    destination_response: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delivered": self.delivered,
            "destinationResponse": self.destination_response,
            "error": self.error,
        }

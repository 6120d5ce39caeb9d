"""
Result forwarding - one POST of the normalized call summary to the
destination webhook (typically a CRM inbound webhook).

There is no retry: a failed delivery is reported to the caller, and
re-running the orchestration for the same call re-POSTs it.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import ForwardDeliveryFailed
from .models import ForwardResult, Outcome

logger = logging.getLogger(__name__)


def build_forward_payload(outcome: Outcome, correlation_metadata: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Flatten an outcome plus pass-through fields into the forwarded record.

    Correlation fields never overwrite the call fields.
    """
    record = outcome.record
    payload: Dict[str, Any] = {
        "call_id": record.call_id if record else None,
        "call_to": record.to_number if record else None,
        "call_from": record.from_number if record else None,
        "call_tag": outcome.raw_tag,
        "call_status": outcome.reported_status,
        "call_outcome": outcome.tag.value,
        "call_duration": record.duration_seconds if record else None,
        "call_transcript": record.transcript if record else None,
        "call_summary": record.summary if record else None,
        "call_recording": record.recording_url if record else None,
    }

    for key, value in (correlation_metadata or {}).items():
        if key in payload:
            logger.warning(f"Correlation field '{key}' collides with a call field - dropped")
            continue
        payload[key] = value

    return payload


def _read_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class ResultForwarder:
    """Delivers normalized outcomes to destination webhooks."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()

    async def forward(
        self,
        outcome: Outcome,
        destination_url: str,
        correlation_metadata: Optional[Mapping[str, Any]] = None,
    ) -> ForwardResult:
        """
        POST the outcome to `destination_url` once.

        Returns:
            ForwardResult(delivered=True) with the destination's response body

        Raises:
            ForwardDeliveryFailed: On transport error or non-2xx response;
                the error carries ForwardResult(delivered=False)
        """
        payload = build_forward_payload(outcome, correlation_metadata)
        logger.info(
            f"Forwarding call details: call_id={payload['call_id']}, "
            f"outcome={outcome.tag.value}, destination={destination_url}"
        )

        try:
            response = await self.http_client.post(
                destination_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Error sending call details to {destination_url}: {e}")
            result = ForwardResult(delivered=False, error=f"transport_error: {e}")
            raise ForwardDeliveryFailed(destination_url, result)

        body = _read_body(response)
        if response.is_error:
            logger.error(f"Destination {destination_url} rejected call details: HTTP {response.status_code}")
            result = ForwardResult(
                delivered=False,
                destination_response=body,
                error=f"HTTP {response.status_code}",
            )
            raise ForwardDeliveryFailed(destination_url, result)

        logger.info(f"Call details sent to {destination_url} successfully")
        return ForwardResult(delivered=True, destination_response=body)

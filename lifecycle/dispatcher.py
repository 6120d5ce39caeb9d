"""
Call dispatch - normalizes the lead's phone number, builds the provider
payload and places the call with a bounded number of immediate retries.

Retries are NOT idempotent: an attempt that timed out after the provider
already placed the call will be retried and the lead may be called twice.
"""

import logging
import re
from typing import Any, Dict, Optional

import httpx
import phonenumbers
from phonenumbers import NumberParseException

from .cancellation import CancellationToken
from .errors import DispatchExhausted, InvalidPhoneNumber, MalformedResponse
from .models import CallHandle, Lead
from .provider import BlandClient

logger = logging.getLogger(__name__)

DEFAULT_PHONE_REGION = "US"
DEFAULT_PHONE_PATTERN = r"^\+1\d{10}$"

# Keys the provider has used for the call id across API versions
CALL_ID_KEYS = ("call_id", "callId", "id")


def normalize_phone(
    raw: str,
    default_region: str = DEFAULT_PHONE_REGION,
    pattern: str = DEFAULT_PHONE_PATTERN,
) -> str:
    """
    Normalize a phone number to E.164 and check it against `pattern`.

    Numbers without a leading "+" are read as national numbers of
    `default_region`, which prepends that region's country code.

    Examples (US defaults):
    - "+15551234567"   -> "+15551234567"
    - "(555) 123-4567" -> "+15551234567"
    - "15551234567"    -> "+15551234567"

    Raises:
        InvalidPhoneNumber: If the number cannot be parsed or does not
            match the configured pattern after normalization
    """
    if not raw or not raw.strip():
        raise InvalidPhoneNumber(raw or "", "empty phone number")

    try:
        parsed = phonenumbers.parse(raw.strip(), default_region)
    except NumberParseException as e:
        raise InvalidPhoneNumber(raw, str(e))

    e164 = phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    if not re.match(pattern, e164):
        raise InvalidPhoneNumber(raw, f"{e164} does not match {pattern}")

    logger.debug(f"Normalized phone '{raw}' to '{e164}'")
    return e164


def extract_call_id(data: Dict[str, Any]) -> Optional[str]:
    for key in CALL_ID_KEYS:
        value = data.get(key)
        if value:
            return str(value)
    return None


class CallDispatcher:
    """Places outbound calls through the provider."""

    def __init__(
        self,
        client: BlandClient,
        default_region: str = DEFAULT_PHONE_REGION,
        phone_pattern: str = DEFAULT_PHONE_PATTERN,
        summarize: bool = True,
        record: bool = True,
        extra_options: Optional[Dict[str, Any]] = None,
    ):
        self.client = client
        self.default_region = default_region
        self.phone_pattern = phone_pattern
        self.summarize = summarize
        self.record = record
        self.extra_options = dict(extra_options or {})

    def build_payload(self, phone_e164: str, script: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra_options)
        payload.update({
            "phone_number": phone_e164,
            "task": script,
            "summarize": self.summarize,
            "record": self.record,
        })
        return payload

    async def dispatch(
        self,
        lead: Lead,
        script: str,
        max_attempts: int,
        cancel: Optional[CancellationToken] = None,
    ) -> CallHandle:
        """
        Dispatch a call to the lead.

        Args:
            lead: Lead to call
            script: Task/script text the provider's agent will follow
            max_attempts: Total attempts, including the first one
            cancel: Optional token checked before each attempt

        Returns:
            CallHandle with the provider-issued call id

        Raises:
            InvalidPhoneNumber: Before any HTTP call, if the phone is unusable
            DispatchExhausted: After `max_attempts` failed attempts
            MalformedResponse: If a successful response has no call id
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        phone_e164 = normalize_phone(lead.phone, self.default_region, self.phone_pattern)
        payload = self.build_payload(phone_e164, script)

        last_error: Optional[BaseException] = None
        data: Optional[Dict[str, Any]] = None

        for attempt in range(1, max_attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled("DISPATCHING")

            logger.info(f"Dispatching call to {phone_e164} (attempt {attempt}/{max_attempts})")
            try:
                data = await self.client.dispatch_call(payload)
                break
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"Error dispatching phone call to {phone_e164}: {e}")
                remaining = max_attempts - attempt
                if remaining:
                    logger.info(f"Retrying dispatch... attempts left: {remaining}")
            except ValueError as e:
                raise MalformedResponse(f"Provider returned an unreadable dispatch response: {e}")

        if data is None:
            logger.error(f"Dispatch to {phone_e164} failed after {max_attempts} attempt(s)")
            raise DispatchExhausted(max_attempts, last_error)

        call_id = extract_call_id(data)
        if not call_id:
            provider_message = data.get("message") or data.get("status") or "no call id"
            raise MalformedResponse(f"Dispatch response has no call id ({provider_message})")

        logger.info(f"Outbound call dispatched: call_id={call_id}, phone={phone_e164}")
        return CallHandle(call_id=call_id, phone=phone_e164)

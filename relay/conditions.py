"""
Condition router - handles the `/check-conditions` actions.

Each condition type maps to one action:
- reminder:   send an appointment reminder SMS
- scheduling: book a slot and text a confirmation
- call:       dispatch an AI call (no polling, no forwarding)

Conditions run in the order given; the first failure stops the rest.
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Union

from lifecycle.dispatcher import (
    DEFAULT_PHONE_PATTERN,
    DEFAULT_PHONE_REGION,
    CallDispatcher,
    normalize_phone,
)
from lifecycle.models import Lead

from .models import ConditionResult, ConditionUserData
from .sms_service import TwilioSmsService

logger = logging.getLogger(__name__)

REMINDER_MESSAGE = "This is a reminder for your upcoming appointment!"
SCHEDULING_MESSAGE = "Your appointment is scheduled for {date} at {time}"
DEFAULT_APPOINTMENT_TIME = "10:00 AM"


def normalize_condition_types(condition_type: Union[str, List[str], None]) -> List[str]:
    """Accept a single condition or a list of them."""
    if condition_type is None:
        return []
    if isinstance(condition_type, str):
        return [condition_type]
    return list(condition_type)


def appointment_slot(user_data: ConditionUserData, today: Optional[date] = None) -> Dict[str, str]:
    """Pick the appointment date/time: the lead's preference, else tomorrow at 10:00 AM."""
    today = today or date.today()
    appointment_date = user_data.preferredDate or (today + timedelta(days=1)).isoformat()
    appointment_time = user_data.preferredTime or DEFAULT_APPOINTMENT_TIME
    return {"date": appointment_date, "time": appointment_time}


class ConditionService:
    """Routes condition types to SMS or call actions."""

    def __init__(
        self,
        sms_service: TwilioSmsService,
        dispatcher: Optional[CallDispatcher],
        script_for: Callable[[str], str],
        dispatch_attempts: int = 3,
        default_region: str = DEFAULT_PHONE_REGION,
        phone_pattern: str = DEFAULT_PHONE_PATTERN,
    ):
        self.sms_service = sms_service
        self.dispatcher = dispatcher
        self.script_for = script_for
        self.dispatch_attempts = dispatch_attempts
        self.default_region = default_region
        self.phone_pattern = phone_pattern

    async def process(self, condition_types: List[str], user_data: ConditionUserData) -> List[ConditionResult]:
        results: List[ConditionResult] = []
        for condition_type in condition_types:
            if condition_type == "reminder":
                logger.info(f"Reminder condition triggered for: {user_data.name}")
                sid = await self._send_sms(user_data, REMINDER_MESSAGE)
                results.append(ConditionResult(conditionType=condition_type, status="sent", detail=sid))

            elif condition_type == "scheduling":
                slot = appointment_slot(user_data)
                logger.info(f"Appointment scheduled for {user_data.name} on {slot['date']} at {slot['time']}")
                sid = await self._send_sms(user_data, SCHEDULING_MESSAGE.format(**slot))
                results.append(ConditionResult(conditionType=condition_type, status="sent", detail=sid))

            elif condition_type == "call":
                logger.info(f"AI call condition triggered for: {user_data.name}")
                call_id = await self._dispatch_call(user_data)
                results.append(ConditionResult(conditionType=condition_type, status="dispatched", detail=call_id))

            else:
                logger.warning(f"Unknown condition type: {condition_type}")
                results.append(ConditionResult(conditionType=str(condition_type), status="skipped", detail="unknown condition type"))

        return results

    async def _send_sms(self, user_data: ConditionUserData, body: str) -> str:
        if not user_data.phone:
            raise ValueError("missing_phone: userData.phone is required for SMS conditions")
        to_phone = normalize_phone(user_data.phone, self.default_region, self.phone_pattern)
        return await asyncio.to_thread(self.sms_service.send_sms, to_phone, body)

    async def _dispatch_call(self, user_data: ConditionUserData) -> str:
        if self.dispatcher is None:
            raise RuntimeError("Call provider not configured")
        lead = Lead.from_payload(user_data.model_dump(exclude_none=True))
        handle = await self.dispatcher.dispatch(lead, self.script_for(lead.name), self.dispatch_attempts)
        return handle.call_id

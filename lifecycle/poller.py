"""
Call status polling.

The provider does not push completion to us, so a run asks the call log
endpoint for the call's state until it reports a terminal status or the
attempt budget runs out. Waiting between attempts is a cooperative
asyncio suspension, so many runs share one event loop.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .cancellation import CancellationToken, SleepFn
from .errors import PollExhausted, PollTransportError
from .models import CallHandle, CallRecord

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"complete", "completed"}

# Provider fields that may carry the call's state
STATUS_FIELDS = ("status", "queue_status")


def is_terminal_status(data: Dict[str, Any]) -> bool:
    """True if any status field of a call log reports completion."""
    for key in STATUS_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and value.strip().lower() in TERMINAL_STATUSES:
            return True
    return False


class CallStatusPoller:
    """Polls the provider until a call reaches a terminal state."""

    def __init__(self, client, sleep: Optional[SleepFn] = None):
        self.client = client
        self._sleep = sleep or asyncio.sleep

    async def poll(
        self,
        handle: CallHandle,
        interval: float,
        max_attempts: int,
        cancel: Optional[CancellationToken] = None,
    ) -> CallRecord:
        """
        Poll until the call is terminal.

        Suspends for `interval` seconds before every poll after the first,
        so a budget of N attempts waits at most (N - 1) * interval.

        Returns:
            The terminal CallRecord

        Raises:
            PollTransportError: On the first failed poll request
            PollExhausted: If no terminal status was seen in `max_attempts` polls
            RunCancelled: If `cancel` fires at a suspension point
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        last_record: Optional[CallRecord] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                await self._suspend(interval, cancel)
            elif cancel is not None:
                cancel.raise_if_cancelled("POLLING")

            logger.debug(f"Fetching call details for call_id={handle.call_id} (attempt {attempt}/{max_attempts})")
            try:
                data = await self.client.fetch_call_log(handle.call_id)
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Error fetching call details for call_id={handle.call_id}: {e}")
                raise PollTransportError(handle.call_id, attempt, e)

            record = CallRecord.from_provider(data, fallback_call_id=handle.call_id, fallback_to=handle.phone)
            last_record = record
            logger.info(f"Current call status: call_id={handle.call_id}, status={record.raw_status or 'unknown'}")

            if is_terminal_status(data):
                logger.info(f"Call {handle.call_id} is complete after {attempt} poll(s)")
                return record

        logger.warning(f"Call {handle.call_id} did not complete within {max_attempts} attempt(s)")
        raise PollExhausted(handle.call_id, max_attempts, last_record)

    async def _suspend(self, interval: float, cancel: Optional[CancellationToken]) -> None:
        if cancel is None:
            await self._sleep(interval)
        else:
            await cancel.sleep(interval, sleep=self._sleep, stage="POLLING")

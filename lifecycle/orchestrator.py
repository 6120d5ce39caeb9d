"""
Call orchestrator - runs one lead through the full call lifecycle.

    VALIDATING -> DISPATCHING -> POLLING -> CLASSIFYING -> FORWARDING -> DONE

Any stage failure ends the run immediately and propagates to the caller,
tagged with the stage it came from. There is no cross-stage recovery: a
forwarding failure never re-triggers polling, a polling failure never
re-dispatches.
"""

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from .cancellation import CancellationToken
from .classifier import OutcomeClassifier
from .dispatcher import CallDispatcher
from .errors import CallLifecycleError, MissingRequiredField
from .forwarder import ResultForwarder
from .models import ForwardResult, Lead
from .poller import CallStatusPoller

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_FIELDS = ("phone", "name", "email")


class RunStage(str, Enum):
    VALIDATING = "VALIDATING"
    DISPATCHING = "DISPATCHING"
    POLLING = "POLLING"
    CLASSIFYING = "CLASSIFYING"
    FORWARDING = "FORWARDING"
    DONE = "DONE"


class CallOrchestrator:
    """Composes dispatch, polling, classification and forwarding."""

    def __init__(
        self,
        dispatcher: CallDispatcher,
        poller: CallStatusPoller,
        classifier: OutcomeClassifier,
        forwarder: ResultForwarder,
        dispatch_attempts: int = 3,
        poll_interval: float = 15.0,
        poll_attempts: int = 10,
        required_fields: Sequence[str] = DEFAULT_REQUIRED_FIELDS,
        default_destination_url: Optional[str] = None,
    ):
        self.dispatcher = dispatcher
        self.poller = poller
        self.classifier = classifier
        self.forwarder = forwarder
        self.dispatch_attempts = dispatch_attempts
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.required_fields = tuple(required_fields)
        self.default_destination_url = default_destination_url

    def validate(self, lead: Lead, destination_url: Optional[str], script: str) -> str:
        """Check everything a run needs before any network call.

        Returns the destination URL the run will use.
        """
        missing = lead.missing_fields(self.required_fields)
        destination = destination_url or self.default_destination_url
        if not destination:
            missing.append("destinationUrl")
        if not script or not script.strip():
            missing.append("script")
        if missing:
            raise MissingRequiredField(missing, stage=RunStage.VALIDATING.value)
        return destination

    async def run(
        self,
        lead: Lead,
        destination_url: Optional[str] = None,
        script: str = "",
        correlation_metadata: Optional[Mapping[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ForwardResult:
        """
        Run one lead through the lifecycle.

        Args:
            lead: The lead to call
            destination_url: Webhook receiving the outcome, falls back to
                the configured default
            script: Task text for the provider's agent
            correlation_metadata: Extra fields passed through unmodified
            cancel: Optional token honored at every suspension point

        Returns:
            ForwardResult from the destination webhook

        Raises:
            CallLifecycleError: The first stage failure, with `.stage` set
        """
        stage = RunStage.VALIDATING
        try:
            destination = self.validate(lead, destination_url, script)

            stage = RunStage.DISPATCHING
            handle = await self.dispatcher.dispatch(lead, script, self.dispatch_attempts, cancel=cancel)

            stage = RunStage.POLLING
            logger.info(
                f"Polling call_id={handle.call_id} every {self.poll_interval}s "
                f"(max {self.poll_attempts} attempts)"
            )
            record = await self.poller.poll(handle, self.poll_interval, self.poll_attempts, cancel=cancel)

            stage = RunStage.CLASSIFYING
            outcome = self.classifier.classify(record)
            logger.info(
                f"Call {handle.call_id} classified as {outcome.tag.value} "
                f"(raw_status={outcome.raw_tag}, duration={record.duration_seconds})"
            )

            stage = RunStage.FORWARDING
            metadata = self._merge_metadata(lead, correlation_metadata)
            result = await self.forwarder.forward(outcome, destination, metadata)

            stage = RunStage.DONE
            return result

        except CallLifecycleError as e:
            if not e.stage:
                e.stage = stage.value
            logger.error(f"Call run failed at {e.stage}: {e.message}")
            raise

    @staticmethod
    def _merge_metadata(lead: Lead, correlation_metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": lead.name, "email": lead.email}
        metadata.update(lead.correlation_metadata)
        metadata.update(correlation_metadata or {})
        return metadata

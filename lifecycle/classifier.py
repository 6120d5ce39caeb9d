"""
Outcome classification - maps a terminal call record to an OutcomeTag.

Pure and deterministic: no I/O, same record in, same Outcome out.
"""

from .models import CallRecord, Outcome, OutcomeTag

# Calls shorter than this connected but were not meaningfully answered
DEFAULT_MIN_ANSWERED_SECONDS = 0.8


class OutcomeClassifier:
    """Duration-based classification of terminal calls."""

    def __init__(
        self,
        min_answered_seconds: float = DEFAULT_MIN_ANSWERED_SECONDS,
        duration_filter_enabled: bool = True,
    ):
        if min_answered_seconds < 0:
            raise ValueError("min_answered_seconds cannot be negative")
        self.min_answered_seconds = min_answered_seconds
        self.duration_filter_enabled = duration_filter_enabled

    def classify(self, record: CallRecord) -> Outcome:
        if not self.duration_filter_enabled:
            return Outcome(tag=OutcomeTag.ANSWERED, record=record)

        duration = record.duration_seconds
        if duration <= 0:
            tag = OutcomeTag.NOT_CONNECTED
        elif duration < self.min_answered_seconds:
            tag = OutcomeTag.TOO_SHORT
        else:
            tag = OutcomeTag.ANSWERED
        return Outcome(tag=tag, record=record)


def classify(record: CallRecord) -> Outcome:
    """Classify with the default threshold."""
    return OutcomeClassifier().classify(record)

"""
Candle wall operations: list the wall and submit a new candle.

Submission runs validate -> classify -> append. Errors from any step are
turned into a SubmissionOutcome here and never reach the HTTP layer.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from candlewall.errors import ValidationError
from candlewall.message_store import MAX_MESSAGE_LENGTH, MessageStore
from candlewall.moderation import ModerationGateway, Verdict

logger = logging.getLogger(__name__)

REJECTED_REASON = "Message could not be approved."
UNAVAILABLE_REASON = "Your candle could not be saved. Please try again later."


class SubmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    VALIDATION_REJECTED = "validation_rejected"
    MODERATION_REJECTED = "moderation_rejected"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    reason: Optional[str] = None
    # Set when moderation rejected because the classifier failed
    moderation_error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status is SubmissionStatus.ACCEPTED


def validate_message(raw: object, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Validate a submitted message and return it trimmed.

    Raises:
        ValidationError: not a string, empty after trimming, or longer
            than max_length characters.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Message is required and must be a non-empty string.")
    if len(raw) > max_length:
        raise ValidationError(f"Message must be at most {max_length} characters.")
    return raw.strip()


class CandleWall:
    def __init__(
        self,
        store: MessageStore,
        gateway: ModerationGateway,
        max_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.store = store
        self.gateway = gateway
        self.max_length = max_length

    def list_messages(self) -> List[str]:
        return self.store.list()

    def submit_message(self, raw: object) -> SubmissionOutcome:
        try:
            text = validate_message(raw, self.max_length)
        except ValidationError as e:
            logger.info(f"Submission rejected by validation: {e}")
            return SubmissionOutcome(SubmissionStatus.VALIDATION_REJECTED, str(e))

        result = self.gateway.moderate(text)
        if result.verdict is not Verdict.SAFE:
            return SubmissionOutcome(
                SubmissionStatus.MODERATION_REJECTED,
                REJECTED_REASON,
                moderation_error=result.error,
            )

        try:
            stored = self.store.append(text)
        except ValidationError as e:
            return SubmissionOutcome(SubmissionStatus.VALIDATION_REJECTED, str(e))

        if not stored:
            return SubmissionOutcome(SubmissionStatus.SERVICE_UNAVAILABLE, UNAVAILABLE_REASON)

        logger.info("Candle lit", extra={"length": len(text)})
        return SubmissionOutcome(SubmissionStatus.ACCEPTED)

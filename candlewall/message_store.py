"""
Append-only store of memorial messages.

The collection lives under a single key of the key-value service. Reads
never come from an in-process cache; every call goes back to storage.
"""

import logging
from typing import List, Sequence

from candlewall.errors import StoreUnavailable, ValidationError
from candlewall.storage import SqlKeyValueStore

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 150

# Starter candles shown when the wall has never been written to
FALLBACK_MESSAGES = (
    "Du är inte ensam.",
    "Det finns hopp, även när det känns som mörkast.",
    "En dag i taget. Du klarar det här.",
    "Vila. Du behöver inte lösa allt på en gång.",
    "Din existens gör världen ljusare.",
    "Till minne av en älskad vän.",
    "Vi tänker på dig.",
    "Tillsammans är vi starka.",
    "Det är okej att inte vara okej.",
    "Var snäll mot dig själv.",
    "För de vi saknar, i evigt minne.",
)


class MessageStore:
    """Ordered, append-only collection of messages on top of a key-value service."""

    def __init__(
        self,
        kv: SqlKeyValueStore,
        key: str = "candles:messages",
        fallback: Sequence[str] = FALLBACK_MESSAGES,
        max_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.kv = kv
        self.key = key
        self.fallback = tuple(fallback)
        self.max_length = max_length

    def list(self) -> List[str]:
        """
        Return every stored message in insertion order.

        An absent collection is seeded with the fallback messages. If
        storage is unavailable the fallback messages are returned without
        being written.
        """
        try:
            messages = self.kv.lrange(self.key)
            if messages is not None:
                return messages

            if self.kv.seed(self.key, self.fallback):
                return list(self.fallback)

            # Lost the seeding race; read what the winner wrote
            messages = self.kv.lrange(self.key)
            return messages if messages is not None else list(self.fallback)
        except StoreUnavailable as e:
            logger.warning(
                f"Message store unavailable, serving fallback messages: {e}",
                extra={"category": "store_unavailable"},
            )
            return list(self.fallback)

    def append(self, text: str) -> bool:
        """
        Append text as the newest message.

        Raises:
            ValidationError: text is empty after trimming or too long.

        Returns:
            True if the message was persisted, False if storage failed.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message must be a non-empty string.")
        if len(text) > self.max_length:
            raise ValidationError(f"Message must be at most {self.max_length} characters.")
        text = text.strip()

        try:
            self.kv.rpush(self.key, text)
        except StoreUnavailable as e:
            logger.error(
                f"Failed to persist message: {e}",
                extra={"category": "store_unavailable"},
            )
            return False
        return True

"""
Moderation gateway for candle messages.

Every candidate message goes through exactly one classifier call and comes
back SAFE or UNSAFE. The gateway is fail-closed:

    - classifier output must normalize to exactly "SAFE" to pass
    - transport errors, timeouts and empty output all yield UNSAFE
    - no retries; one attempt per submission, failure included

Faults are reported as ModerationUnavailable diagnostics so operators can
tell "content rejected" apart from "classifier degraded".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import anthropic
from anthropic import APIConnectionError, APIError, APIStatusError, APITimeoutError

from candlewall.errors import ModerationUnavailable, ValidationError

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = """You are a content moderator for a sensitive online memorial wall for suicide prevention. \
Your job is to make sure every message is safe, respectful and appropriate. The tone of the wall is \
grieving, hopeful and supportive. Messages are usually written in Swedish but may be in any language.

Allowed messages include:
- Messages of hope and support (e.g. "You are not alone", "There is hope").
- Personal remembrance (e.g. "In memory of a beloved friend", "We miss you").
- Short, heartfelt expressions (e.g. "A thought", "I love you", "❤️").

Disallowed messages include:
- Hate speech, harassment or bullying.
- Glorification or encouragement of self-harm.
- Spam or advertising.
- Graphic or violent content.
- Disrespectful or trivializing messages.

Analyze the message you are given and answer with exactly one word: SAFE if it is allowed, \
or UNSAFE if it is not. Do not add anything else."""


class Verdict(str, Enum):
    SAFE = "SAFE"
    UNSAFE = "UNSAFE"


def normalize_verdict(raw: object) -> Verdict:
    """
    Map raw classifier output to a verdict.

    The output is trimmed, upper-cased and stripped of every non-letter
    character, then compared with "SAFE". Anything else is UNSAFE.
    """
    if not isinstance(raw, str):
        return Verdict.UNSAFE
    cleaned = "".join(ch for ch in raw.strip().upper() if ch.isalpha())
    return Verdict.SAFE if cleaned == Verdict.SAFE.value else Verdict.UNSAFE


class Classifier(Protocol):
    """Single-shot text classifier: policy instruction + input text in, free text out."""

    def complete(self, system: str, text: str, temperature: float) -> str:
        ...


class AnthropicClassifier:
    """Classifier backed by the Anthropic Messages API. Errors map to ModerationUnavailable."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 10.0,
        max_tokens: int = 5,
        client=None,
    ):
        # max_retries=0: the gateway makes exactly one attempt
        self.client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )
        self.model = model
        self.max_tokens = max_tokens

    def complete(self, system: str, text: str, temperature: float = 0.0) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": text}],
            )
        except APITimeoutError as e:
            raise ModerationUnavailable("classifier timed out", "timeout") from e
        except APIConnectionError as e:
            raise ModerationUnavailable(f"classifier connection error: {e}", "connection_error") from e
        except APIStatusError as e:
            raise ModerationUnavailable(
                f"classifier returned HTTP {e.status_code}", "status_error",
            ) from e
        except APIError as e:
            raise ModerationUnavailable(str(e), "client_error") from e

        output = "".join(
            block.text for block in (response.content or [])
            if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)
        logger.debug(
            "Classifier call succeeded",
            extra={
                "model": self.model,
                "input_tokens": getattr(usage, "input_tokens", None),
                "output_tokens": getattr(usage, "output_tokens", None),
            },
        )
        return output


@dataclass(frozen=True)
class ModerationResult:
    verdict: Verdict
    # Set when the verdict was forced by a classifier fault
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class ModerationGateway:
    """Classifies one message per call; never raises for classifier faults."""

    def __init__(self, classifier: Optional[Classifier]):
        self.classifier = classifier

    def classify(self, text: str) -> Verdict:
        return self.moderate(text).verdict

    def moderate(self, text: str) -> ModerationResult:
        """
        Classify text and report whether the verdict came from a fault.

        Raises:
            ValidationError: text is empty or whitespace only. No classifier
                call is made.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message is required.")

        try:
            raw = self._call_classifier(text.strip())
        except ModerationUnavailable as e:
            logger.warning(
                f"Moderation unavailable, rejecting message: {e}",
                extra={"category": "moderation_unavailable", "kind": e.kind},
            )
            return ModerationResult(Verdict.UNSAFE, error=e.kind)

        verdict = normalize_verdict(raw)
        logger.info(
            f"Message classified as {verdict.value}",
            extra={"category": "moderation_verdict", "verdict": verdict.value},
        )
        return ModerationResult(verdict)

    def _call_classifier(self, text: str) -> str:
        if self.classifier is None:
            raise ModerationUnavailable("no classifier configured", "not_configured")
        try:
            raw = self.classifier.complete(SYSTEM_INSTRUCTION, text, temperature=0.0)
        except ModerationUnavailable:
            raise
        except Exception as e:
            logger.error(f"Unexpected classifier error: {e}", exc_info=True)
            raise ModerationUnavailable(str(e), "unknown") from e
        if not isinstance(raw, str) or not raw.strip():
            raise ModerationUnavailable("classifier returned an empty response", "empty_response")
        return raw

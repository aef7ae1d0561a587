from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Union

from .config import Settings
from .errors import FatalProviderError, Overloaded, PipelineError, QuotaExceeded
from .llm import CredentialPool, LLMClient
from .schemas import ContentBlock

logger = logging.getLogger(__name__)


@dataclass
class Success:
    raw_text: str
    attempts: int


@dataclass
class RetryableFailure:
    reason: PipelineError
    suggested_delay: float


@dataclass
class FatalFailure:
    reason: PipelineError
    attempts: int = 1


InvocationOutcome = Union[Success, RetryableFailure, FatalFailure]


class RetryHintParser(Protocol):
    def parse(self, text: str) -> Optional[float]:
        ...


class _PatternHint:
    pattern: re.Pattern

    def parse(self, text: str) -> Optional[float]:
        match = self.pattern.search(text or "")
        if not match:
            return None
        try:
            return float(match.group(1))
        except ValueError:
            return None


class RetryDelayFieldHint(_PatternHint):
    """``"retryDelay": "37s"`` as found in Google RPC error details."""

    pattern = re.compile(r'retryDelay"?\s*:\s*"?(\d+(?:\.\d+)?)')


class RetryInPhraseHint(_PatternHint):
    """``Please retry in 12.5s.`` in the free-text error message."""

    pattern = re.compile(r"retry in ([0-9]+(?:\.[0-9]+)?)s", re.IGNORECASE)


DEFAULT_HINT_PARSERS: tuple[RetryHintParser, ...] = (RetryDelayFieldHint(), RetryInPhraseHint())


def parse_retry_hint(text: str, parsers: Sequence[RetryHintParser] = DEFAULT_HINT_PARSERS) -> Optional[float]:
    for parser in parsers:
        seconds = parser.parse(text)
        if seconds is not None:
            return seconds
    return None


def classify(error: BaseException) -> PipelineError:
    if isinstance(error, PipelineError):
        return error
    message = str(error) or type(error).__name__
    status = getattr(error, "status", None)
    lowered = message.lower()
    if status == 429 or "429" in message or "quota exceeded" in lowered or "resource_exhausted" in lowered:
        return QuotaExceeded(message)
    if status == 503 or "503" in message or "overloaded" in lowered or "unavailable" in lowered:
        return Overloaded(message)
    return FatalProviderError(message)


def compute_delay(
    error_text: str,
    attempt: int,
    base_delay: float,
    margin: float,
    parsers: Sequence[RetryHintParser] = DEFAULT_HINT_PARSERS,
) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    hint = parse_retry_hint(error_text, parsers)
    if hint is not None:
        return hint + margin
    return base_delay * attempt


class InvocationCoordinator:
    def __init__(
        self,
        client: LLMClient,
        config: Settings,
        pool: Optional[CredentialPool] = None,
        sleep: Callable[[float], None] = time.sleep,
        parsers: Sequence[RetryHintParser] = DEFAULT_HINT_PARSERS,
    ) -> None:
        self.client = client
        self.pool = pool or getattr(client, "pool", None) or CredentialPool([""])
        self.max_retries = config.max_retries
        self.base_delay = config.retry_base_delay_seconds
        self.margin = config.retry_hint_margin_seconds
        self.sleep = sleep
        self.parsers = parsers

    def attempt(self, blocks: Sequence[ContentBlock], system_instruction: str, attempt: int) -> InvocationOutcome:
        index = self.pool.next_index()
        try:
            raw = self.client.generate(blocks, system_instruction, credential_index=index)
        except Exception as exc:  # noqa: BLE001
            reason = classify(exc)
            if not reason.retryable:
                return FatalFailure(reason=reason, attempts=attempt)
            delay = compute_delay(reason.message, attempt, self.base_delay, self.margin, self.parsers)
            return RetryableFailure(reason=reason, suggested_delay=delay)
        return Success(raw_text=raw, attempts=attempt)

    def invoke(self, blocks: Sequence[ContentBlock], system_instruction: str) -> Union[Success, FatalFailure]:
        total = max(self.max_retries, 0) + 1
        attempt = 1
        while True:
            outcome = self.attempt(blocks, system_instruction, attempt)
            if not isinstance(outcome, RetryableFailure):
                return outcome
            if attempt == total:
                logger.error("Giving up after %d attempts: %s", total, outcome.reason.message)
                return FatalFailure(reason=outcome.reason, attempts=total)
            logger.warning(
                "%s on attempt %d/%d, retrying in %.1fs",
                outcome.reason.category,
                attempt,
                total,
                outcome.suggested_delay,
            )
            self.sleep(outcome.suggested_delay)
            attempt += 1

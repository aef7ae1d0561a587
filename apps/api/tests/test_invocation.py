from __future__ import annotations

import threading
from collections import Counter

from mathsphere.config import Settings
from mathsphere.errors import ProviderError
from mathsphere.invocation import (
    FatalFailure,
    InvocationCoordinator,
    RetryDelayFieldHint,
    RetryInPhraseHint,
    Success,
    classify,
    compute_delay,
    parse_retry_hint,
)
from mathsphere.llm import CredentialPool, MockLLMClient
from mathsphere.schemas import TextBlock

BLOCKS = [TextBlock(text="Leçon")]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _coordinator(client: MockLLMClient, config: Settings, pool: CredentialPool | None = None):
    sleeper = SleepRecorder()
    return InvocationCoordinator(client, config, pool=pool, sleep=sleeper), sleeper


def test_quota_errors_then_success(config: Settings) -> None:
    quota = ProviderError("Too Many Requests", status=429)
    client = MockLLMClient([quota, quota, quota, '{"title": "ok"}'])
    coordinator, sleeper = _coordinator(client, config)
    outcome = coordinator.invoke(BLOCKS, "system")
    assert isinstance(outcome, Success)
    assert outcome.raw_text == '{"title": "ok"}'
    assert outcome.attempts == 4
    assert sleeper.delays == [20.0, 40.0, 60.0]


def test_ceiling_is_four_attempts(config: Settings) -> None:
    client = MockLLMClient([ProviderError("quota exceeded", status=429) for _ in range(6)])
    coordinator, sleeper = _coordinator(client, config)
    outcome = coordinator.invoke(BLOCKS, "system")
    assert isinstance(outcome, FatalFailure)
    assert outcome.attempts == 4
    assert outcome.reason.tagged() == "[QuotaExceeded] 429: quota exceeded"
    assert len(client.calls) == 4
    assert len(sleeper.delays) == 3
    assert sleeper.delays == sorted(sleeper.delays)


def test_fatal_error_is_not_retried(config: Settings) -> None:
    client = MockLLMClient([ProviderError("API key not valid", status=400), "never"])
    coordinator, sleeper = _coordinator(client, config)
    outcome = coordinator.invoke(BLOCKS, "system")
    assert isinstance(outcome, FatalFailure)
    assert outcome.reason.category == "FatalProviderError"
    assert len(client.calls) == 1
    assert sleeper.delays == []


def test_overloaded_uses_provider_hint(config: Settings) -> None:
    body = '{"error": {"code": 503, "details": [{"retryDelay": "7s"}]}}'
    client = MockLLMClient([ProviderError(body, status=503), "done"])
    coordinator, sleeper = _coordinator(client, config)
    outcome = coordinator.invoke(BLOCKS, "system")
    assert isinstance(outcome, Success)
    assert sleeper.delays == [7.0 + config.retry_hint_margin_seconds]


def test_retry_hint_parsers() -> None:
    assert RetryDelayFieldHint().parse('"retryDelay": "37s"') == 37.0
    assert RetryDelayFieldHint().parse("retryDelay:12") == 12.0
    assert RetryInPhraseHint().parse("Please retry in 12.5s.") == 12.5
    assert parse_retry_hint("nothing useful here") is None
    assert parse_retry_hint("Please retry in 3s", parsers=[RetryDelayFieldHint()]) is None


def test_compute_delay_without_hint_is_linear() -> None:
    assert [compute_delay("", n, 20.0, 5.0) for n in (1, 2, 3)] == [20.0, 40.0, 60.0]
    assert compute_delay("retry in 2s", 3, 20.0, 5.0) == 7.0


def test_classify() -> None:
    assert classify(ProviderError("x", status=429)).category == "QuotaExceeded"
    assert classify(RuntimeError("RESOURCE_EXHAUSTED: slow down")).category == "QuotaExceeded"
    assert classify(ProviderError("The model is overloaded", status=503)).category == "Overloaded"
    assert classify(ValueError("boom")).category == "FatalProviderError"


def test_keys_rotate_between_attempts(config: Settings) -> None:
    pool = CredentialPool(["k1", "k2", "k3"])
    client = MockLLMClient([ProviderError("x", status=429), ProviderError("x", status=429), "ok"])
    coordinator, _ = _coordinator(client, config, pool=pool)
    coordinator.invoke(BLOCKS, "system")
    assert [call["credential_index"] for call in client.calls] == [0, 1, 2]


def test_credential_pool_wraps() -> None:
    pool = CredentialPool(["a", "b"])
    assert [pool.next_index() for _ in range(5)] == [0, 1, 0, 1, 0]
    assert pool.key_at(3) == "b"


def test_credential_pool_rotation_is_even_across_threads() -> None:
    pool = CredentialPool(["k1", "k2", "k3", "k4"])
    workers, calls = 8, 1000
    seen: list[list[int]] = [[] for _ in range(workers)]

    def rotate(slot: int) -> None:
        for _ in range(calls):
            seen[slot].append(pool.next_index())

    threads = [threading.Thread(target=rotate, args=(slot,)) for slot in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    counts = Counter(index for indices in seen for index in indices)
    assert counts == {0: 2000, 1: 2000, 2: 2000, 3: 2000}


def test_no_retries_gives_up_after_first_retryable_failure(config: Settings) -> None:
    config.max_retries = 0
    client = MockLLMClient([ProviderError("quota exceeded", status=429), "unused"])
    coordinator, sleeper = _coordinator(client, config)
    outcome = coordinator.invoke(BLOCKS, "system")
    assert isinstance(outcome, FatalFailure)
    assert outcome.attempts == 1
    assert outcome.reason.category == "QuotaExceeded"
    assert sleeper.delays == []

from __future__ import annotations

import pytest
from pydantic import ValidationError

from listing_watch.config import FetcherSettings
from listing_watch.engine.antibot import (
    AntiBotChain,
    AntiBotContext,
    BackoffStrategy,
    PacingStrategy,
    RequestDirective,
    backoff_delay,
    build_chain,
)
from listing_watch.engine.identity import PageSnapshot


@pytest.mark.parametrize(
    ("mode", "base", "expected"),
    [
        ("exponential", 2.0, [2.0, 4.0, 8.0, 16.0]),
        ("linear", 1.5, [1.5, 3.0, 4.5, 6.0]),
    ],
)
def test_backoff_delay_grows_strictly(mode: str, base: float, expected: list[float]) -> None:
    settings = FetcherSettings(backoff_mode=mode, backoff_base=base, max_attempts=5)
    assert backoff_delay(settings, 1) == 0.0
    delays = [backoff_delay(settings, attempt) for attempt in range(2, 6)]
    assert delays == expected
    assert all(earlier < later for earlier, later in zip(delays, delays[1:]))


def test_pacing_only_delays_first_attempt() -> None:
    settings = FetcherSettings(delay_range=(1.0, 2.0))
    strategy = PacingStrategy()

    first = RequestDirective()
    strategy.before_request(AntiBotContext(settings=settings, attempt=1), first)
    assert 1.0 <= first.delay <= 2.0

    retry = RequestDirective()
    strategy.before_request(AntiBotContext(settings=settings, attempt=2), retry)
    assert retry.delay is None


def test_chain_records_delays_and_counts_attempts() -> None:
    settings = FetcherSettings(max_attempts=3, backoff_base=0.5)

    class Identity:
        def __init__(self) -> None:
            self.rebuilt: list[int | None] = []

        def rebuild(self, generation=None) -> bool:
            self.rebuilt.append(generation)
            return True

    identity = Identity()
    context, chain = build_chain(settings, identity, "https://example.com")
    snapshot = PageSnapshot(url="https://example.com", status_code=200, text="", generation=7)

    directive = chain.prepare(context)
    assert directive.delay is None
    assert directive.timeout == settings.navigation_timeout
    assert context.max_attempts == 3

    chain.notify_challenge(context, snapshot)
    assert context.attempt == 2
    assert context.challenged is True
    assert identity.rebuilt == [7]

    chain.prepare(context)
    chain.notify_failure(context, None, RuntimeError("boom"))
    assert context.challenged is False
    assert context.attempt == 3

    chain.prepare(context)
    assert context.delays == [0.5, 1.0]
    assert chain.should_retry(context) is True
    chain.notify_failure(context, None, RuntimeError("boom"))
    assert chain.should_retry(context) is False


def test_backoff_strategy_ignores_first_attempt() -> None:
    chain = AntiBotChain([BackoffStrategy()])
    context = AntiBotContext(settings=FetcherSettings())
    assert chain.prepare(context).delay is None
    assert context.delays == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"delay_range": (-1, 2)},
        {"delay_range": (3, 1)},
        {"delay_range": "fast"},
        {"max_attempts": 0},
        {"backoff_base": 0},
        {"navigation_timeout": 0},
    ],
)
def test_invalid_fetcher_settings_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        FetcherSettings(**overrides)

"""Concrete anti-bot strategies used by the chain."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from ...config import FetcherSettings
from .chain import AntiBotChain, AntiBotContext, BaseStrategy, RequestDirective, Strategy

if TYPE_CHECKING:
    from ..identity import Identity, PageSnapshot


def backoff_delay(settings: FetcherSettings, attempt: int) -> float:
    """Delay before ``attempt`` (2 is the first retry); strictly increasing in attempt."""

    if attempt <= 1:
        return 0.0
    retry_index = attempt - 1
    if settings.backoff_mode == "linear":
        return settings.backoff_base * retry_index
    return settings.backoff_base * 2 ** (retry_index - 1)


class RetryStrategy(BaseStrategy):
    """Expose the retry bound to the fetch loop and count attempts."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        context.max_attempts = max(1, context.settings.max_attempts)

    def after_failure(self, context: AntiBotContext, snapshot, error) -> None:
        context.attempt += 1

    def after_challenge(self, context: AntiBotContext, snapshot) -> None:
        context.attempt += 1


class BackoffStrategy(BaseStrategy):
    """Wait longer before each retry."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        if context.attempt > 1:
            directive.delay = backoff_delay(context.settings, context.attempt)


class PacingStrategy(BaseStrategy):
    """Randomised delay ahead of the first attempt to smooth out request cadence."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        if context.attempt != 1:
            return
        low, high = context.settings.delay_range
        if high <= 0:
            return
        directive.delay = random.uniform(low, high)


class HeaderStrategy(BaseStrategy):
    """Apply configured headers and the navigation timeout."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        for key, value in context.settings.extra_headers.items():
            directive.headers.setdefault(key, value)
        directive.timeout = context.settings.navigation_timeout


class IdentityRotationStrategy(BaseStrategy):
    """Throw away a challenged identity so the next attempt starts from a fresh one."""

    def __init__(self, identity: "Identity") -> None:
        self.identity = identity

    def after_challenge(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        self.identity.rebuild(snapshot.generation)


def build_chain(settings: FetcherSettings, identity: "Identity", url: str = "") -> tuple[AntiBotContext, AntiBotChain]:
    """Utility to build a ready-to-use chain from config."""

    context = AntiBotContext(settings=settings, url=url)
    strategies: list[Strategy] = [
        RetryStrategy(),
        PacingStrategy(),
        BackoffStrategy(),
        HeaderStrategy(),
        IdentityRotationStrategy(identity),
    ]
    return context, AntiBotChain(strategies)


__all__ = [
    "BackoffStrategy",
    "HeaderStrategy",
    "IdentityRotationStrategy",
    "PacingStrategy",
    "RetryStrategy",
    "backoff_delay",
    "build_chain",
]

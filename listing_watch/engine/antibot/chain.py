"""Strategy chain orchestrating anti-bot adaptations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Protocol

from ...config import FetcherSettings

if TYPE_CHECKING:
    from ..identity import PageSnapshot


@dataclass
class RequestDirective:
    """Mutable set of options to apply to the next page load."""

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    delay: float | None = None


@dataclass
class AntiBotContext:
    """Shared state for all strategies in the chain, scoped to one fetch call."""

    settings: FetcherSettings
    url: str = ""
    attempt: int = 1
    max_attempts: int = 1
    last_snapshot: "PageSnapshot | None" = None
    last_exception: Exception | None = None
    challenged: bool = False
    delays: list[float] = field(default_factory=list)


class Strategy(Protocol):
    """Strategy behaviour expected by the chain."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        """Mutate directive ahead of a page load."""

    def after_success(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        """Observe a page that came back without a challenge."""

    def after_failure(
        self,
        context: AntiBotContext,
        snapshot: "PageSnapshot | None",
        error: Exception | None,
    ) -> None:
        """React to a transport error or an unusable status code."""

    def after_challenge(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        """React to a bot-detection page."""


class BaseStrategy:
    """No-op hooks so concrete strategies only override what they use."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        return

    def after_success(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        return

    def after_failure(
        self,
        context: AntiBotContext,
        snapshot: "PageSnapshot | None",
        error: Exception | None,
    ) -> None:
        return

    def after_challenge(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        return


class AntiBotChain:
    """Compose multiple strategies and expose a simple API for the fetcher."""

    def __init__(self, strategies: Optional[List[Strategy]] = None) -> None:
        self.strategies = strategies or []

    def add_strategy(self, strategy: Strategy) -> None:
        self.strategies.append(strategy)

    # ------------------------------------------------------------------
    def prepare(self, context: AntiBotContext) -> RequestDirective:
        directive = RequestDirective()
        for strategy in self.strategies:
            strategy.before_request(context, directive)
        if directive.delay:
            context.delays.append(directive.delay)
        return directive

    def notify_success(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        context.last_snapshot = snapshot
        context.last_exception = None
        context.challenged = False
        for strategy in self.strategies:
            strategy.after_success(context, snapshot)

    def notify_failure(
        self,
        context: AntiBotContext,
        snapshot: "PageSnapshot | None",
        error: Exception | None,
    ) -> None:
        context.last_snapshot = snapshot
        context.last_exception = error
        context.challenged = False
        for strategy in self.strategies:
            strategy.after_failure(context, snapshot, error)

    def notify_challenge(self, context: AntiBotContext, snapshot: "PageSnapshot") -> None:
        context.last_snapshot = snapshot
        context.last_exception = None
        context.challenged = True
        for strategy in self.strategies:
            strategy.after_challenge(context, snapshot)

    def should_retry(self, context: AntiBotContext) -> bool:
        return context.attempt <= context.max_attempts


__all__ = ["AntiBotChain", "AntiBotContext", "BaseStrategy", "RequestDirective", "Strategy"]

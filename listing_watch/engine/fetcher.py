"""Page fetching with challenge detection, backoff and identity rotation."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, NoReturn

import structlog
from selectolax.parser import HTMLParser

from ..config import FetcherSettings
from ..errors import ChallengeFailure, FetchFailure
from .antibot.chain import AntiBotChain, AntiBotContext
from .antibot.strategies import build_chain
from .identity import Identity, PageSnapshot


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    title: str = ""
    attempts: int = 1


def page_title(html: str) -> str:
    node = HTMLParser(html).css_first("title")
    if node is None:
        return ""
    return node.text(strip=True)


class Fetcher:
    """Coordinate page loads on a shared identity with the anti-bot strategy chain."""

    def __init__(
        self,
        settings: FetcherSettings,
        identity: Identity,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.identity = identity
        self.logger = logger or structlog.get_logger("listing_watch.fetcher")
        self._sleep = sleep

    def close(self) -> None:
        self.identity.close()

    def fetch(self, url: str) -> FetchResponse:
        context, chain = self._build_chain(url)
        while True:
            directive = chain.prepare(context)
            if directive.delay:
                self.logger.debug("fetch_backoff", url=url, attempt=context.attempt, delay=directive.delay)
                self._sleep(directive.delay)
            attempt = context.attempt
            try:
                snapshot = self.identity.load(url, directive.timeout, directive.headers or None)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("fetch_error", url=url, attempt=attempt, error=str(exc))
                chain.notify_failure(context, None, exc)
            else:
                title = page_title(snapshot.text)
                if self._is_challenge(title, snapshot.text):
                    self.logger.warning(
                        "fetch_challenge",
                        url=url,
                        attempt=attempt,
                        title=title,
                        generation=snapshot.generation,
                    )
                    chain.notify_challenge(context, snapshot)
                elif self._is_failure(snapshot.status_code):
                    self.logger.warning(
                        "fetch_bad_status", url=url, attempt=attempt, status=snapshot.status_code
                    )
                    chain.notify_failure(context, snapshot, None)
                else:
                    chain.notify_success(context, snapshot)
                    return self._wrap(snapshot, title, attempt)

            if not chain.should_retry(context):
                break

        self._give_up(url, context)

    # ------------------------------------------------------------------
    def _build_chain(self, url: str) -> tuple[AntiBotContext, AntiBotChain]:
        return build_chain(self.settings, self.identity, url)

    def _is_challenge(self, title: str, text: str) -> bool:
        if title and title in self.settings.challenge_titles:
            return True
        return any(marker in text for marker in self.settings.challenge_markers)

    @staticmethod
    def _is_failure(status_code: int) -> bool:
        if status_code >= 500:
            return True
        if status_code in {401, 403, 429}:
            return True
        return False

    @staticmethod
    def _wrap(snapshot: PageSnapshot, title: str, attempt: int) -> FetchResponse:
        return FetchResponse(
            url=snapshot.url,
            status_code=snapshot.status_code,
            text=snapshot.text,
            headers=dict(snapshot.headers),
            title=title,
            attempts=attempt,
        )

    def _give_up(self, url: str, context: AntiBotContext) -> NoReturn:
        attempts = context.attempt - 1
        if context.challenged:
            self.logger.error("fetch_challenge_exhausted", url=url, attempts=attempts)
            raise ChallengeFailure(
                f"Bot detection after {attempts} attempts: {url}", url=url, attempts=attempts
            )
        reason = context.last_exception
        if reason is not None:
            detail = str(reason) or type(reason).__name__
        elif context.last_snapshot is not None:
            detail = f"status {context.last_snapshot.status_code}"
        else:
            detail = "no response"
        self.logger.error("fetch_failed", url=url, attempts=attempts, error=detail)
        raise FetchFailure(
            f"Fetch failed after {attempts} attempts ({detail}): {url}", url=url, attempts=attempts
        ) from reason


__all__ = ["Fetcher", "FetchResponse", "page_title"]

"""Reusable fetch identities (HTTP client or headless browser) with guarded rebuilds."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from enum import Enum
from threading import Event, Lock
from typing import Any, Callable, Dict, Protocol

import httpx
import structlog
from playwright.sync_api import sync_playwright

from ..config import FetcherSettings
from ..infra import ProxyPool, UserAgentPool

QUEUE_POLL_INTERVAL = 0.5
# slack on top of the navigation timeout for reading content and closing the page
LOAD_GRACE_SECONDS = 5.0


class IdentityState(str, Enum):
    ABSENT = "absent"
    READY = "ready"
    TEARING_DOWN = "tearing_down"


@dataclass(slots=True)
class PageSnapshot:
    """Raw page as returned by one load, tagged with the identity generation that produced it."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    generation: int = 0


class Identity(Protocol):
    state: IdentityState
    generation: int

    def load(self, url: str, timeout: float | None = None, headers: dict[str, str] | None = None) -> PageSnapshot:
        ...

    def rebuild(self, generation: int | None = None) -> bool:
        ...

    def close(self) -> None:
        ...


class ManagedIdentity:
    """Lifecycle shared by concrete identities.

    The identity is started lazily on the first load and every start bumps
    ``generation``. ``rebuild`` tears the current identity down so the next
    load builds a fresh one (new user agent, next proxy, empty cookie jar).
    Start and teardown run under one lock; passing the generation a caller
    observed makes concurrent challenge reports rebuild only once.
    """

    def __init__(
        self,
        settings: FetcherSettings,
        ua_pool: UserAgentPool | None = None,
        proxy_pool: ProxyPool | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings
        self.ua_pool = ua_pool
        self.proxy_pool = proxy_pool
        self.logger = logger or structlog.get_logger("listing_watch.identity")
        self.state = IdentityState.ABSENT
        self.generation = 0
        self.user_agent: str | None = None
        self.proxy: str | None = None
        self._lock = Lock()

    def _acquire(self) -> int:
        with self._lock:
            if self.state is not IdentityState.READY:
                if self.ua_pool is not None:
                    self.user_agent = self.ua_pool.get(exclude=self.user_agent)
                if self.proxy_pool is not None and not self.proxy_pool.empty:
                    self.proxy = self.proxy_pool.get_proxy()
                self._start()
                self.generation += 1
                self.state = IdentityState.READY
                self.logger.info(
                    "identity_started",
                    kind=type(self).__name__,
                    generation=self.generation,
                    user_agent=self.user_agent,
                    proxy=self.proxy,
                )
            return self.generation

    def rebuild(self, generation: int | None = None) -> bool:
        with self._lock:
            if self.state is not IdentityState.READY:
                return False
            if generation is not None and generation != self.generation:
                return False
            self._teardown()
        self.logger.info("identity_discarded", kind=type(self).__name__, generation=self.generation)
        return True

    def close(self) -> None:
        with self._lock:
            if self.state is IdentityState.READY:
                self._teardown()

    def _teardown(self) -> None:
        self.state = IdentityState.TEARING_DOWN
        try:
            self._stop()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("identity_teardown_error", error=str(exc))
        finally:
            self.state = IdentityState.ABSENT

    def _start(self) -> None:
        raise NotImplementedError

    def _stop(self) -> None:
        raise NotImplementedError


class HttpIdentity(ManagedIdentity):
    """Plain HTTP identity: one httpx client holding cookies and a user agent."""

    def __init__(
        self,
        settings: FetcherSettings,
        ua_pool: UserAgentPool | None = None,
        proxy_pool: ProxyPool | None = None,
        logger: structlog.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(settings, ua_pool, proxy_pool, logger)
        self._transport = transport
        self._client: httpx.Client | None = None

    def _start(self) -> None:
        headers = dict(self.settings.extra_headers)
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        client_kwargs: dict[str, Any] = {
            "follow_redirects": True,
            "headers": headers,
            "timeout": self.settings.navigation_timeout,
        }
        if self.proxy:
            client_kwargs["proxy"] = self.proxy
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        self._client = httpx.Client(**client_kwargs)

    def _stop(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def load(self, url: str, timeout: float | None = None, headers: dict[str, str] | None = None) -> PageSnapshot:
        generation = self._acquire()
        client = self._client
        if client is None:
            raise httpx.TransportError("Identity was discarded before the request started")
        timeout = timeout or self.settings.navigation_timeout
        # httpx timeouts are per phase; the deadline bounds the whole load
        deadline = time.monotonic() + timeout
        with client.stream("GET", url, headers=headers, timeout=timeout) as response:
            chunks: list[bytes] = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise httpx.ReadTimeout(
                        f"Page load exceeded {timeout:.0f}s", request=response.request
                    )
            text = b"".join(chunks).decode(response.charset_encoding or "utf-8", errors="replace")
            return PageSnapshot(
                url=str(response.url),
                status_code=response.status_code,
                text=text,
                headers=dict(response.headers),
                generation=generation,
            )


class BrowserIdentity(ManagedIdentity):
    """Headless Chromium identity.

    Playwright's sync API is bound to the thread that started it, so every
    browser call is funnelled through one dedicated worker thread. Each load
    opens a short-lived page inside the shared browser context.
    """

    def __init__(
        self,
        settings: FetcherSettings,
        ua_pool: UserAgentPool | None = None,
        proxy_pool: ProxyPool | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(settings, ua_pool, proxy_pool, logger)
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser-identity")
        self._playwright = None
        self._browser = None
        self._context = None

    def _call(self, fn: Callable[..., Any], *args: Any, timeout: float | None = None) -> Any:
        return self._worker.submit(fn, *args).result(timeout=timeout)

    def _start(self) -> None:
        self._call(self._start_on_worker)

    def _stop(self) -> None:
        self._call(self._stop_on_worker)

    def _start_on_worker(self) -> None:
        launch_kwargs: dict[str, Any] = {
            "headless": self.settings.headless_mode,
            "args": ["--disable-blink-features=AutomationControlled"],
        }
        if self.proxy:
            launch_kwargs["proxy"] = {"server": self.proxy}
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(**launch_kwargs)
        width, height = self.settings.viewport_size
        self._context = self._browser.new_context(
            user_agent=self.user_agent,
            locale=self.settings.locale,
            timezone_id=self.settings.timezone_id,
            viewport={"width": width, "height": height},
        )
        if self.settings.extra_headers:
            self._context.set_extra_http_headers(self.settings.extra_headers)

    def _stop_on_worker(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
            if self._browser is not None:
                self._browser.close()
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._context = None
            self._browser = None
            self._playwright = None

    def load(self, url: str, timeout: float | None = None, headers: dict[str, str] | None = None) -> PageSnapshot:
        generation = self._acquire()
        timeout = timeout or self.settings.navigation_timeout
        started = Event()
        future = self._worker.submit(self._load_on_worker, url, timeout, headers, started)
        try:
            # loads queue behind each other on the worker; only our own navigation is timed
            while not started.wait(QUEUE_POLL_INTERVAL):
                if future.done():
                    break
            snapshot = future.result(timeout=timeout + LOAD_GRACE_SECONDS)
        except FutureTimeout as exc:
            raise TimeoutError(f"Page load exceeded {timeout:.0f}s: {url}") from exc
        finally:
            # a load that never reached the worker must not run after we gave up
            future.cancel()
        snapshot.generation = generation
        return snapshot

    def _load_on_worker(
        self,
        url: str,
        timeout: float,
        headers: dict[str, str] | None,
        started: Event,
    ) -> PageSnapshot:
        started.set()
        if self._context is None:
            raise RuntimeError("Identity was discarded before the page was opened")
        page = self._context.new_page()
        try:
            if headers:
                page.set_extra_http_headers(headers)
            response = page.goto(url, wait_until="domcontentloaded", timeout=int(timeout * 1000))
            return PageSnapshot(
                url=page.url,
                status_code=response.status if response else 200,
                text=page.content(),
                headers=dict(response.headers) if response else {},
            )
        finally:
            page.close()

    def close(self) -> None:
        super().close()
        self._worker.shutdown(wait=False)


def build_identity(
    settings: FetcherSettings,
    ua_pool: UserAgentPool | None = None,
    proxy_pool: ProxyPool | None = None,
    logger: structlog.BoundLogger | None = None,
) -> ManagedIdentity:
    """Pick the identity flavour the settings ask for; proxies rotate only when a pool is given."""

    if settings.use_headless_browser:
        return BrowserIdentity(settings, ua_pool, proxy_pool, logger)
    return HttpIdentity(settings, ua_pool, proxy_pool, logger)


__all__ = [
    "BrowserIdentity",
    "HttpIdentity",
    "Identity",
    "IdentityState",
    "ManagedIdentity",
    "PageSnapshot",
    "build_identity",
]

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import pytest

from listing_watch.config import FetcherSettings
from listing_watch.engine import identity as identity_module
from listing_watch.engine.identity import BrowserIdentity, HttpIdentity, IdentityState, build_identity
from listing_watch.infra import ProxyPool, UserAgentPool


class FakePlaywright:
    """Minimal stand-in for the sync playwright object graph."""

    def __init__(self) -> None:
        self.threads: set[int] = set()
        self.launches: list[dict] = []
        self.contexts: list[dict] = []
        self.stopped = 0
        self.chromium = SimpleNamespace(launch=self._launch)

    def _touch(self) -> None:
        self.threads.add(threading.get_ident())

    def start(self) -> "FakePlaywright":
        self._touch()
        return self

    def stop(self) -> None:
        self._touch()
        self.stopped += 1

    def _launch(self, **kwargs):
        self._touch()
        self.launches.append(kwargs)
        return SimpleNamespace(new_context=self._new_context, close=self._touch)

    def _new_context(self, **kwargs):
        self._touch()
        self.contexts.append(kwargs)
        return SimpleNamespace(
            new_page=self._new_page,
            set_extra_http_headers=lambda headers: self._touch(),
            close=self._touch,
        )

    def _new_page(self):
        self._touch()
        page = SimpleNamespace(url="", closed=False)

        def goto(url, wait_until, timeout):
            self._touch()
            page.url = url
            return SimpleNamespace(status=200, headers={"content-type": "text/html"})

        page.goto = goto
        page.content = lambda: "<html><title>ok</title></html>"
        page.set_extra_http_headers = lambda headers: None
        page.close = lambda: setattr(page, "closed", True)
        return page


@pytest.fixture
def fake_playwright(monkeypatch: pytest.MonkeyPatch) -> FakePlaywright:
    fake = FakePlaywright()
    monkeypatch.setattr(identity_module, "sync_playwright", lambda: fake)
    return fake


def test_browser_identity_runs_on_one_worker_thread(fake_playwright) -> None:
    settings = FetcherSettings(use_headless_browser=True)
    identity = BrowserIdentity(settings, UserAgentPool(["agent-one", "agent-two"]), ProxyPool(["http://p:1"]))

    first = identity.load("https://example.com/a")
    assert identity.rebuild(first.generation)
    second = identity.load("https://example.com/b")
    identity.close()

    assert first.status_code == 200
    assert first.url == "https://example.com/a"
    assert (first.generation, second.generation) == (1, 2)
    assert len(fake_playwright.threads) == 1
    assert threading.get_ident() not in fake_playwright.threads
    assert fake_playwright.stopped == 2
    assert fake_playwright.launches[0]["proxy"] == {"server": "http://p:1"}
    assert fake_playwright.contexts[0]["locale"] == "he-IL"
    assert fake_playwright.contexts[0]["user_agent"] != fake_playwright.contexts[1]["user_agent"]
    assert identity.state is IdentityState.ABSENT


def test_build_identity_picks_flavour_and_uses_given_proxy_pool(fake_playwright) -> None:
    pool = ProxyPool(["http://p:1"])

    http_identity = build_identity(FetcherSettings())
    assert isinstance(http_identity, HttpIdentity)
    assert http_identity.proxy_pool is None

    browser_identity = build_identity(FetcherSettings(use_headless_browser=True), proxy_pool=pool)
    assert isinstance(browser_identity, BrowserIdentity)
    assert browser_identity.proxy_pool is pool
    browser_identity.close()


def test_queued_browser_loads_are_timed_from_their_own_start(fake_playwright, monkeypatch) -> None:
    gotos: list[str] = []
    original_new_page = fake_playwright._new_page

    def slow_page():
        page = original_new_page()
        fast_goto = page.goto

        def goto(url, wait_until, timeout):
            time.sleep(0.3)
            gotos.append(url)
            return fast_goto(url, wait_until, timeout)

        page.goto = goto
        return page

    monkeypatch.setattr(fake_playwright, "_new_page", slow_page)
    monkeypatch.setattr(identity_module, "LOAD_GRACE_SECONDS", 0.0)
    identity = BrowserIdentity(FetcherSettings(use_headless_browser=True, navigation_timeout=0.5))
    errors: list[str] = []
    loaded: list[str] = []

    def worker(index: int) -> None:
        try:
            loaded.append(identity.load(f"https://example.com/{index}").url)
        except Exception as exc:  # noqa: BLE001
            errors.append(type(exc).__name__)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    identity.close()

    # five queued loads take ~1.5s in total, well past any single load's timeout
    assert errors == []
    assert sorted(loaded) == sorted(f"https://example.com/{index}" for index in range(5))
    assert len(gotos) == 5


def test_browser_load_that_outlives_its_timeout_fails(fake_playwright, monkeypatch) -> None:
    original_new_page = fake_playwright._new_page

    def stuck_page():
        page = original_new_page()
        page.goto = lambda url, wait_until, timeout: time.sleep(0.5)
        return page

    monkeypatch.setattr(fake_playwright, "_new_page", stuck_page)
    monkeypatch.setattr(identity_module, "LOAD_GRACE_SECONDS", 0.0)
    identity = BrowserIdentity(FetcherSettings(use_headless_browser=True, navigation_timeout=0.1))

    with pytest.raises(TimeoutError):
        identity.load("https://example.com/slow")
    identity.close()

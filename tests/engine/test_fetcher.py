from __future__ import annotations

import httpx
import pytest

from listing_watch.config import FetcherSettings
from listing_watch.engine.fetcher import Fetcher, page_title
from listing_watch.engine.identity import HttpIdentity, IdentityState
from listing_watch.errors import ChallengeFailure, FetchFailure
from listing_watch.infra import UserAgentPool

URL = "https://www.yad2.co.il/realestate/forsale?city=5000"


def _fetcher(settings: FetcherSettings, identity) -> tuple[Fetcher, list[float]]:
    sleeps: list[float] = []
    return Fetcher(settings, identity, sleep=sleeps.append), sleeps


def test_page_title_reads_head_title(pages) -> None:
    assert page_title(pages.challenge) == "ShieldSquare Captcha"
    assert page_title("<html><body>no title</body></html>") == ""


def test_challenge_on_every_attempt_raises_after_backoff(fetcher_settings, fake_identity, pages) -> None:
    identity = fake_identity([pages.challenge] * 3)
    fetcher, sleeps = _fetcher(fetcher_settings, identity)

    with pytest.raises(ChallengeFailure) as excinfo:
        fetcher.fetch(URL)

    assert excinfo.value.attempts == 3
    assert excinfo.value.kind == "challenge"
    assert sleeps == [2.0, 4.0]
    assert len(identity.loads) == 3
    # each challenged identity is discarded, including after the last attempt
    assert identity.rebuilds == [1, 2, 3]


def test_challenge_then_clean_page_recovers(fetcher_settings, fake_identity, pages) -> None:
    html = pages.feed([pages.item("a1")])
    identity = fake_identity([pages.challenge, html])
    fetcher, sleeps = _fetcher(fetcher_settings, identity)

    response = fetcher.fetch(URL)

    assert response.text == html
    assert response.attempts == 2
    assert response.title == "Results"
    assert sleeps == [2.0]
    assert identity.rebuilds == [1]


def test_transport_errors_raise_fetch_failure(fetcher_settings, fake_identity) -> None:
    identity = fake_identity([httpx.ConnectError("connection refused")] * 3)
    fetcher, sleeps = _fetcher(fetcher_settings, identity)

    with pytest.raises(FetchFailure) as excinfo:
        fetcher.fetch(URL)

    assert type(excinfo.value) is FetchFailure
    assert excinfo.value.attempts == 3
    assert "connection refused" in str(excinfo.value)
    assert sleeps == [2.0, 4.0]
    assert identity.rebuilds == []


def test_failure_kind_follows_last_attempt(fetcher_settings, fake_identity, pages) -> None:
    identity = fake_identity([pages.challenge, pages.challenge, httpx.ReadTimeout("slow")])
    fetcher, _ = _fetcher(fetcher_settings, identity)
    with pytest.raises(FetchFailure) as excinfo:
        fetcher.fetch(URL)
    assert not isinstance(excinfo.value, ChallengeFailure)

    identity = fake_identity([httpx.ReadTimeout("slow"), (503, "unavailable"), pages.challenge])
    fetcher, _ = _fetcher(fetcher_settings, identity)
    with pytest.raises(ChallengeFailure):
        fetcher.fetch(URL)


def test_server_error_is_retried(fetcher_settings, fake_identity) -> None:
    identity = fake_identity([(503, "busy"), (200, "<html><title>ok</title></html>")])
    fetcher, sleeps = _fetcher(fetcher_settings, identity)

    response = fetcher.fetch(URL)

    assert response.status_code == 200
    assert response.attempts == 2
    assert sleeps == [2.0]


def test_single_attempt_does_not_sleep(fake_identity, pages) -> None:
    settings = FetcherSettings(max_attempts=1)
    identity = fake_identity([pages.challenge])
    fetcher, sleeps = _fetcher(settings, identity)

    with pytest.raises(ChallengeFailure) as excinfo:
        fetcher.fetch(URL)

    assert excinfo.value.attempts == 1
    assert sleeps == []


def test_challenge_marker_in_body_is_detected(fake_identity) -> None:
    settings = FetcherSettings(max_attempts=2, challenge_markers=["px-captcha"])
    identity = fake_identity(['<div id="px-captcha"></div>', "<html><title>fine</title></html>"])
    fetcher, _ = _fetcher(settings, identity)

    response = fetcher.fetch(URL)

    assert response.attempts == 2
    assert identity.rebuilds == [1]


def test_fetch_passes_headers_and_timeout(fetcher_settings, fake_identity) -> None:
    identity = fake_identity(["<html></html>"])
    fetcher, _ = _fetcher(fetcher_settings, identity)

    fetcher.fetch(URL)

    url, timeout, headers = identity.loads[0]
    assert url == URL
    assert timeout == fetcher_settings.navigation_timeout
    assert "Accept-Language" in headers


def test_fetcher_close_releases_identity(fetcher_settings, fake_identity) -> None:
    identity = fake_identity([])
    fetcher, _ = _fetcher(fetcher_settings, identity)
    fetcher.close()
    assert identity.closed


def test_http_identity_rotates_user_agent_on_rebuild(fetcher_settings) -> None:
    seen_agents: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_agents.append(request.headers["User-Agent"])
        return httpx.Response(200, text="<html><title>ok</title></html>")

    identity = HttpIdentity(
        fetcher_settings,
        UserAgentPool(["agent-one", "agent-two"]),
        transport=httpx.MockTransport(handler),
    )

    first = identity.load(URL)
    assert first.generation == 1
    assert identity.state is IdentityState.READY

    assert identity.rebuild(first.generation) is True
    assert identity.state is IdentityState.ABSENT
    # a second report for the same generation is a no-op
    assert identity.rebuild(first.generation) is False

    second = identity.load(URL)
    assert second.generation == 2
    assert identity.rebuild(first.generation) is False
    assert seen_agents[0] != seen_agents[1]
    identity.close()
    assert identity.state is IdentityState.ABSENT


def test_fetcher_over_http_identity_recovers_from_challenge(fetcher_settings, pages) -> None:
    responses = [pages.challenge, pages.feed([pages.item("a1")])]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=responses.pop(0))

    identity = HttpIdentity(fetcher_settings, transport=httpx.MockTransport(handler))
    fetcher, sleeps = _fetcher(fetcher_settings, identity)

    response = fetcher.fetch(URL)
    fetcher.close()

    assert response.attempts == 2
    assert identity.generation == 2
    assert sleeps == [2.0]

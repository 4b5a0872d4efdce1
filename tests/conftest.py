"""Shared fixtures: settings, a throwaway store, fake collaborators and page builders."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from listing_watch.config import (
    ConfigLocator,
    ConfigRepository,
    FetcherSettings,
    GlobalConfig,
    TrackedTarget,
)
from listing_watch.engine.identity import IdentityState, PageSnapshot
from listing_watch.errors import DeliveryFailure
from listing_watch.infra import SQLiteListingStore, SQLiteManager
from listing_watch.records import ListingRecord


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep config, database and log files of every test inside its tmp dir."""

    monkeypatch.setenv("LISTING_WATCH_HOME", str(tmp_path))
    for name in ("TELEGRAM_API_TOKEN", "API_TOKEN", "TELEGRAM_CHAT_ID", "CHAT_ID"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def fetcher_settings() -> FetcherSettings:
    return FetcherSettings(max_attempts=3, backoff_base=2.0, delay_range=(0.0, 0.0))


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(database_path=tmp_path / "listings.db")


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


@pytest.fixture
def listing_store(tmp_path: Path) -> Iterable[SQLiteListingStore]:
    manager = SQLiteManager()
    store = SQLiteListingStore(manager, tmp_path / "listings.db")
    yield store
    manager.close_all()


@pytest.fixture
def make_record() -> Callable[..., ListingRecord]:
    def _builder(token: str, price: float | None = 1_000_000, area: float | None = 50, **extra: Any) -> ListingRecord:
        extra.setdefault("link", f"https://www.yad2.co.il/realestate/item/{token}")
        return ListingRecord(token=token, price=price, area=area, **extra)

    return _builder


@pytest.fixture
def make_target() -> Callable[..., TrackedTarget]:
    def _builder(**overrides: Any) -> TrackedTarget:
        base: dict[str, Any] = {
            "id": 1,
            "name": "Tel Aviv 3 rooms",
            "url": "https://www.yad2.co.il/realestate/forsale?city=5000",
        }
        base.update(overrides)
        return TrackedTarget(**base)

    return _builder


def listing_item(token: Any, price: Any = 2_000_000, sqm: Any = 80, **extra: Any) -> dict[str, Any]:
    item: dict[str, Any] = {
        "token": token,
        "price": price,
        "adType": "private",
        "address": {
            "street": {"text": "Dizengoff"},
            "house": {"number": 10},
            "neighborhood": {"text": "Center"},
            "city": {"text": "Tel Aviv"},
        },
        "additionalDetails": {
            "squareMeter": sqm,
            "roomsCount": 3,
            "property": {"text": "Apartment"},
        },
    }
    item.update(extra)
    return item


def next_data_page(queries: list[Any], *, script_id: str = "__NEXT_DATA__") -> str:
    payload = {"props": {"pageProps": {"dehydratedState": {"queries": queries}}}}
    return (
        "<html><head><title>Results</title></head><body>"
        f'<script id="{script_id}" type="application/json">{json.dumps(payload)}</script>'
        "</body></html>"
    )


def feed_page(items: list[dict[str, Any]]) -> str:
    """Results page with one cached query holding ``items`` as its first page."""

    return next_data_page([{"state": {"data": {"pages": [{"data": items}]}}}])


CHALLENGE_PAGE = "<html><head><title>ShieldSquare Captcha</title></head><body>verify</body></html>"


class FakeIdentity:
    """Identity that replays scripted pages (or exceptions) and records rebuilds."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.state = IdentityState.ABSENT
        self.generation = 0
        self.loads: list[tuple[str, float | None, dict[str, str] | None]] = []
        self.rebuilds: list[int | None] = []
        self.closed = False

    def load(self, url: str, timeout: float | None = None, headers: dict[str, str] | None = None) -> PageSnapshot:
        if self.state is not IdentityState.READY:
            self.generation += 1
            self.state = IdentityState.READY
        self.loads.append((url, timeout, headers))
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        status, text = step if isinstance(step, tuple) else (200, step)
        return PageSnapshot(url=url, status_code=status, text=text, generation=self.generation)

    def rebuild(self, generation: int | None = None) -> bool:
        self.rebuilds.append(generation)
        if generation is not None and generation != self.generation:
            return False
        self.state = IdentityState.ABSENT
        return True

    def close(self) -> None:
        self.closed = True


class RecordingChannel:
    """Message channel collecting sends; optionally fails from a given call on."""

    def __init__(self, fail_from: int | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_from = fail_from

    def send(self, destination: str, text: str) -> str:
        if self.fail_from is not None and len(self.sent) >= self.fail_from:
            raise DeliveryFailure("Telegram rejected message: Bad Request: chat not found")
        self.sent.append((destination, text))
        return "sent"


@pytest.fixture
def pages():
    """Page builders: ``pages.item``, ``pages.feed``, ``pages.next_data`` and ``pages.challenge``."""

    class _Pages:
        item = staticmethod(listing_item)
        feed = staticmethod(feed_page)
        next_data = staticmethod(next_data_page)
        challenge = CHALLENGE_PAGE

    return _Pages


@pytest.fixture
def fake_identity() -> Callable[[list[Any]], FakeIdentity]:
    return FakeIdentity


@pytest.fixture
def recording_channel() -> Callable[..., RecordingChannel]:
    return RecordingChannel

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from listing_watch.config import TelegramConfig
from listing_watch.errors import DeliveryFailure
from listing_watch.notify import TelegramChannel


def _channel(handler, sleeps: list[float] | None = None) -> TelegramChannel:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TelegramChannel(
        "123:secret",
        client=client,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


def test_send_posts_to_bot_api() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    assert _channel(handler).send("-100", "hello") == "sent"

    (request,) = captured
    assert request.method == "POST"
    assert str(request.url) == "https://api.telegram.org/bot123:secret/sendMessage"
    form = parse_qs(request.content.decode())
    assert form["chat_id"] == ["-100"]
    assert form["text"] == ["hello"]


def test_rejection_raises_delivery_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    with pytest.raises(DeliveryFailure) as excinfo:
        _channel(handler).send("-100", "hello")
    assert "chat not found" in str(excinfo.value)
    assert excinfo.value.kind == "delivery"


def test_ok_false_on_200_is_a_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False})

    with pytest.raises(DeliveryFailure):
        _channel(handler).send("-100", "hello")


def test_rate_limit_is_retried_once() -> None:
    calls: list[int] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(
                429, json={"ok": False, "parameters": {"retry_after": 3}, "description": "Too Many Requests"}
            )
        return httpx.Response(200, json={"ok": True})

    assert _channel(handler, sleeps).send("-100", "hello") == "sent"
    assert len(calls) == 2
    assert sleeps == [3.0]


def test_transport_error_hides_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

    with pytest.raises(DeliveryFailure) as excinfo:
        _channel(handler).send("-100", "hello")
    assert "123:secret" not in str(excinfo.value)


def test_overlong_message_rejected_before_call() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("must not be called")

    with pytest.raises(DeliveryFailure):
        _channel(handler).send("-100", "x" * 4097)


def test_requires_token() -> None:
    with pytest.raises(ValueError):
        TelegramChannel("")
    channel = TelegramChannel.from_config(TelegramConfig(api_token="1:a", chat_id="5"))
    assert channel.base_url.endswith("/bot1:a")
    channel.close()

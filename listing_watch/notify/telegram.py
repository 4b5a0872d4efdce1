"""Telegram Bot API message channel."""

from __future__ import annotations

import time
from typing import Any, Callable, Protocol

import httpx
import structlog

from ..config import TelegramConfig
from ..errors import DeliveryFailure

TELEGRAM_HARD_LIMIT = 4096


class MessageChannel(Protocol):
    """Send one text message to a destination; failures raise :class:`DeliveryFailure`."""

    def send(self, destination: str, text: str) -> str:
        ...


class TelegramChannel:
    """Deliver plain-text messages through ``sendMessage``."""

    def __init__(
        self,
        api_token: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_token:
            raise ValueError("Telegram channel requires an API token")
        self.api_token = api_token
        self.base_url = f"{api_base.rstrip('/')}/bot{api_token}"
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self.logger = logger or structlog.get_logger("listing_watch.telegram")
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: TelegramConfig, **kwargs: Any) -> "TelegramChannel":
        return cls(config.api_token, api_base=config.api_base, timeout=config.timeout, **kwargs)

    def send(self, destination: str, text: str) -> str:
        if len(text) > TELEGRAM_HARD_LIMIT:
            raise DeliveryFailure(f"Message of {len(text)} characters exceeds the Telegram limit")
        payload = {"chat_id": destination, "text": text, "disable_web_page_preview": "true"}
        response = self._post("sendMessage", payload)
        if response.status_code == 429:
            # honour one flood-control hint, then give up
            retry_after = self._retry_after(response)
            self.logger.warning("telegram_rate_limited", retry_after=retry_after)
            self._sleep(retry_after)
            response = self._post("sendMessage", payload)
        body = self._json(response)
        if response.status_code >= 400 or not body.get("ok", False):
            description = body.get("description") or f"HTTP {response.status_code}"
            raise DeliveryFailure(f"Telegram rejected message: {description}")
        return "sent"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    def _post(self, method: str, payload: dict[str, str]) -> httpx.Response:
        try:
            return self._client.post(f"{self.base_url}/{method}", data=payload, timeout=self.timeout)
        except httpx.HTTPError as exc:
            message = str(exc).replace(self.api_token, "***")
            raise DeliveryFailure(f"Telegram request failed: {message}") from None

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _retry_after(self, response: httpx.Response) -> float:
        parameters = self._json(response).get("parameters") or {}
        try:
            return min(float(parameters.get("retry_after", 1)), 30.0)
        except (TypeError, ValueError):
            return 1.0


__all__ = ["MessageChannel", "TELEGRAM_HARD_LIMIT", "TelegramChannel"]

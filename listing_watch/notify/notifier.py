"""Threshold filtering, rendering and size-bounded dispatch of new listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

import structlog

from ..config import TelegramConfig, TrackedTarget
from ..errors import DeliveryFailure
from ..records import ListingRecord
from .telegram import MessageChannel

DEFAULT_MAX_LENGTH = 3500
DEFAULT_SEPARATOR = "\n----------\n"

STATUS_SENT = "sent"
STATUS_SKIPPED = "skipped"
STATUS_DISABLED = "disabled"


def passes_threshold(record: ListingRecord, threshold: float | None) -> bool:
    """Inclusive bound; a listing whose price per m² is unknown always passes."""

    if threshold is None:
        return True
    value = record.price_per_area
    if value is None:
        return True
    return value <= threshold


def _money(value: float, symbol: str) -> str:
    return f"{symbol}{value:,.0f}"


def render_listing(record: ListingRecord, currency_symbol: str = "₪") -> str:
    price = _money(record.price, currency_symbol) if record.price is not None else "N/A"
    headline = f"{price} - {record.address}" if record.address else price
    details = [record.property_type]
    if record.rooms is not None:
        details.append(f"{record.rooms:g} rooms")
    if record.area is not None:
        details.append(f"{record.area:g}m²")
    if record.price_per_area is not None:
        details.append(f"{_money(record.price_per_area, currency_symbol)}/m²")
    detail_line = " | ".join(part for part in details if part) or "-"
    return f"{headline}\n{detail_line}\n{record.link}"


def batch_blocks(
    blocks: Iterable[str],
    max_length: int = DEFAULT_MAX_LENGTH,
    separator: str = DEFAULT_SEPARATOR,
) -> list[str]:
    """Greedily join blocks with ``separator``; no batch is longer than ``max_length``.

    A single block above the limit is cut down to it.
    """

    batches: list[str] = []
    current = ""
    for block in blocks:
        if len(block) > max_length:
            block = block[: max_length - 1] + "…"
        if not current:
            current = block
            continue
        candidate = f"{current}{separator}{block}"
        if len(candidate) > max_length:
            batches.append(current)
            current = block
        else:
            current = candidate
    if current:
        batches.append(current)
    return batches


@dataclass
class NotificationResult:
    status: str
    notified: list[ListingRecord] = field(default_factory=list)
    messages_sent: int = 0


class Notifier:
    """Decide which new listings to announce and push them through the channel."""

    def __init__(
        self,
        channel: MessageChannel | None,
        destination: str = "",
        *,
        max_length: int = DEFAULT_MAX_LENGTH,
        separator: str = DEFAULT_SEPARATOR,
        currency_symbol: str = "₪",
        notify_on_failure: bool = False,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.channel = channel
        self.destination = destination
        self.max_length = max_length
        self.separator = separator
        self.currency_symbol = currency_symbol
        self.notify_on_failure = notify_on_failure
        self.logger = logger or structlog.get_logger("listing_watch.notifier")

    @classmethod
    def from_config(
        cls,
        config: TelegramConfig,
        channel: MessageChannel | None,
        logger: structlog.BoundLogger | None = None,
    ) -> "Notifier":
        return cls(
            channel if config.enabled else None,
            config.chat_id,
            max_length=config.max_message_length,
            separator=config.separator,
            currency_symbol=config.currency_symbol,
            notify_on_failure=config.notify_on_failure,
            logger=logger,
        )

    @property
    def enabled(self) -> bool:
        return self.channel is not None and bool(self.destination)

    def select(self, records: Sequence[ListingRecord], threshold: float | None) -> list[ListingRecord]:
        return [record for record in records if passes_threshold(record, threshold)]

    def render(self, records: Sequence[ListingRecord]) -> list[str]:
        blocks = [render_listing(record, self.currency_symbol) for record in records]
        return batch_blocks(blocks, self.max_length, self.separator)

    def notify(
        self,
        target: TrackedTarget,
        new_records: Sequence[ListingRecord],
        *,
        first_scan: bool = False,
    ) -> NotificationResult:
        if first_scan:
            self.logger.info("first_scan_suppressed", target=target.name, new=len(new_records))
            return NotificationResult(STATUS_SKIPPED)
        selected = self.select(new_records, target.max_price_per_sqm)
        if not selected:
            return NotificationResult(STATUS_SKIPPED)
        if not self.enabled:
            self.logger.info("notification_disabled", target=target.name, listings=len(selected))
            return NotificationResult(STATUS_DISABLED, selected)

        messages = [f'🏠 {len(selected)} new listing(s) for "{target.name}":', *self.render(selected)]
        sent = 0
        try:
            for message in messages:
                self.channel.send(self.destination, message)
                sent += 1
        except DeliveryFailure as exc:
            self.logger.error(
                "notification_failed", target=target.name, error=str(exc), messages_sent=sent
            )
            return NotificationResult(f"error: {exc}", selected, sent)
        self.logger.info("notification_sent", target=target.name, listings=len(selected), messages=sent)
        return NotificationResult(STATUS_SENT, selected, sent)

    def alert_failure(self, target: TrackedTarget, reason: str) -> bool:
        """Best-effort alert that a target's scan failed; delivery errors are only logged."""

        if not (self.notify_on_failure and self.enabled):
            return False
        text = f'Scan failed for "{target.name}": {reason}'
        if len(text) > self.max_length:
            text = text[: self.max_length - 1] + "…"
        try:
            self.channel.send(self.destination, text)
        except DeliveryFailure as exc:
            self.logger.warning("failure_alert_not_delivered", target=target.name, error=str(exc))
            return False
        return True


__all__ = [
    "NotificationResult",
    "Notifier",
    "STATUS_DISABLED",
    "STATUS_SENT",
    "STATUS_SKIPPED",
    "batch_blocks",
    "passes_threshold",
    "render_listing",
]

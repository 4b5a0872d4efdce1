"""Outbound notifications."""

from .notifier import NotificationResult, Notifier, batch_blocks, passes_threshold, render_listing
from .telegram import MessageChannel, TelegramChannel

__all__ = [
    "MessageChannel",
    "NotificationResult",
    "Notifier",
    "TelegramChannel",
    "batch_blocks",
    "passes_threshold",
    "render_listing",
]

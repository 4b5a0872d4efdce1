"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ExtractorSettings,
    FetcherSettings,
    GlobalConfig,
    ProxyPoolConfig,
    ScheduleConfig,
    ScheduleType,
    TelegramConfig,
    TrackedTarget,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "ExtractorSettings",
    "FetcherSettings",
    "GlobalConfig",
    "ProxyPoolConfig",
    "ScheduleConfig",
    "ScheduleType",
    "TelegramConfig",
    "TrackedTarget",
]

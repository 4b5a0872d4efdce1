"""Pydantic models used across Listing Watch configuration flow."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36",
]


class ScheduleType(str, Enum):
    """Scheduler modes for the periodic scan."""

    CRON = "cron"
    INTERVAL = "interval"


class ScheduleConfig(BaseModel):
    """When the all-targets scan cycle should run."""

    type: ScheduleType = Field(default=ScheduleType.CRON)
    value: Any = Field(
        default="*/15 * * * *",
        description="Cron expression or interval seconds, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        return self


class FetcherSettings(BaseModel):
    """Retry, backoff and identity options governing the anti-bot strategy chain."""

    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_mode: Literal["exponential", "linear"] = "exponential"
    # extra random delay added on top of the backoff, [low, high] seconds
    delay_range: tuple[float, float] = (0.0, 0.0)
    navigation_timeout: float = 30.0
    challenge_titles: list[str] = Field(default_factory=lambda: ["ShieldSquare Captcha"])
    challenge_markers: list[str] = Field(default_factory=list)
    user_agent_rotation: bool = True
    use_headless_browser: bool = False
    headless_mode: bool = True
    viewport_size: tuple[int, int] = (1920, 1080)
    locale: str = "he-IL"
    timezone_id: str = "Asia/Jerusalem"
    extra_headers: dict[str, str] = Field(
        default_factory=lambda: {"Accept-Language": "he-IL,he;q=0.9,en-US;q=0.8,en;q=0.7"}
    )

    @field_validator("delay_range", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any) -> tuple[float, float]:
        if value in (None, ""):
            return (0.0, 0.0)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = float(value[0]), float(value[1])
            if low < 0 or high < 0:
                raise ValueError("Delay range values must be non-negative")
            if high < low:
                raise ValueError("Delay range upper bound must be >= lower bound")
            return (low, high)
        raise ValueError("Delay range expects a two-item list or tuple")

    @model_validator(mode="after")
    def _validate_bounds(self) -> "FetcherSettings":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base <= 0:
            raise ValueError("backoff_base must be > 0")
        if self.navigation_timeout <= 0:
            raise ValueError("navigation_timeout must be > 0")
        return self


class ExtractorSettings(BaseModel):
    """Where the embedded payload lives and how detail links are built."""

    data_script_id: str = "__NEXT_DATA__"
    detail_url_template: str = "https://www.yad2.co.il/realestate/item/{token}"

    @field_validator("detail_url_template")
    @classmethod
    def _require_token_slot(cls, value: str) -> str:
        if "{token}" not in value:
            raise ValueError("detail_url_template must contain '{token}'")
        return value


class TelegramConfig(BaseModel):
    """Outbound Telegram channel settings."""

    api_token: str = ""
    chat_id: str = ""
    api_base: str = "https://api.telegram.org"
    timeout: float = 10.0
    max_message_length: int = 3500
    separator: str = "\n----------\n"
    currency_symbol: str = "₪"
    notify_on_failure: bool = False

    @field_validator("chat_id", mode="before")
    @classmethod
    def _coerce_chat_id(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _validate_length(self) -> "TelegramConfig":
        # Telegram rejects messages above 4096 characters
        if not 1 <= self.max_message_length <= 4096:
            raise ValueError("max_message_length must be between 1 and 4096")
        return self

    @property
    def enabled(self) -> bool:
        return bool(self.api_token and self.chat_id)


class ProxyPoolConfig(BaseModel):
    """Proxy pool options."""

    enabled: bool = False
    source: str | None = None
    proxies: list[str] = Field(default_factory=list)


class GlobalConfig(BaseModel):
    """Global controls shared across targets."""

    database_path: Path = Field(default=Path("data/listings.db"))
    scan_workers: int = 1
    proxy_pool: ProxyPoolConfig = Field(default_factory=ProxyPoolConfig)
    user_agent_list: list[str] | Path | None = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _apply_user_agents(self) -> "GlobalConfig":
        if self.scan_workers < 1:
            raise ValueError("scan_workers must be >= 1")
        if isinstance(self.user_agent_list, Path):
            if not self.user_agent_list.exists():
                raise ValueError(f"UA file not found: {self.user_agent_list}")
            content = self.user_agent_list.read_text(encoding="utf-8").splitlines()
            self.user_agent_list = [line.strip() for line in content if line.strip()]
        return self

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the listing database path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


class TrackedTarget(BaseModel):
    """A tracked search: name, results-page URL and optional alert threshold."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    url: str
    max_price_per_sqm: float | None = None
    created_at: datetime | None = None

    @field_validator("max_price_per_sqm", mode="before")
    @classmethod
    def _blank_threshold(cls, value: Any) -> Any:
        if value in ("", 0):
            return None
        return value

    @model_validator(mode="after")
    def _validate_target(self) -> "TrackedTarget":
        if not self.name.strip():
            raise ValueError("name cannot be empty")
        if not self.url.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        if self.max_price_per_sqm is not None and self.max_price_per_sqm < 0:
            raise ValueError("max_price_per_sqm must be >= 0")
        return self


__all__ = [
    "DEFAULT_USER_AGENTS",
    "ExtractorSettings",
    "FetcherSettings",
    "GlobalConfig",
    "ProxyPoolConfig",
    "ScheduleConfig",
    "ScheduleType",
    "TelegramConfig",
    "TrackedTarget",
]

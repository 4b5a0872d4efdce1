"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Iterable

import structlog

_LOGGING_INITIALISED = False


def log_directory() -> Path:
    env_root = os.environ.get("LISTING_WATCH_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _slug(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-") or "target"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = log_directory()
    error_log = log_dir / "error.log"
    watch_log = log_dir / "watch.log"
    (log_dir / "targets").mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    watch_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "watch_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(watch_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                },
                "loggers": {
                    "listing_watch": {
                        "handlers": ["console", "watch_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("listing_watch")


def target_logger(target_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one tracked target, with its own log file."""

    configure_logging(verbose)
    slug = _slug(target_name)
    target_log_path = target_log_file(target_name)
    target_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"listing_watch.target.{slug}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(target_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(target_log_path, encoding="utf-8")
        global_logger = logging.getLogger("listing_watch")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(target=target_name)


def target_log_file(target_name: str) -> Path:
    return log_directory() / "targets" / f"{_slug(target_name)}.log"


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_logs() -> Iterable[Path]:
    """Yield the global and per-target log files."""

    log_dir = log_directory()
    if not log_dir.exists():
        return []
    return sorted(list(log_dir.glob("*.log")) + list((log_dir / "targets").glob("*.log")))


__all__ = [
    "available_logs",
    "configure_logging",
    "log_directory",
    "tail_log",
    "target_log_file",
    "target_logger",
]

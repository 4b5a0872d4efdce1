"""Failure taxonomy for the scan pipeline."""

from __future__ import annotations


class ScanError(Exception):
    """Base class for failures that end a single target's scan."""

    kind = "scan"


class FetchFailure(ScanError):
    """Transport or navigation could not complete."""

    kind = "fetch"

    def __init__(self, message: str, *, url: str | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class ChallengeFailure(FetchFailure):
    """Every attempt was answered with a bot-detection page."""

    kind = "challenge"


class ParseFailure(ScanError):
    """The embedded data block is missing or is not valid JSON."""

    kind = "parse"


class SchemaFailure(ParseFailure):
    """The data block parsed but holds nothing resembling a listing collection."""

    kind = "schema"


class DeliveryFailure(ScanError):
    """The messaging channel rejected or failed a send."""

    kind = "delivery"


class StorageFailure(ScanError):
    """The persistence collaborator failed a read or write."""

    kind = "storage"


__all__ = [
    "ChallengeFailure",
    "DeliveryFailure",
    "FetchFailure",
    "ParseFailure",
    "ScanError",
    "SchemaFailure",
    "StorageFailure",
]

"""Engine components orchestrating fetch → extract → partition → stats."""

from .dedup import Partition, partition
from .extractor import Extractor
from .fetcher import FetchResponse, Fetcher
from .identity import BrowserIdentity, HttpIdentity, IdentityState, PageSnapshot, build_identity
from .stats import compute_stats
from .thread_pool import ThreadPoolManager

__all__ = [
    "BrowserIdentity",
    "Extractor",
    "FetchResponse",
    "Fetcher",
    "HttpIdentity",
    "IdentityState",
    "PageSnapshot",
    "Partition",
    "ThreadPoolManager",
    "build_identity",
    "compute_stats",
    "partition",
]

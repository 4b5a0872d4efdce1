"""Infra layer utilities (storage, proxy, UA pools)."""

from .proxy_pool import ProxyPool
from .repository import ListingStore, SQLiteListingStore
from .storage import SQLiteManager
from .ua_pool import UserAgentPool

__all__ = ["ListingStore", "ProxyPool", "SQLiteListingStore", "SQLiteManager", "UserAgentPool"]

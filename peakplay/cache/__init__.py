"""
Daily-cutover caching: freshness policy, stores, request coalescing and the
refresh orchestrator.
"""
from .core import CacheEntry, CacheStatus, PayloadCodec, RefreshState
from .freshness import FreshnessPolicy, utc_now, format_time_until
from .stores import CacheStore, MemoryCacheStore, FileCacheStore
from .sql_store import SqlCacheStore
from .coalescer import RequestCoalescer
from .orchestrator import Fetcher, ReadResult, RefreshOrchestrator

__all__ = [
    # Core types
    "CacheEntry",
    "CacheStatus",
    "PayloadCodec",
    "RefreshState",
    # Policy
    "FreshnessPolicy",
    "utc_now",
    "format_time_until",
    # Stores
    "CacheStore",
    "MemoryCacheStore",
    "FileCacheStore",
    "SqlCacheStore",
    # Coalescing
    "RequestCoalescer",
    # Orchestration
    "Fetcher",
    "ReadResult",
    "RefreshOrchestrator",
]

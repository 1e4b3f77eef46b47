# =============================================================================
# indalo_core/offline/cache_manager.py
# Timestamped Key-Value Cache for Offline Data
# =============================================================================
"""
OfflineCache - Age-limited key-value cache over the local store.

Each entry is persisted as JSON text:

    {"data": <value>, "timestamp": <epoch milliseconds>}

Writes are best-effort: serialization and storage failures are logged and
never reach the caller. Reads evict entries older than the caller's max age.
"""

from __future__ import annotations
import json
import time
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, TypeVar
import logging

import numpy as np
import pandas as pd

from indalo_core.errors import CacheStorageError, error_boundary
from indalo_core.offline.local_store import LocalStore, get_local_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_AGE_MS = 3_600_000  # 1 hour
DEFAULT_PRESERVE_KEYS = frozenset({"theme", "user"})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _to_json_native(obj: Any) -> Any:
    """json.dumps fallback for numpy, pandas and datetime values."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, pd.DataFrame):
        return json.loads(obj.to_json(orient="records", date_format="iso"))
    elif isinstance(obj, pd.Series):
        return json.loads(obj.to_json(orient="values", date_format="iso"))
    elif isinstance(obj, (datetime, date, pd.Timestamp)):
        return obj.isoformat()
    elif isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class OfflineCache:
    """
    Timestamped key-value cache used for offline reads.

    Usage:
        cache = OfflineCache()
        cache.put("products", products)
        products = cache.get("products", max_age_ms=15 * 60 * 1000)
        cache.clear()  # keeps "theme" and "user"
    """

    def __init__(
        self,
        store: Optional[LocalStore] = None,
        clock: Callable[[], int] = now_ms,
        preserve_keys: Iterable[str] = DEFAULT_PRESERVE_KEYS,
    ):
        """
        Args:
            store: Backing store (defaults to the global local store)
            clock: Returns the current time in epoch milliseconds
            preserve_keys: Keys that survive a full clear()
        """
        self._store = store
        self._clock = clock
        self.preserve_keys = frozenset(preserve_keys)

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            self._store = get_local_store()
        return self._store

    @error_boundary(default_return=False)
    def put(self, key: str, value: Any) -> bool:
        """
        Store a value under a key, stamped with the current time.

        Returns:
            True if the entry was written, False on any failure
        """
        try:
            payload = json.dumps(
                {"data": value, "timestamp": self._clock()},
                default=_to_json_native,
            )
        except (TypeError, ValueError) as e:
            raise CacheStorageError(f"Cannot serialize value: {e}", key=key) from e

        self.store.kv_set(key, payload)
        logger.debug(f"Cached '{key}'")
        return True

    def get(self, key: str, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> Optional[Any]:
        """
        Read a cached value.

        Args:
            key: Cache key
            max_age_ms: Entries older than this are evicted and treated as absent

        Returns:
            The stored value, or None when absent, unreadable or stale
        """
        try:
            raw = self.store.kv_get(key)
        except Exception as e:
            logger.error(f"Error reading cached data '{key}': {e}")
            return None

        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            data = entry["data"]
            timestamp = float(entry["timestamp"])
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"Error retrieving cached data '{key}': {e}")
            return None

        age = self._clock() - timestamp
        if age > max_age_ms:
            logger.debug(f"Evicting stale cache entry '{key}' (age {age:.0f}ms)")
            self.remove(key)
            return None

        return data

    @error_boundary(default_return=False)
    def remove(self, key: str) -> bool:
        """Delete a single entry."""
        return self.store.kv_delete(key)

    @error_boundary(default_return=0)
    def clear(self, key: Optional[str] = None, preserve_keys: Optional[Iterable[str]] = None) -> int:
        """
        Clear one entry, or every entry except the preserved keys.

        Args:
            key: Remove only this entry
            preserve_keys: Keys kept by a full clear (defaults to the cache's own)

        Returns:
            Number of entries removed
        """
        if key is not None:
            return 1 if self.store.kv_delete(key) else 0

        keep = self.preserve_keys if preserve_keys is None else frozenset(preserve_keys)
        removed = 0
        for existing in self.store.kv_keys():
            if existing not in keep and self.store.kv_delete(existing):
                removed += 1

        logger.info(f"Cleared {removed} cached entries (preserved: {sorted(keep)})")
        return removed


# Singleton accessor
_offline_cache: Optional[OfflineCache] = None


def get_offline_cache() -> OfflineCache:
    """Get the global OfflineCache instance."""
    global _offline_cache
    if _offline_cache is None:
        _offline_cache = OfflineCache()
    return _offline_cache


# Convenience functions
def cache_data(key: str, data: Any) -> bool:
    """Save data in the offline cache."""
    return get_offline_cache().put(key, data)


def get_cached_data(key: str, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> Optional[Any]:
    """Get cached data, or None if missing or older than max_age_ms."""
    return get_offline_cache().get(key, max_age_ms)


def clear_cache(key: Optional[str] = None) -> int:
    """Clear one entry, or everything except the preserved keys."""
    return get_offline_cache().clear(key)

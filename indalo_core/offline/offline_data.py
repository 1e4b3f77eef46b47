# =============================================================================
# indalo_core/offline/offline_data.py
# Offline-Aware Data Resource
# =============================================================================
"""
OfflineResource - "network first, cache as fallback" access to one named value.

Load policy:
    online   -> call fetch_fn, write the result through to the cache
    failure  -> serve the cached value with a warning, else report the error
    offline  -> skip the network and read the cache directly

Connectivity transitions:
    became online  -> clear is_offline and reload
    became offline -> set is_offline, keep whatever data is held

Results of loads started before unmount() or rebind() are discarded. The
fetch itself is not interrupted; request timeouts belong to the fetcher.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, TypeVar
import logging

from indalo_core.errors import ApiRequestError, OfflineUnavailableError
from indalo_core.offline.cache_manager import DEFAULT_MAX_AGE_MS, OfflineCache, get_offline_cache
from indalo_core.offline.connection_manager import (
    ConnectionState,
    ConnectivityMonitor,
    get_connectivity_monitor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

OFFLINE_NO_CACHE_MESSAGE = "You are offline and there is no cached data available"
CACHE_FALLBACK_MESSAGE = "Using cached data due to fetch error"
GENERIC_FETCH_ERROR = "An error occurred"


class OfflineErrorKind(Enum):
    """Why a resource holds an error message."""
    OFFLINE_NO_CACHE = "offline_no_cache"
    FETCH_FAILED_WITH_CACHE_FALLBACK = "fetch_failed_with_cache_fallback"
    FETCH_FAILED_NO_FALLBACK = "fetch_failed_no_fallback"


@dataclass(frozen=True)
class OfflineDataState(Generic[T]):
    """Snapshot of a resource's data and status."""
    data: Optional[T] = None
    is_loading: bool = True
    error: Optional[str] = None
    is_offline: bool = False
    error_kind: Optional[OfflineErrorKind] = None

    @property
    def is_stale_fallback(self) -> bool:
        """Data is usable but came from the cache after a failed fetch."""
        return self.error_kind == OfflineErrorKind.FETCH_FAILED_WITH_CACHE_FALLBACK


Listener = Callable[[OfflineDataState], None]


class OfflineResource(Generic[T]):
    """
    One cached, connectivity-aware resource.

    Usage:
        with OfflineResource("products", connector.get_products) as products:
            state = products.state
            if state.data is not None:
                render(state.data)
            if state.error:
                warn(state.error)
    """

    def __init__(
        self,
        key: str,
        fetch_fn: Callable[[], T],
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        cache: Optional[OfflineCache] = None,
        monitor: Optional[ConnectivityMonitor] = None,
    ):
        """
        Args:
            key: Cache key for this resource
            fetch_fn: Zero-argument callable fetching fresh data
            max_age_ms: Oldest cached value that may be served
            cache: Key-value cache (global cache if None)
            monitor: Connectivity monitor (global monitor if None)
        """
        self.key = key
        self.fetch_fn = fetch_fn
        self.max_age_ms = max_age_ms
        self._cache = cache or get_offline_cache()
        self._monitor = monitor or get_connectivity_monitor()

        self._lock = threading.RLock()
        self._mounted = False
        self._generation = 0
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None
        self._listeners: List[Listener] = []
        self._state: OfflineDataState[T] = self._loading_state()

    def _loading_state(self) -> OfflineDataState[T]:
        return OfflineDataState(is_offline=not self._monitor.is_online)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> OfflineDataState[T]:
        """Current state snapshot."""
        return self._state

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with every new state.

        Returns:
            A function that removes the listener
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, generation: int, **changes: Any) -> bool:
        """
        Apply state changes if the load that produced them is still current.

        Returns:
            True if the state was updated
        """
        with self._lock:
            if not self._mounted or generation != self._generation:
                logger.debug(f"Dropping late update for '{self.key}'")
                return False
            self._state = replace(self._state, **changes)
            snapshot = self._state

        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Error in listener for '{self.key}': {e}")
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def mount(self) -> OfflineResource[T]:
        """Start listening for connectivity changes and run the first load."""
        with self._lock:
            if self._mounted:
                return self
            self._mounted = True
            self._generation += 1
            self._unsubscribe_monitor = self._monitor.subscribe(self._on_connectivity_change)

        self.load()
        return self

    def unmount(self) -> None:
        """Stop listening; results of loads still in flight are discarded."""
        with self._lock:
            if not self._mounted:
                return
            self._mounted = False
            self._generation += 1
            if self._unsubscribe_monitor is not None:
                self._unsubscribe_monitor()
                self._unsubscribe_monitor = None

    def rebind(
        self,
        key: Optional[str] = None,
        fetch_fn: Optional[Callable[[], T]] = None,
        max_age_ms: Optional[int] = None,
    ) -> bool:
        """
        Point the resource at new inputs, restarting from Loading if any changed.

        Returns:
            True if the resource was restarted
        """
        new_key = self.key if key is None else key
        new_fetch = self.fetch_fn if fetch_fn is None else fetch_fn
        new_max_age = self.max_age_ms if max_age_ms is None else max_age_ms

        if (new_key, new_fetch, new_max_age) == (self.key, self.fetch_fn, self.max_age_ms):
            return False

        was_mounted = self._mounted
        self.unmount()
        with self._lock:
            self.key = new_key
            self.fetch_fn = new_fetch
            self.max_age_ms = new_max_age
            self._state = self._loading_state()

        if was_mounted:
            self.mount()
        return True

    def __enter__(self) -> OfflineResource[T]:
        return self.mount()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.unmount()
        return False

    # =========================================================================
    # LOADING
    # =========================================================================

    def load(self) -> OfflineDataState[T]:
        """
        Run the load policy once.

        Returns:
            The state after the load (unchanged if the resource is not mounted)
        """
        with self._lock:
            if not self._mounted:
                return self._state
            generation = self._generation
            key, fetch_fn, max_age_ms = self.key, self.fetch_fn, self.max_age_ms

        self._commit(generation, is_loading=True)

        if not self._monitor.is_online:
            cached = self._cache.get(key, max_age_ms)
            if cached is not None:
                logger.debug(f"Offline: serving '{key}' from cache")
                self._commit(
                    generation, data=cached, is_loading=False, error=None,
                    error_kind=None, is_offline=True,
                )
            else:
                logger.info(f"Offline with no cached data for '{key}'")
                self._commit(
                    generation, data=None, is_loading=False,
                    error=OFFLINE_NO_CACHE_MESSAGE,
                    error_kind=OfflineErrorKind.OFFLINE_NO_CACHE, is_offline=True,
                )
            return self._state

        try:
            data = fetch_fn()
        except Exception as e:
            logger.warning(f"Error fetching '{key}': {e}")
            cached = self._cache.get(key, max_age_ms)
            offline = not self._monitor.is_online
            if cached is not None:
                self._commit(
                    generation, data=cached, is_loading=False,
                    error=CACHE_FALLBACK_MESSAGE,
                    error_kind=OfflineErrorKind.FETCH_FAILED_WITH_CACHE_FALLBACK,
                    is_offline=offline,
                )
            else:
                self._commit(
                    generation, data=None, is_loading=False,
                    error=str(e) or GENERIC_FETCH_ERROR,
                    error_kind=OfflineErrorKind.FETCH_FAILED_NO_FALLBACK,
                    is_offline=offline,
                )
            return self._state

        self._cache.put(key, data)
        self._commit(
            generation, data=data, is_loading=False, error=None,
            error_kind=None, is_offline=False,
        )
        return self._state

    def _on_connectivity_change(self, connection: ConnectionState) -> None:
        with self._lock:
            generation = self._generation

        if connection.is_online:
            if self._commit(generation, is_offline=False):
                self.load()
        else:
            self._commit(generation, is_offline=True)

    def require(self) -> T:
        """
        Return the held data or raise the error behind its absence.

        Raises:
            OfflineUnavailableError: offline and nothing cached
            ApiRequestError: the fetch failed and nothing cached
        """
        state = self._state
        if state.data is not None:
            return state.data
        if state.error_kind == OfflineErrorKind.OFFLINE_NO_CACHE:
            raise OfflineUnavailableError(state.error, key=self.key)
        raise ApiRequestError(state.error or f"No data loaded for '{self.key}'", endpoint=self.key)

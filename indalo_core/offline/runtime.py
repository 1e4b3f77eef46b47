# =============================================================================
# indalo_core/offline/runtime.py
# Offline Runtime - Single Entry Point for the Offline Layer
# =============================================================================
"""
OfflineRuntime - Wires the offline components together for the application.

Owns one of each:
- LocalStore           (SQLite file shared by both cache layers)
- OfflineCache         (key-value overlay used by offline resources)
- ConnectivityMonitor  (online/offline flag)
- ServiceWorker        (HTTP bucket + fetch policies, mounted on sessions)
- BackgroundSync       (replays queued scans when back online)

The HTTP bucket is authoritative for transport; the key-value cache is a
write-through overlay with its own age limit. The two are never
cross-invalidated. clear_all() empties both.

Resources shared across Streamlit sessions live here too, one per key, and
are released on shutdown().

Usage:
------
from indalo_core.offline import get_offline_runtime

runtime = get_offline_runtime()
session = runtime.session()
with runtime.resource("categories", lambda: session.get(url).json()) as res:
    print(res.state.data)
"""

from __future__ import annotations
import threading
from typing import Any, Callable, Dict, List, Optional
import logging

import requests
from requests.adapters import BaseAdapter

from indalo_core.config import OfflineSettings, load_settings
from indalo_core.logging import LogContext
from indalo_core.offline.cache_manager import OfflineCache
from indalo_core.offline.connection_manager import ConnectionState, ConnectivityMonitor
from indalo_core.offline.local_store import LocalStore
from indalo_core.offline.offline_data import OfflineResource
from indalo_core.offline.service_worker import SYNC_SCANS_TAG, ServiceWorker
from indalo_core.offline.sync_engine import BackgroundSync

logger = logging.getLogger(__name__)


class OfflineRuntime:
    """
    Facade over the offline layer.

    Components are created lazily from OfflineSettings, or injected (tests).
    """

    _instance: Optional[OfflineRuntime] = None
    _lock = threading.Lock()

    def __init__(
        self,
        settings: Optional[OfflineSettings] = None,
        scope_url: Optional[str] = None,
        store: Optional[LocalStore] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        network: Optional[BaseAdapter] = None,
    ):
        """
        Args:
            settings: Offline settings (loaded from secrets/env if None)
            scope_url: Origin served by the service worker (API base URL if None)
            store: Local store override
            monitor: Connectivity monitor override
            network: Transport used by the service worker for real requests
        """
        self.settings = settings or load_settings()
        self._scope_url = scope_url
        self._store = store
        self._cache: Optional[OfflineCache] = None
        self._monitor = monitor
        self._network = network
        self._worker: Optional[ServiceWorker] = None
        self._background_sync: Optional[BackgroundSync] = None
        self._callbacks: List[Callable[[bool], None]] = []
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None
        self._resources: Dict[str, OfflineResource] = {}
        self._resources_lock = threading.Lock()
        self._initialized = False

    @classmethod
    def get_instance(cls) -> OfflineRuntime:
        """Get or create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = OfflineRuntime()
        return cls._instance

    # =========================================================================
    # LAZY LOADING OF DEPENDENCIES
    # =========================================================================

    @property
    def scope_url(self) -> str:
        if self._scope_url is None:
            from indalo_core.api.config_manager import get_api_config_manager
            self._scope_url = get_api_config_manager().get_config().base_url
        return self._scope_url

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            self._store = LocalStore(self.settings.db_path)
            self._store.initialize()
        return self._store

    @property
    def cache(self) -> OfflineCache:
        if self._cache is None:
            self._cache = OfflineCache(store=self.store, preserve_keys=self.settings.preserve_keys)
        return self._cache

    @property
    def monitor(self) -> ConnectivityMonitor:
        if self._monitor is None:
            self._monitor = ConnectivityMonitor(
                api_url=self.scope_url,
                check_interval_online=self.settings.check_interval_online,
                check_interval_offline=self.settings.check_interval_offline,
                connection_timeout=self.settings.connection_timeout,
            )
        return self._monitor

    @property
    def worker(self) -> ServiceWorker:
        if self._worker is None:
            self._worker = ServiceWorker(
                self.scope_url,
                store=self.store,
                cache_name=self.settings.cache_name,
                precache_assets=self.settings.precache_assets,
                offline_page=self.settings.offline_page,
                network=self._network,
            )
        return self._worker

    @property
    def background_sync(self) -> BackgroundSync:
        if self._background_sync is None:
            self._background_sync = BackgroundSync(
                self.worker,
                self.monitor,
                sync_interval=self.settings.sync_interval,
            )
        return self._background_sync

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def is_offline(self) -> bool:
        return self.monitor.is_offline

    @property
    def pending_scan_count(self) -> int:
        """Number of scans waiting for background sync."""
        return self.store.get_pending_count()

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Start the offline layer.

        Args:
            start_monitoring: Start the connectivity probe and sync retry threads
        """
        if self._initialized:
            return

        with LogContext(logger, "Initializing offline runtime"):
            self.store.initialize()
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connection_change)
            self.background_sync.initialize()

            if start_monitoring:
                self.monitor.start()
                self.background_sync.start()

            # Scans left over from a previous run
            if self.store.get_pending_count() > 0:
                self.background_sync.register(SYNC_SCANS_TAG)

        self._initialized = True
        logger.info(f"OfflineRuntime initialized. Online: {self.is_online}")

    def shutdown(self) -> None:
        """Stop background threads and release the store connection."""
        try:
            for key in list(self._resources):
                self.release_resource(key)
            if self._background_sync is not None:
                self._background_sync.stop()
            if self._monitor is not None:
                self._monitor.stop()
            if self._unsubscribe_monitor is not None:
                self._unsubscribe_monitor()
                self._unsubscribe_monitor = None
            if self._store is not None:
                self._store.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
        self._initialized = False

    def _on_connection_change(self, state: ConnectionState) -> None:
        logger.info(f"Connection changed: online={state.is_online}")
        for callback in list(self._callbacks):
            try:
                callback(state.is_online)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def register_status_callback(self, callback: Callable[[bool], None]) -> None:
        """Register a callback for online/offline status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_status_callback(self, callback: Callable[[bool], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # =========================================================================
    # DATA ACCESS
    # =========================================================================

    def session(self, session: Optional[requests.Session] = None) -> requests.Session:
        """Return a requests session controlled by the service worker."""
        return self.worker.register(session or requests.Session())

    def resource(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        max_age_ms: Optional[int] = None,
    ) -> OfflineResource:
        """
        Create an (unmounted) offline resource bound to this runtime.

        Args:
            key: Cache key
            fetch_fn: Zero-argument fetcher
            max_age_ms: Oldest cached value served (settings default if None)
        """
        return OfflineResource(
            key,
            fetch_fn,
            max_age_ms=self.settings.default_max_age_ms if max_age_ms is None else max_age_ms,
            cache=self.cache,
            monitor=self.monitor,
        )

    def shared_resource(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        max_age_ms: Optional[int] = None,
    ) -> OfflineResource:
        """
        Get the mounted resource for a key, creating it on first use.

        One resource exists per key for the whole runtime, however many
        callers ask for it. A later call swaps in its fetch_fn without
        reloading; a different max_age_ms restarts the resource.

        Args:
            key: Cache key
            fetch_fn: Zero-argument fetcher
            max_age_ms: Oldest cached value served (settings default if None)
        """
        with self._resources_lock:
            resource = self._resources.get(key)
            if resource is None:
                resource = self.resource(key, fetch_fn, max_age_ms)
                self._resources[key] = resource
                created = True
            else:
                resource.fetch_fn = fetch_fn
                created = False

        if created:
            resource.mount()
        elif max_age_ms is not None:
            resource.rebind(max_age_ms=max_age_ms)
        return resource

    def release_resource(self, key: str) -> bool:
        """
        Unmount and forget the shared resource for a key.

        Returns:
            True if a resource was released
        """
        with self._resources_lock:
            resource = self._resources.pop(key, None)
        if resource is None:
            return False
        resource.unmount()
        return True

    def queue_scan(self, scan: Dict[str, Any]) -> int:
        """
        Queue a scan for background sync.

        Returns:
            Queue id of the scan
        """
        scan_id = self.store.enqueue_scan(scan)
        self.background_sync.register(SYNC_SCANS_TAG)
        return scan_id

    def sync_now(self) -> bool:
        """Replay queued scans immediately if online."""
        if not self.is_online:
            logger.warning("Cannot sync: offline")
            return False
        if self.pending_scan_count:
            return self.background_sync.register(SYNC_SCANS_TAG)
        return self.background_sync.sync_now()

    def clear_all(self) -> Dict[str, int]:
        """
        Empty both cache layers. Preserved keys and queued scans are kept.

        Returns:
            Counts of removed key-value entries and response buckets
        """
        entries = self.cache.clear()
        buckets = 0
        for name in self.store.cache_names():
            self.store.delete_cache(name)
            buckets += 1
        logger.info(f"Cleared {entries} cached entries and {buckets} response buckets")
        return {"entries": entries, "buckets": buckets}

    # =========================================================================
    # STATUS & DIAGNOSTICS
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Status information for UI display."""
        return {
            "connection": self.monitor.get_status_display(),
            "sync": self.background_sync.get_status_display(),
            "worker": self.worker.state.value,
            "cache_name": self.worker.cache_name,
            "is_online": self.is_online,
            "pending_scans": self.pending_scan_count,
            "resources": sorted(self._resources),
        }


# Singleton accessor
_offline_runtime: Optional[OfflineRuntime] = None


def get_offline_runtime() -> OfflineRuntime:
    """
    Get the global OfflineRuntime instance, initialized.

    Usage:
        from indalo_core.offline import get_offline_runtime

        runtime = get_offline_runtime()
        runtime.queue_scan({"code": "ABC123"})
    """
    global _offline_runtime
    if _offline_runtime is None:
        _offline_runtime = OfflineRuntime.get_instance()
        _offline_runtime.initialize()
    return _offline_runtime

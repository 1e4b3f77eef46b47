# =============================================================================
# indalo_core/offline/sync_engine.py
# Background Sync Scheduler
# =============================================================================
"""
BackgroundSync - Fires service worker sync tags when connectivity allows.

Features:
- Tag registry (a tag stays registered until its sync job succeeds)
- Immediate sync on the "became online" transition
- Periodic retry thread
- Sync status tracking and callbacks
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging

from indalo_core.errors import SyncError
from indalo_core.offline.connection_manager import (
    ConnectionState,
    ConnectivityMonitor,
    get_connectivity_monitor,
)
from indalo_core.offline.service_worker import SYNC_SCANS_TAG, ServiceWorker

logger = logging.getLogger(__name__)


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    last_error: Optional[str] = None
    failed_count: int = 0
    total_synced: int = 0


class BackgroundSync:
    """
    Runs registered sync tags against a service worker whenever online.

    Usage:
        sync = BackgroundSync(worker, monitor)
        sync.register("sync-scans")  # runs now if online, else on reconnect
        sync.start()                 # periodic retries for failed tags
    """

    SYNC_INTERVAL = 60  # Seconds between retry attempts

    def __init__(
        self,
        worker: ServiceWorker,
        monitor: Optional[ConnectivityMonitor] = None,
        sync_interval: int = SYNC_INTERVAL,
    ):
        """
        Args:
            worker: Service worker whose sync handlers are run
            monitor: Connectivity monitor (global monitor if None)
            sync_interval: Seconds between periodic retries
        """
        self.worker = worker
        self.monitor = monitor or get_connectivity_monitor()
        self.sync_interval = sync_interval

        self._state = SyncState()
        self._tags: List[str] = []
        self._tags_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None
        self._sync_thread: Optional[threading.Thread] = None
        self._stop_sync = threading.Event()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def registered_tags(self) -> List[str]:
        with self._tags_lock:
            return list(self._tags)

    @property
    def pending_count(self) -> int:
        """Scans still waiting in the queue."""
        return self.worker.store.get_pending_count()

    def initialize(self) -> None:
        """Listen for connectivity transitions."""
        if self._unsubscribe_monitor is None:
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connection_change)
            logger.info("BackgroundSync initialized")

    def register(self, tag: str = SYNC_SCANS_TAG) -> bool:
        """
        Register a sync tag; it runs immediately when online.

        Returns:
            True if the tag's job already completed
        """
        with self._tags_lock:
            if tag not in self._tags:
                self._tags.append(tag)
        logger.debug(f"Registered sync tag '{tag}'")

        self.initialize()
        if self.monitor.is_online:
            return self.sync_now()
        return False

    def start(self) -> None:
        """Start the periodic retry thread."""
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return

        self.initialize()
        self._stop_sync.clear()
        self._sync_thread = threading.Thread(
            target=self._sync_loop,
            daemon=True,
            name="BackgroundSync"
        )
        self._sync_thread.start()
        logger.info("Background sync started")

    def stop(self) -> None:
        """Stop the retry thread and connectivity listening."""
        self._stop_sync.set()
        if self._sync_thread:
            self._sync_thread.join(timeout=10)
            self._sync_thread = None
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        logger.info("Background sync stopped")

    def _sync_loop(self) -> None:
        while not self._stop_sync.is_set():
            if self._stop_sync.wait(timeout=self.sync_interval):
                break

            if self.monitor.is_online and self.registered_tags:
                try:
                    self.sync_now()
                except Exception as e:
                    logger.error(f"Sync error: {e}")

    def _on_connection_change(self, state: ConnectionState) -> None:
        if state.is_online and self.registered_tags:
            logger.info("Connection restored, running background sync")
            self.sync_now()

    def sync_now(self) -> bool:
        """
        Run every registered tag once.

        Returns:
            True if every tag completed (and was unregistered)
        """
        if not self.monitor.is_online:
            logger.debug("Cannot sync: offline")
            return False

        if not self._run_lock.acquire(blocking=False):
            return False

        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        try:
            failed = 0
            for tag in self.registered_tags:
                try:
                    result = self.worker.sync(tag)
                except SyncError as e:
                    logger.warning(f"Sync '{tag}' incomplete, will retry: {e}")
                    self._state.last_error = str(e)
                    self._state.total_synced += e.details.get("synced", 0)
                    failed += 1
                    continue

                self._state.total_synced += result.synced
                if tag == SYNC_SCANS_TAG and self.pending_count > 0:
                    # Queued after the run drained the store; keep for the next run
                    logger.debug(f"Scans still queued, keeping sync tag '{tag}'")
                    continue
                with self._tags_lock:
                    if tag in self._tags:
                        self._tags.remove(tag)

            self._state.failed_count = failed
            if failed == 0:
                self._state.last_sync_success = datetime.now()
                self._state.last_error = None
            return failed == 0 and not self.registered_tags

        finally:
            self._state.is_syncing = False
            self._run_lock.release()
            self._notify_callbacks()

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "is_syncing": self._state.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "pending_count": self.pending_count,
            "registered_tags": self.registered_tags,
            "failed_count": self._state.failed_count,
            "total_synced": self._state.total_synced,
            "last_error": self._state.last_error,
        }

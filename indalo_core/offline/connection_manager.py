# =============================================================================
# indalo_core/offline/connection_manager.py
# Connectivity Detection and Monitoring
# =============================================================================
"""
ConnectivityMonitor - Process-wide online/offline flag with subscriptions.

Features:
- Runtime connectivity events (set_online / set_offline)
- TCP reachability probe of the API host
- Periodic background checks
- Subscriber callbacks on every transition
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"  # Before the first event or probe


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status != ConnectionStatus.OFFLINE


Subscriber = Callable[[ConnectionState], None]


class ConnectivityMonitor:
    """
    Connectivity service shared by every offline-aware component.

    `is_online` is optimistic: it is True until an offline event or a failed
    probe says otherwise.

    Usage:
        monitor = ConnectivityMonitor(api_url="https://api.indalo.co.za")
        unsubscribe = monitor.subscribe(lambda state: print(state.status))
        monitor.start()
        ...
        monitor.stop()
    """

    DEFAULT_PROBE_HOSTS: Tuple[Tuple[str, int], ...] = (
        ("8.8.8.8", 53),         # Google DNS
        ("1.1.1.1", 53),         # Cloudflare DNS
        ("208.67.222.222", 53),  # OpenDNS
    )

    def __init__(
        self,
        api_url: Optional[str] = None,
        initial_online: Optional[bool] = None,
        check_interval_online: int = 30,
        check_interval_offline: int = 10,
        connection_timeout: int = 5,
    ):
        """
        Args:
            api_url: Base URL whose host is probed (public DNS hosts if None)
            initial_online: Seed status; UNKNOWN when None
            check_interval_online: Seconds between checks when online
            check_interval_offline: Seconds between checks when offline
            connection_timeout: Probe timeout in seconds
        """
        self.probe_hosts = self._probe_hosts_for(api_url)
        self.check_interval_online = check_interval_online
        self.check_interval_offline = check_interval_offline
        self.connection_timeout = connection_timeout

        status = ConnectionStatus.UNKNOWN
        if initial_online is not None:
            status = ConnectionStatus.ONLINE if initial_online else ConnectionStatus.OFFLINE
        self._state = ConnectionState(status=status)
        self._state_lock = threading.Lock()

        self._subscribers: List[Subscriber] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @classmethod
    def _probe_hosts_for(cls, api_url: Optional[str]) -> Tuple[Tuple[str, int], ...]:
        if not api_url:
            return cls.DEFAULT_PROBE_HOSTS
        parsed = urlparse(api_url)
        if not parsed.hostname:
            return cls.DEFAULT_PROBE_HOSTS
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return ((parsed.hostname, port),)

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        """Snapshot of the current connection state."""
        with self._state_lock:
            return replace(self._state)

    @property
    def current_status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def is_offline(self) -> bool:
        return not self._state.is_online

    @property
    def is_running(self) -> bool:
        return self._monitor_thread is not None and self._monitor_thread.is_alive()

    # =========================================================================
    # EVENTS
    # =========================================================================

    def set_online(self) -> ConnectionState:
        """Record a "became online" event."""
        return self._transition(True)

    def set_offline(self, reason: Optional[str] = None) -> ConnectionState:
        """Record a "became offline" event."""
        return self._transition(False, reason)

    def _transition(self, online: bool, error: Optional[str] = None) -> ConnectionState:
        """Apply a connectivity observation; notify subscribers on change."""
        new_status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        now = datetime.now()

        with self._state_lock:
            old_status = self._state.status
            self._state.status = new_status
            self._state.last_check = now
            if online:
                self._state.last_online = now
                self._state.consecutive_failures = 0
                self._state.error_message = None
            else:
                self._state.consecutive_failures += 1
                self._state.error_message = error
            snapshot = replace(self._state)

        if old_status != new_status:
            logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
            # UNKNOWN -> ONLINE is not an observable transition for subscribers
            if not (old_status == ConnectionStatus.UNKNOWN and online):
                self._notify(snapshot)

        return snapshot

    # =========================================================================
    # PROBING
    # =========================================================================

    def check_connection(self) -> ConnectionState:
        """
        Probe reachability and update the state.

        Returns:
            Updated ConnectionState
        """
        reachable = self._probe()
        return self._transition(reachable, None if reachable else "No probe host reachable")

    def _probe(self) -> bool:
        """Return True if any probe host accepts a TCP connection."""
        for host, port in self.probe_hosts:
            try:
                with socket.create_connection((host, port), timeout=self.connection_timeout):
                    return True
            except OSError as e:
                logger.debug(f"Probe {host}:{port} failed: {e}")
                continue
        return False

    def start(self, initial_check: bool = True) -> None:
        """Start background connectivity monitoring."""
        if self.is_running:
            return

        if initial_check:
            self.check_connection()

        self._stop_event.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectivityMonitor"
        )
        self._monitor_thread.start()
        logger.info(f"Connectivity monitoring started. Status: {self.current_status.value}")

    def stop(self) -> None:
        """Stop background connectivity monitoring."""
        self._stop_event.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=self.connection_timeout + 1)
            self._monitor_thread = None
        logger.debug("Connectivity monitoring stopped")

    def _monitoring_loop(self) -> None:
        """Background monitoring loop."""
        while not self._stop_event.is_set():
            interval = (
                self.check_interval_online
                if self.is_online
                else self.check_interval_offline
            )

            if self._stop_event.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for connectivity transitions.

        Returns:
            A function that removes the subscription
        """
        if callback not in self._subscribers:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove a registered callback."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self, state: ConnectionState) -> None:
        """Notify all subscribers of a status change."""
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in connectivity callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        state = self.state
        return {
            "status": state.status.value,
            "is_online": state.is_online,
            "last_check": state.last_check.isoformat() if state.last_check else None,
            "last_online": state.last_online.isoformat() if state.last_online else None,
            "failures": state.consecutive_failures,
            "error": state.error_message,
        }


# Singleton accessor
_connectivity_monitor: Optional[ConnectivityMonitor] = None
_monitor_lock = threading.Lock()


def get_connectivity_monitor(api_url: Optional[str] = None, start: bool = True) -> ConnectivityMonitor:
    """
    Get the global ConnectivityMonitor, starting it on first use.

    Args:
        api_url: Base URL to probe (used only when the monitor is created)
        start: Whether to start background monitoring on creation
    """
    global _connectivity_monitor
    if _connectivity_monitor is None:
        with _monitor_lock:
            if _connectivity_monitor is None:
                _connectivity_monitor = ConnectivityMonitor(api_url=api_url)
                if start:
                    _connectivity_monitor.start()
    return _connectivity_monitor


# Convenience functions
def is_online() -> bool:
    """Quick check if we're online."""
    return get_connectivity_monitor().is_online


def is_offline() -> bool:
    """Quick check if we're offline."""
    return get_connectivity_monitor().is_offline

"""
Network Status UI Components
Streamlit bindings for offline resources, the connectivity banner and scan sync
"""
import streamlit as st
from typing import Any, Callable, Optional

from indalo_core.offline.offline_data import OfflineDataState
from indalo_core.offline.runtime import OfflineRuntime, get_offline_runtime


WAS_OFFLINE_KEY = "_indalo_was_offline"

OFFLINE_BANNER = "You are currently offline. Some features may be limited."
BACK_ONLINE_MESSAGE = "Back online"


def use_offline_data(
    key: str,
    fetch_fn: Callable[[], Any],
    max_age_ms: Optional[int] = None,
    refresh: bool = False,
    runtime: Optional[OfflineRuntime] = None,
) -> OfflineDataState:
    """
    Offline-aware data for Streamlit pages

    The resource for a key is shared by every session of the server and
    lives on the runtime, so sessions that end leave nothing subscribed to
    the connectivity monitor. Streamlit re-creates inline fetchers on every
    rerun, so a new fetch_fn replaces the old one without reloading; a new
    max_age_ms restarts the resource.

    Args:
        key: Cache key
        fetch_fn: Zero-argument fetcher
        max_age_ms: Oldest cached value served (settings default if None)
        refresh: Run the load policy again on this rerun
        runtime: Offline runtime (global runtime if None)

    Returns:
        Current OfflineDataState of the resource
    """
    runtime = runtime or get_offline_runtime()
    resource = runtime.shared_resource(key, fetch_fn, max_age_ms)
    if refresh:
        resource.load()
    return resource.state


def release_offline_data(key: str, runtime: Optional[OfflineRuntime] = None) -> None:
    """Unmount and forget the shared resource for a key"""
    runtime = runtime or get_offline_runtime()
    runtime.release_resource(key)


def render_offline_state(state: OfflineDataState) -> None:
    """Show the status messages of an OfflineDataState"""
    if state.is_loading and state.data is None:
        st.info("Loading...")
    elif state.error and state.data is not None:
        st.warning(state.error)
    elif state.error:
        st.error(state.error)


def render_network_status(runtime: Optional[OfflineRuntime] = None) -> None:
    """
    Render the connectivity banner and the pending-scan sync prompt

    Shows a persistent banner while offline, a one-off notice on the first
    rerun after connectivity returns, and queued scans with a "Sync now"
    button when any are waiting.
    """
    runtime = runtime or get_offline_runtime()
    online = runtime.is_online
    was_offline = st.session_state.get(WAS_OFFLINE_KEY, False)

    if not online:
        st.warning(f"📴 {OFFLINE_BANNER}")
    elif was_offline:
        st.success(f"📶 {BACK_ONLINE_MESSAGE}")
    st.session_state[WAS_OFFLINE_KEY] = not online

    pending = runtime.pending_scan_count
    if pending == 0:
        return

    with st.expander(f"Offline data detected ({pending} scan(s) waiting to sync)", expanded=not online):
        st.dataframe(runtime.store.pending_scans_dataframe(), use_container_width=True, hide_index=True)

        sync_btn = st.button(
            "🔄 Sync now",
            key="indalo_sync_now_btn",
            disabled=not online,
            use_container_width=True
        )

        if sync_btn:
            with st.spinner("Syncing offline scans..."):
                if runtime.sync_now():
                    st.success("✅ All offline scans synced")
                else:
                    status = runtime.background_sync.get_status_display()
                    st.error(f"❌ Sync incomplete: {status['last_error'] or 'offline'}")

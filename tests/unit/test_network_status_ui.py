# =============================================================================
# tests/unit/test_network_status_ui.py
# Unit Tests for the Streamlit Offline Bindings
# =============================================================================

from indalo_core.offline.offline_data import OfflineDataState
from indalo_core.ui.network_status import (
    BACK_ONLINE_MESSAGE,
    OFFLINE_BANNER,
    release_offline_data,
    render_network_status,
    render_offline_state,
    use_offline_data,
)


class Counter:
    """Zero-argument fetcher counting its calls"""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestUseOfflineData:
    """Test the shared resource binding"""

    def test_first_call_mounts_and_loads(self, mock_streamlit, runtime):
        """The first rerun creates, mounts and loads the resource"""
        fetch = Counter(["Wine", "Olive Oil"])

        state = use_offline_data("categories", fetch, runtime=runtime)

        assert state.data == ["Wine", "Olive Oil"]
        assert state.is_loading is False
        assert fetch.calls == 1
        assert runtime._resources["categories"].is_mounted

    def test_rerun_reuses_resource(self, mock_streamlit, runtime):
        """Later reruns return the held state without fetching again"""
        first = Counter(["Wine"])
        second = Counter(["Beer"])

        use_offline_data("categories", first, runtime=runtime)
        state = use_offline_data("categories", second, runtime=runtime)

        assert state.data == ["Wine"]
        assert second.calls == 0
        assert runtime._resources["categories"].fetch_fn is second

    def test_sessions_share_one_subscription(self, mock_streamlit, runtime):
        """Many sessions reading a key leave one monitor subscription"""
        subscribers_before = len(runtime.monitor._subscribers)
        fetch = Counter(["Wine"])

        for _ in range(5):
            mock_streamlit.session_state.clear()
            use_offline_data("categories", fetch, runtime=runtime)

        assert len(runtime.monitor._subscribers) == subscribers_before + 1
        assert fetch.calls == 1

    def test_reconnect_refetches_once(self, mock_streamlit, runtime):
        """A reconnect reloads each key once, not once per session"""
        fetch = Counter(["Wine"])
        for _ in range(3):
            mock_streamlit.session_state.clear()
            use_offline_data("categories", fetch, runtime=runtime)

        runtime.monitor.set_offline()
        runtime.monitor.set_online()

        assert fetch.calls == 2

    def test_refresh_uses_latest_fetcher(self, mock_streamlit, runtime):
        """refresh reloads with the fetcher from the current rerun"""
        use_offline_data("categories", Counter(["Wine"]), runtime=runtime)

        state = use_offline_data("categories", Counter(["Beer"]), refresh=True, runtime=runtime)

        assert state.data == ["Beer"]

    def test_new_max_age_restarts(self, mock_streamlit, runtime):
        """A different max age restarts the resource"""
        fetch = Counter(["Wine"])
        use_offline_data("categories", fetch, max_age_ms=1000, runtime=runtime)

        use_offline_data("categories", fetch, max_age_ms=5000, runtime=runtime)

        assert runtime._resources["categories"].max_age_ms == 5000
        assert fetch.calls == 2

    def test_offline_keeps_data(self, mock_streamlit, runtime):
        """Going offline keeps the loaded data and flags it"""
        use_offline_data("categories", Counter(["Wine"]), runtime=runtime)
        runtime.monitor.set_offline()

        state = use_offline_data("categories", Counter(["Beer"]), runtime=runtime)

        assert state.data == ["Wine"]
        assert state.is_offline is True

    def test_release(self, mock_streamlit, runtime):
        """release_offline_data unmounts and forgets the resource"""
        use_offline_data("categories", Counter(["Wine"]), runtime=runtime)
        resource = runtime._resources["categories"]

        release_offline_data("categories", runtime=runtime)

        assert not resource.is_mounted
        assert "categories" not in runtime.get_status()["resources"]

    def test_shutdown_releases_resources(self, mock_streamlit, runtime):
        """Shutting the runtime down unmounts shared resources"""
        use_offline_data("categories", Counter(["Wine"]), runtime=runtime)
        resource = runtime._resources["categories"]

        runtime.shutdown()

        assert not resource.is_mounted


class TestRenderOfflineState:
    """Test state messages"""

    def test_loading(self, mock_streamlit):
        render_offline_state(OfflineDataState())

        mock_streamlit.info.assert_called_once_with("Loading...")

    def test_stale_fallback_warns(self, mock_streamlit):
        """Errors with data are warnings"""
        render_offline_state(OfflineDataState(data=[1], is_loading=False, error="Using cached data"))

        mock_streamlit.warning.assert_called_once_with("Using cached data")
        mock_streamlit.error.assert_not_called()

    def test_error_without_data(self, mock_streamlit):
        """Errors without data are errors"""
        render_offline_state(OfflineDataState(is_loading=False, error="Offline"))

        mock_streamlit.error.assert_called_once_with("Offline")


class TestRenderNetworkStatus:
    """Test the connectivity banner and sync prompt"""

    def test_online_shows_nothing(self, mock_streamlit, runtime):
        render_network_status(runtime)

        mock_streamlit.warning.assert_not_called()
        mock_streamlit.success.assert_not_called()
        mock_streamlit.expander.assert_not_called()

    def test_offline_banner(self, mock_streamlit, runtime):
        """Offline shows a persistent warning"""
        runtime.monitor.set_offline()

        render_network_status(runtime)

        mock_streamlit.warning.assert_called_once_with(f"📴 {OFFLINE_BANNER}")

    def test_back_online_notice_once(self, mock_streamlit, runtime):
        """The first rerun after reconnecting shows a notice"""
        runtime.monitor.set_offline()
        render_network_status(runtime)
        runtime.monitor.set_online()

        render_network_status(runtime)
        render_network_status(runtime)

        mock_streamlit.success.assert_called_once_with(f"📶 {BACK_ONLINE_MESSAGE}")

    def test_pending_scans_listed(self, mock_streamlit, runtime, store):
        """Queued scans are shown with a disabled button while offline"""
        store.enqueue_scan({"code": "ABC123"})
        runtime.monitor.set_offline()

        render_network_status(runtime)

        mock_streamlit.dataframe.assert_called_once()
        _, kwargs = mock_streamlit.button.call_args
        assert kwargs["disabled"] is True
        assert kwargs["key"] == "indalo_sync_now_btn"

    def test_sync_button(self, mock_streamlit, runtime, store):
        """Pressing "Sync now" replays the queue"""
        store.enqueue_scan({"code": "ABC123"})
        mock_streamlit.button.return_value = True

        render_network_status(runtime)

        assert store.get_pending_count() == 0
        mock_streamlit.success.assert_called_once_with("✅ All offline scans synced")

    def test_sync_button_failure(self, mock_streamlit, runtime, store, network):
        """A failed sync reports the error"""
        network.routes[("POST", "/api/scans")] = (500, {}, {})
        store.enqueue_scan({"code": "ABC123"})
        mock_streamlit.button.return_value = True

        render_network_status(runtime)

        message = mock_streamlit.error.call_args[0][0]
        assert message.startswith("❌ Sync incomplete")
        assert store.get_pending_count() == 1

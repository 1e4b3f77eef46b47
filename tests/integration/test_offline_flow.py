# =============================================================================
# tests/integration/test_offline_flow.py
# Integration Tests for the Offline Flow (Runtime → Service Worker → Sync)
# =============================================================================

import pytest

from indalo_core.api import APIConfig, IndaloAPIConnector
from indalo_core.config import OfflineSettings
from indalo_core.offline.runtime import OfflineRuntime


ORIGIN = "http://app.test"


@pytest.fixture
def connector(runtime):
    """Connector whose session is controlled by the runtime's service worker"""
    return IndaloAPIConnector(
        APIConfig(api_name="indalo", base_url=ORIGIN, timeout=5),
        session=runtime.session(),
        monitor=runtime.monitor,
    )


@pytest.mark.integration
class TestVerificationOffline:
    """
    Integration tests for product verification across connectivity loss.

    Tests the flow:
    1. Session registration installs and activates the worker
    2. Verification online stores the answer
    3. Verification offline serves it, or a synthesized answer
    """

    def test_never_verified_offline(self, connector, network):
        """Offline verification of an unseen code is not authenticated"""
        network.offline = True

        result = connector.verify_product("NEW001")

        assert result["authenticated"] is False
        assert "offline" in result["message"]

    def test_verified_then_offline(self, connector, network):
        """A code verified online is still authentic offline"""
        online = connector.verify_product("ABC123")
        network.offline = True

        offline = connector.verify_product("ABC123")

        assert offline == online
        assert offline["authenticated"] is True

    def test_fresh_answer_preferred_online(self, connector, network):
        """Online verification always asks the server"""
        connector.verify_product("ABC123")
        network.routes["/api/verify/ABC123"] = (200, {"authenticated": False, "message": "Recalled"}, {})

        assert connector.verify_product("ABC123")["message"] == "Recalled"


@pytest.mark.integration
class TestStaticAssetsOffline:
    """Integration tests for precached assets"""

    def test_precached_asset_without_network(self, runtime, network):
        """Precached assets are served from the bucket"""
        session = runtime.session()
        network.offline = True
        calls_before = len(network.calls)

        response = session.get(f"{ORIGIN}/manifest.json")

        assert response.status_code == 200
        assert response.content == b"asset /manifest.json"
        assert len(network.calls) == calls_before

    def test_navigation_falls_back_to_offline_page(self, runtime, network):
        """Uncached pages show the offline page"""
        session = runtime.session()
        network.offline = True

        response = session.get(f"{ORIGIN}/products/42", headers={"Accept": "text/html"})

        assert response.status_code == 200
        assert response.content == b"asset /offline.html"

    def test_uncached_subresource_is_503(self, runtime, network):
        """Uncached non-navigation requests fail with 503"""
        session = runtime.session()
        network.offline = True

        response = session.get(f"{ORIGIN}/img/rooibos.png", headers={"Accept": "image/png"})

        assert response.status_code == 503

    def test_new_cache_version_drops_old_bucket(self, tmp_path, store, online_monitor, network):
        """Activating a new cache version removes the previous bucket"""
        old = OfflineRuntime(
            settings=OfflineSettings(data_dir=tmp_path),
            scope_url=ORIGIN, store=store, monitor=online_monitor, network=network,
        )
        old.session()
        new = OfflineRuntime(
            settings=OfflineSettings(data_dir=tmp_path, cache_version="v2"),
            scope_url=ORIGIN, store=store, monitor=online_monitor, network=network,
        )

        new.session()

        assert store.cache_names() == ["indalo-cache-v2"]


@pytest.mark.integration
class TestScanSync:
    """
    Integration tests for offline scans.

    Tests the flow:
    1. Scan recorded while offline is queued
    2. Reconnect fires the sync tag
    3. Queue drains and the user is notified
    """

    def test_offline_scan_synced_on_reconnect(self, runtime, connector, network, store):
        """Queued scans reach the server after reconnecting"""
        runtime.monitor.set_offline()
        network.offline = True

        result = connector.record_scan({"code": "ABC123"}, queue=runtime.queue_scan)

        assert result["queued"] is True
        assert runtime.pending_scan_count == 1
        assert network.paths("POST") == []

        network.offline = False
        runtime.monitor.set_online()

        assert runtime.pending_scan_count == 0
        assert network.paths("POST") == ["/api/scans"]
        assert network.calls[-1].body is not None

    def test_failed_post_queued_and_retried(self, runtime, connector, network):
        """A post that fails while nominally online is queued and retried"""
        network.routes[("POST", "/api/scans")] = (503, {}, {})

        result = connector.record_scan({"code": "ABC123"}, queue=runtime.queue_scan)

        assert result["queued"] is True
        assert runtime.pending_scan_count == 1

        network.routes[("POST", "/api/scans")] = (201, {"status": "recorded"}, {})
        assert runtime.sync_now() is True
        assert runtime.pending_scan_count == 0

    def test_leftover_scans_synced_on_initialize(self, runtime, store, network):
        """Scans from a previous run are replayed at startup"""
        store.enqueue_scan({"code": "ABC123"})

        runtime.initialize(start_monitoring=False)

        assert store.get_pending_count() == 0
        assert network.paths("POST") == ["/api/scans"]
        runtime.shutdown()


@pytest.mark.integration
class TestCacheLayers:
    """Integration tests for the key-value overlay and the response bucket"""

    def test_resource_served_offline(self, runtime, connector):
        """API data cached by a resource survives going offline"""
        with runtime.resource("categories", connector.get_categories) as resource:
            assert resource.state.data[0]["name"] == "Wine"

        runtime.monitor.set_offline()

        with runtime.resource("categories", connector.get_categories) as resource:
            assert resource.state.data[0]["name"] == "Wine"
            assert resource.state.is_offline is True

    def test_clear_all(self, runtime, connector):
        """clear_all empties both layers but keeps preserved keys"""
        connector.verify_product("ABC123")
        runtime.cache.put("theme", "dark")
        runtime.cache.put("categories", ["Wine"])

        counts = runtime.clear_all()

        assert counts == {"entries": 1, "buckets": 1}
        assert runtime.cache.get("theme") == "dark"
        assert runtime.cache.get("categories") is None
        assert runtime.worker.match(f"{ORIGIN}/api/verify/ABC123") is None

# =============================================================================
# tests/unit/test_background_sync.py
# Unit Tests for BackgroundSync
# =============================================================================

import pytest

from indalo_core.offline.service_worker import SYNC_SCANS_TAG, ServiceWorker, SyncResult
from indalo_core.offline.sync_engine import BackgroundSync


@pytest.fixture
def online_sync(active_worker, online_monitor):
    sync = BackgroundSync(active_worker, online_monitor)
    yield sync
    sync.stop()


@pytest.fixture
def offline_sync(active_worker, offline_monitor):
    sync = BackgroundSync(active_worker, offline_monitor)
    yield sync
    sync.stop()


class TestRegistration:
    """Test registering sync tags"""

    def test_register_online_runs_immediately(self, online_sync, store, notifications):
        """Online registration replays the queue right away"""
        store.enqueue_scan({"code": "ABC123"})

        assert online_sync.register(SYNC_SCANS_TAG) is True

        assert store.get_pending_count() == 0
        assert online_sync.registered_tags == []
        assert notifications == [("Indalo Solutions", "Synced 1 offline scan(s)")]

    def test_register_offline_waits(self, offline_sync, store, network):
        """Offline registration does not touch the network"""
        store.enqueue_scan({"code": "ABC123"})
        calls_before = len(network.calls)

        assert offline_sync.register(SYNC_SCANS_TAG) is False

        assert offline_sync.registered_tags == [SYNC_SCANS_TAG]
        assert len(network.calls) == calls_before
        assert store.get_pending_count() == 1

    def test_reconnect_fires_registered_tags(self, offline_sync, offline_monitor, store):
        """The online transition runs pending tags"""
        store.enqueue_scan({"code": "ABC123"})
        offline_sync.register(SYNC_SCANS_TAG)

        offline_monitor.set_online()

        assert store.get_pending_count() == 0
        assert offline_sync.registered_tags == []
        assert offline_sync.state.total_synced == 1

    def test_duplicate_registration(self, offline_sync):
        """A tag is registered once"""
        offline_sync.register(SYNC_SCANS_TAG)
        offline_sync.register(SYNC_SCANS_TAG)

        assert offline_sync.registered_tags == [SYNC_SCANS_TAG]


class TestSyncNow:
    """Test running sync jobs"""

    def test_sync_now_offline(self, offline_sync):
        """Nothing runs while offline"""
        assert offline_sync.sync_now() is False

    def test_failed_tag_stays_registered(self, online_sync, store, network):
        """A failed job is retried later"""
        network.routes[("POST", "/api/scans")] = (503, {"message": "maintenance"}, {})
        store.enqueue_scan({"code": "ABC123"})

        assert online_sync.register(SYNC_SCANS_TAG) is False

        assert online_sync.registered_tags == [SYNC_SCANS_TAG]
        assert online_sync.state.failed_count == 1
        assert "could not be synced" in online_sync.state.last_error

    def test_retry_after_failure(self, online_sync, store, network):
        """A later run clears the tag and the error"""
        network.routes[("POST", "/api/scans")] = (503, {}, {})
        store.enqueue_scan({"code": "ABC123"})
        online_sync.register(SYNC_SCANS_TAG)

        network.routes[("POST", "/api/scans")] = (201, {"status": "recorded"}, {})

        assert online_sync.sync_now() is True
        assert online_sync.registered_tags == []
        assert online_sync.state.last_error is None
        assert online_sync.state.last_sync_success is not None

    def test_large_queue_fully_drained(self, online_sync, store):
        """More scans than one batch are all replayed and the tag cleared"""
        for i in range(ServiceWorker.SYNC_BATCH_SIZE + 10):
            store.enqueue_scan({"code": f"SCAN-{i}"})

        assert online_sync.register(SYNC_SCANS_TAG) is True

        assert store.get_pending_count() == 0
        assert online_sync.registered_tags == []
        assert online_sync.state.total_synced == ServiceWorker.SYNC_BATCH_SIZE + 10

    def test_tag_kept_while_scans_remain(self, online_sync, active_worker, store, monkeypatch):
        """A clean run that leaves scans queued keeps the tag for the next run"""
        store.enqueue_scan({"code": "ABC123"})
        monkeypatch.setattr(active_worker, "sync", lambda tag: SyncResult(tag=tag))

        assert online_sync.register(SYNC_SCANS_TAG) is False

        assert online_sync.registered_tags == [SYNC_SCANS_TAG]
        assert online_sync.state.last_error is None

        monkeypatch.undo()
        assert online_sync.sync_now() is True
        assert store.get_pending_count() == 0

    def test_callbacks_see_syncing_state(self, online_sync, store):
        """Callbacks are told when a run starts and ends"""
        seen = []
        online_sync.register_callback(lambda state: seen.append(state.is_syncing))
        store.enqueue_scan({"code": "ABC123"})

        online_sync.register(SYNC_SCANS_TAG)

        assert seen == [True, False]


class TestStatus:
    """Test status reporting"""

    def test_status_display(self, offline_sync, store):
        """UI status includes the queue length and tags"""
        store.enqueue_scan({"code": "ABC123"})
        offline_sync.register(SYNC_SCANS_TAG)

        display = offline_sync.get_status_display()

        assert display["pending_count"] == 1
        assert display["registered_tags"] == [SYNC_SCANS_TAG]
        assert display["is_syncing"] is False

    def test_stop_unsubscribes(self, offline_sync, offline_monitor, store, network):
        """A stopped scheduler ignores reconnects"""
        store.enqueue_scan({"code": "ABC123"})
        offline_sync.register(SYNC_SCANS_TAG)
        offline_sync.stop()

        offline_monitor.set_online()

        assert store.get_pending_count() == 1

    def test_start_and_stop_thread(self, online_sync):
        """The retry thread starts and stops cleanly"""
        online_sync.start()
        assert online_sync._sync_thread.is_alive()

        online_sync.stop()
        assert online_sync._sync_thread is None

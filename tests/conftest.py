# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
import pytest
import requests
from typing import Dict
from unittest.mock import MagicMock
from urllib.parse import urlparse
from requests.adapters import BaseAdapter

from indalo_core.config import PRECACHE_ASSETS, OfflineSettings
from indalo_core.offline.cache_manager import OfflineCache
from indalo_core.offline.connection_manager import ConnectivityMonitor
from indalo_core.offline.local_store import LocalStore
from indalo_core.offline.runtime import OfflineRuntime
from indalo_core.offline.service_worker import ServiceWorker, build_response


ORIGIN = "http://app.test"


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeNetwork(BaseAdapter):
    """
    In-memory transport.

    Routes map a path, or a (method, path) pair, to (status, body, headers)
    or to a callable returning that tuple. Unknown paths answer 404.
    """

    def __init__(self, routes: Dict = None):
        super().__init__()
        self.routes = dict(routes or {})
        self.offline = False
        self.calls = []
        self.closed = False

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.calls.append(request)
        if self.offline:
            raise requests.exceptions.ConnectionError("Network unreachable")

        path = urlparse(request.url).path
        route = self.routes.get((request.method, path), self.routes.get(path))
        if route is None:
            return build_response(request, 404, b"Not Found", {"Content-Type": "text/plain"})
        if callable(route):
            route = route(request)

        status, body, headers = route
        headers = dict(headers or {})
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")
        elif isinstance(body, str):
            body = body.encode("utf-8")
        return build_response(request, status, body, headers)

    def close(self):
        self.closed = True

    def paths(self, method: str = None):
        """Paths requested so far, optionally for one method"""
        return [
            urlparse(r.url).path for r in self.calls
            if method is None or r.method == method
        ]


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Controllable millisecond clock"""
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    """Local store backed by a temporary SQLite file"""
    local_store = LocalStore(tmp_path / "indalo_test.db")
    local_store.initialize()
    yield local_store
    local_store.close()


@pytest.fixture
def cache(store, clock):
    """Key-value cache over the temporary store"""
    return OfflineCache(store=store, clock=clock)


# =============================================================================
# CONNECTIVITY FIXTURES
# =============================================================================

@pytest.fixture
def online_monitor():
    """Monitor that starts online and never probes"""
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture
def offline_monitor():
    """Monitor that starts offline and never probes"""
    return ConnectivityMonitor(initial_online=False)


# =============================================================================
# NETWORK / SERVICE WORKER FIXTURES
# =============================================================================

@pytest.fixture
def network():
    """Fake network serving every precached asset and a few API routes"""
    routes = {
        asset: (200, f"asset {asset}", {"Content-Type": "text/html" if asset.endswith(".html") or asset == "/" else "application/octet-stream"})
        for asset in PRECACHE_ASSETS
    }
    routes["/api/verify/ABC123"] = (
        200,
        {"authenticated": True, "message": "Product is authentic", "productId": 1024},
        {},
    )
    routes["/api/categories"] = (200, [{"id": 1, "name": "Wine"}, {"id": 2, "name": "Olive Oil"}], {})
    routes[("POST", "/api/scans")] = (201, {"status": "recorded"}, {})
    return FakeNetwork(routes)


@pytest.fixture
def notifications():
    """Notifications sent by the service worker, as (title, body) tuples"""
    return []


@pytest.fixture
def worker(store, network, notifications):
    """Service worker over the fake network (not yet installed)"""
    return ServiceWorker(
        ORIGIN,
        store=store,
        network=network,
        notifier=lambda title, body: notifications.append((title, body)),
    )


@pytest.fixture
def active_worker(worker):
    """Installed and activated service worker"""
    worker.install()
    worker.activate()
    return worker


@pytest.fixture
def session(worker):
    """requests session controlled by the service worker"""
    s = requests.Session()
    worker.register(s)
    yield s
    s.close()


@pytest.fixture
def runtime(tmp_path, store, online_monitor, network):
    """Offline runtime wired to test doubles"""
    rt = OfflineRuntime(
        settings=OfflineSettings(data_dir=tmp_path),
        scope_url=ORIGIN,
        store=store,
        monitor=online_monitor,
        network=network,
    )
    yield rt
    rt.background_sync.stop()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit in the modules that render or read secrets"""
    import indalo_core.api.config_manager as config_manager
    import indalo_core.config as config
    import indalo_core.errors.handlers as handlers
    import indalo_core.ui.network_status as network_status

    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.secrets = {}
    mock_st.button.return_value = False

    for module in (config_manager, config, handlers, network_status):
        monkeypatch.setattr(module, "st", mock_st)

    return mock_st


@pytest.fixture
def make_network():
    """Factory for additional fake networks"""
    return FakeNetwork

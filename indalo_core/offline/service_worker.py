# =============================================================================
# indalo_core/offline/service_worker.py
# Transport-Level Cache Strategy ("service worker")
# =============================================================================
"""
ServiceWorker - HTTP cache policies applied below every requests.Session it controls.

Lifecycle:
    install()  -> precache the static asset list into the current bucket
    activate() -> delete every other bucket and take control of registered
                  sessions immediately
    register() -> install + activate (no waiting) and mount on a session

Fetch policies, chosen per request:
    /api/verify*                   network first; cached copy or a synthesized
                                   "not authenticated" JSON answer when offline
    other GETs outside /api/       cache first; offline page for navigations,
                                   synthesized 503 for everything else
    anything else                  not intercepted

Background sync:
    sync("sync-scans") replays scans queued while offline against /api/scans.
"""

from __future__ import annotations
import json
import sqlite3
import threading
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin, urlparse
import logging

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.exceptions import RequestException
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from indalo_core.config import PRECACHE_ASSETS
from indalo_core.errors import SyncError
from indalo_core.logging import LogContext
from indalo_core.offline.local_store import LocalStore, get_local_store

logger = logging.getLogger(__name__)


CACHE_NAME = "indalo-cache-v1"
OFFLINE_PAGE = "/offline.html"
API_PATH_PREFIX = "/api/"
VERIFY_PATH_PREFIX = "/api/verify"
SCANS_ENDPOINT = "/api/scans"
SYNC_SCANS_TAG = "sync-scans"
NOTIFICATION_TITLE = "Indalo Solutions"

OFFLINE_VERIFY_RESPONSE = {
    "authenticated": False,
    "message": "You're offline and this product has not been previously verified",
}


class Strategy(Enum):
    """How a request is served."""
    PASSTHROUGH = "passthrough"
    NETWORK_FIRST = "network_first"
    CACHE_FIRST = "cache_first"


class WorkerState(Enum):
    """Service worker lifecycle states."""
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATED = "activated"


@dataclass
class SyncResult:
    """Outcome of one background sync run."""
    tag: str
    attempted: int = 0
    synced: int = 0
    failed: int = 0


Notifier = Callable[[str, str], None]


def build_response(
    request: Optional[requests.PreparedRequest],
    status_code: int,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    reason: Optional[str] = None,
    url: Optional[str] = None,
) -> requests.Response:
    """
    Build a fully-read requests.Response without touching the network.

    Args:
        request: The request being answered
        status_code: HTTP status
        body: Response body
        headers: Response headers
        reason: Status text (derived from the status code if None)
        url: Response URL (request URL if None)
    """
    response = requests.Response()
    response.status_code = status_code
    if reason is None:
        try:
            reason = HTTPStatus(status_code).phrase
        except ValueError:
            reason = ""
    response.reason = reason
    response.headers = CaseInsensitiveDict(headers or {})
    response._content = body
    response._content_consumed = True
    response.encoding = get_encoding_from_headers(response.headers)
    response.url = url or (request.url if request is not None else "")
    response.request = request
    return response


def _log_notification(title: str, body: str) -> None:
    logger.info(f"[notification] {title}: {body}")


class ServiceWorker:
    """
    Cache policies for one origin, persisted in a named bucket of the local store.

    Usage:
        worker = ServiceWorker("https://app.indalo.co.za")
        session = requests.Session()
        worker.register(session)
        session.get("https://app.indalo.co.za/api/verify/ABC123")
    """

    SYNC_BATCH_SIZE = 50

    def __init__(
        self,
        scope_url: str,
        store: Optional[LocalStore] = None,
        cache_name: str = CACHE_NAME,
        precache_assets: Optional[List[str]] = None,
        offline_page: str = OFFLINE_PAGE,
        network: Optional[BaseAdapter] = None,
        notifier: Optional[Notifier] = None,
        timeout: int = 30,
    ):
        """
        Args:
            scope_url: Origin (and optional base path) the worker controls
            store: Persistent store holding the response buckets
            cache_name: Current bucket name; other buckets are dropped on activate
            precache_assets: Paths fetched and stored on install
            offline_page: Path served to navigations that fail offline
            network: Transport used for real network access
            notifier: Called with (title, body) for user-visible notifications
            timeout: Timeout (seconds) for requests the worker issues itself
        """
        parsed = urlparse(scope_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Service worker scope must be an http(s) URL: {scope_url!r}")

        self.origin = f"{parsed.scheme}://{parsed.netloc}"
        self.scope_url = scope_url.rstrip("/") + "/"
        self.cache_name = cache_name
        self.precache_assets = list(PRECACHE_ASSETS if precache_assets is None else precache_assets)
        self.offline_page = offline_page
        self.network = network or HTTPAdapter()
        self.notifier = notifier or _log_notification
        self.timeout = timeout

        self._store = store
        self._state = WorkerState.PARSED
        self._sessions: List[requests.Session] = []
        self._adapter: Optional[ServiceWorkerAdapter] = None
        self._lock = threading.Lock()

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            self._store = get_local_store()
        return self._store

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == WorkerState.ACTIVATED

    @property
    def adapter(self) -> ServiceWorkerAdapter:
        if self._adapter is None:
            self._adapter = ServiceWorkerAdapter(self)
        return self._adapter

    def absolute_url(self, path: str) -> str:
        """Resolve an origin-relative path against the worker's origin."""
        return requests.Request("GET", urljoin(self.origin + "/", path.lstrip("/"))).prepare().url

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def install(self) -> bool:
        """
        Precache the static asset list.

        Precaching is all-or-nothing: if any asset fails, nothing is stored and
        the failure is logged. Installation itself always completes.

        Returns:
            True if every asset was precached
        """
        self._state = WorkerState.INSTALLING

        with LogContext(logger, f"Precaching {len(self.precache_assets)} assets into {self.cache_name}"):
            fetched = []
            failure = None
            for asset in self.precache_assets:
                request = requests.Request("GET", self.absolute_url(asset)).prepare()
                try:
                    response = self._fetch(request, timeout=self.timeout)
                except RequestException as e:
                    failure = f"{asset}: {e}"
                    break
                if response.status_code != 200:
                    failure = f"{asset}: HTTP {response.status_code}"
                    break
                fetched.append((request, response))

            if failure is None:
                for request, response in fetched:
                    self._put(request, response)

        self._state = WorkerState.INSTALLED
        if failure is not None:
            logger.error(f"Precaching failed: {failure}")
            return False
        return True

    def activate(self) -> List[str]:
        """
        Delete every bucket except the current one and claim registered sessions.

        Returns:
            Names of the deleted buckets
        """
        deleted = []
        for name in self.store.cache_names():
            if name != self.cache_name:
                logger.info(f"Removing old cache: {name}")
                self.store.delete_cache(name)
                deleted.append(name)

        with self._lock:
            self._state = WorkerState.ACTIVATED
            for session in self._sessions:
                self._mount(session)

        logger.info(f"Service worker activated for {self.scope_url}")
        return deleted

    def register(self, session: requests.Session) -> requests.Session:
        """
        Put a session under this worker's control, installing and activating
        the worker first if needed.
        """
        with self._lock:
            if session not in self._sessions:
                self._sessions.append(session)
            active = self.is_active
            if active:
                self._mount(session)

        if not active:
            self.install()
            self.activate()
        return session

    def _mount(self, session: requests.Session) -> None:
        session.mount(self.origin + "/", self.adapter)

    # =========================================================================
    # FETCH HANDLING
    # =========================================================================

    def select_strategy(self, request: requests.PreparedRequest) -> Strategy:
        """Choose the fetch policy for a request."""
        url = request.url or ""
        parsed = urlparse(url)

        if request.method != "GET":
            return Strategy.PASSTHROUGH
        if parsed.scheme not in ("http", "https") or "extension" in url:
            return Strategy.PASSTHROUGH
        if parsed.path.startswith(VERIFY_PATH_PREFIX):
            return Strategy.NETWORK_FIRST
        if parsed.path.startswith(API_PATH_PREFIX):
            return Strategy.PASSTHROUGH
        return Strategy.CACHE_FIRST

    def handle(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        """Serve a request according to its policy."""
        strategy = self.select_strategy(request) if self.is_active else Strategy.PASSTHROUGH

        if strategy == Strategy.NETWORK_FIRST:
            return self._network_first(request, **kwargs)
        if strategy == Strategy.CACHE_FIRST:
            return self._cache_first(request, **kwargs)
        return self.network.send(request, **kwargs)

    def _fetch(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        """
        Send a request over the network and read its whole body.

        Raises:
            RequestException: the request failed or the connection dropped
                while the body was being read
        """
        response = self.network.send(request, **kwargs)
        response.content
        return response

    def _network_first(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        try:
            response = self._fetch(request, **kwargs)
        except RequestException as e:
            logger.info(f"Network unavailable for {request.url}: {e}")
            cached = self.match(request.url)
            if cached is not None:
                return cached
            return build_response(
                request,
                200,
                json.dumps(OFFLINE_VERIFY_RESPONSE).encode("utf-8"),
                {"Content-Type": "application/json"},
            )

        self._put(request, response)
        return response

    def _cache_first(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        cached = self.match(request.url)
        if cached is not None:
            return cached

        try:
            response = self._fetch(request, **kwargs)
        except RequestException as e:
            logger.info(f"Fetch failed for {request.url}: {e}")
            if self._is_navigation(request):
                page = self.match(self.absolute_url(self.offline_page))
                if page is not None:
                    return page
            return build_response(
                request,
                503,
                b"Not available while offline",
                {"Content-Type": "text/plain"},
                reason="Service Unavailable",
            )

        if response.status_code == 200 and self._same_origin(response.url or request.url):
            self._put(request, response)
        return response

    @staticmethod
    def _is_navigation(request: requests.PreparedRequest) -> bool:
        if request.headers.get("Sec-Fetch-Mode", "").lower() == "navigate":
            return True
        return "text/html" in request.headers.get("Accept", "")

    def _same_origin(self, url: str) -> bool:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}" == self.origin

    # =========================================================================
    # BUCKET ACCESS
    # =========================================================================

    def match(self, url: str) -> Optional[requests.Response]:
        """Return a stored response for a URL, from any bucket."""
        entry = self.store.match_response(url)
        if entry is None:
            return None
        request = requests.Request("GET", url).prepare()
        return build_response(
            request,
            entry["status"],
            entry["body"],
            entry["headers"],
            reason=entry["reason"],
            url=entry["url"],
        )

    def _put(self, request: requests.PreparedRequest, response: requests.Response) -> None:
        """Store a copy of a response; storage failures never fail the fetch."""
        try:
            self.store.put_response(
                self.cache_name,
                request.url,
                response.status_code,
                response.reason,
                dict(response.headers),
                response.content or b"",
            )
        except sqlite3.Error as e:
            logger.error(f"Error caching response for {request.url}: {e}")

    # =========================================================================
    # BACKGROUND SYNC
    # =========================================================================

    def sync(self, tag: str) -> SyncResult:
        """
        Run the background sync job registered under a tag.

        Raises:
            SyncError: some queued items could not be replayed (retry later)
        """
        if tag != SYNC_SCANS_TAG:
            logger.warning(f"No background sync handler for tag '{tag}'")
            return SyncResult(tag=tag)

        return self._sync_scans()

    def _sync_scans(self) -> SyncResult:
        result = SyncResult(tag=SYNC_SCANS_TAG)
        url = self.absolute_url(SCANS_ENDPOINT)

        while True:
            # Scans that failed in this run stay at the head of the queue
            scans = self.store.get_pending_scans(limit=self.SYNC_BATCH_SIZE, offset=result.failed)
            if not scans:
                break

            for scan in scans:
                result.attempted += 1
                request = requests.Request("POST", url, json=scan["data"]).prepare()
                try:
                    response = self.network.send(request, timeout=self.timeout)
                except RequestException as e:
                    logger.error(f"Failed to sync scan {scan['id']}: {e}")
                    self.store.mark_scan_failed(scan["id"], str(e))
                    result.failed += 1
                    continue

                if response.ok:
                    self.store.remove_scan(scan["id"])
                    result.synced += 1
                else:
                    logger.error(f"Server rejected scan {scan['id']}: HTTP {response.status_code}")
                    self.store.mark_scan_failed(scan["id"], f"HTTP {response.status_code}")
                    result.failed += 1

        if result.synced:
            self.notifier(NOTIFICATION_TITLE, f"Synced {result.synced} offline scan(s)")

        logger.info(f"Scan sync complete: {result.synced} synced, {result.failed} failed")
        if result.failed:
            raise SyncError(
                f"{result.failed} offline scan(s) could not be synced",
                tag=SYNC_SCANS_TAG,
                failed=result.failed,
                synced=result.synced,
            )
        return result


class ServiceWorkerAdapter(BaseAdapter):
    """requests transport adapter that routes every request through a ServiceWorker."""

    def __init__(self, worker: ServiceWorker):
        super().__init__()
        self.worker = worker

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        return self.worker.handle(
            request,
            stream=stream,
            timeout=timeout,
            verify=verify,
            cert=cert,
            proxies=proxies,
        )

    def close(self):
        self.worker.network.close()

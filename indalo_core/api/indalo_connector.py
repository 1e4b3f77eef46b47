"""
Indalo API Connector
Product catalogue, supply chain and verification endpoints of the Indalo API
"""
import re
import pandas as pd
from datetime import datetime
from typing import Optional, Dict, Any, List, Union, Callable
import logging
import requests

from indalo_core.errors import ApiRequestError
from indalo_core.offline.connection_manager import ConnectivityMonitor
from .base_connector import BaseAPIConnector, APIConfig

logger = logging.getLogger(__name__)


class IndaloAPIConnector(BaseAPIConnector):
    """
    Connector for the Indalo API

    Endpoints:
        GET  /api/categories
        GET  /api/products?category=&page=&limit=
        GET  /api/products/{id}
        GET  /api/supply-chain/{productId}
        GET  /api/verify/{code}
        POST /api/verification   {"productId": ...}
        POST /api/scans          {scan record}

    Expected product list formats:
        [{"id": 1, "name": "...", "categoryId": 2, ...}, ...]
    or
        {"products": [...], "total": 42}
    """

    HEALTH_ENDPOINT = "api/categories"

    # API field name -> standard column
    COLUMN_MAPPING = {
        "productId": "product_id",
        "productName": "product_name",
        "categoryId": "category_id",
        "imageUrl": "image_url",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "isValid": "is_valid",
        "qrCode": "qr_code",
        "scannedAt": "scanned_at",
    }

    def __init__(
        self,
        config: APIConfig,
        session: Optional[requests.Session] = None,
        monitor: Optional[ConnectivityMonitor] = None,
    ):
        """
        Args:
            config: API configuration
            session: Session to use (a new one if None)
            monitor: ConnectivityMonitor consulted before posting scans
        """
        super().__init__(config, session)
        self.monitor = monitor

    def _set_auth_header(self):
        """Set bearer authentication header"""
        if self.config.api_key:
            self.session.headers.update({
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json"
            })

    def attach_service_worker(self, worker) -> "IndaloAPIConnector":
        """Route this connector's requests through a service worker"""
        worker.register(self.session)
        return self

    def validate_response(self, response: requests.Response) -> bool:
        """Validate the response carries a JSON body"""
        try:
            response.json()
            return True
        except ValueError:
            return False

    def _get_json(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        response = self._make_request(endpoint, method="GET", params=params)
        if not self.validate_response(response):
            raise ApiRequestError(
                f"Invalid response from {self.config.api_name}",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        return response.json()

    # =========================================================================
    # CATALOGUE
    # =========================================================================

    def get_categories(self) -> List[Dict[str, Any]]:
        """Fetch all product categories"""
        return self._get_json("api/categories")

    def get_products(
        self,
        category: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Fetch a page of products

        Args:
            category: Category filter
            page: 1-based page number
            limit: Page size
        """
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if category:
            params["category"] = category
        return self._get_json("api/products", params=params)

    def get_product(self, product_id: Union[int, str]) -> Dict[str, Any]:
        """Fetch a single product"""
        return self._get_json(f"api/products/{product_id}")

    def get_supply_chain(self, product_id: Union[int, str]) -> Dict[str, Any]:
        """
        Fetch the supply chain record of a product

        Returns:
            {"productId": ..., "productName": ..., "steps": [...]}
        """
        return self._get_json(f"api/supply-chain/{product_id}")

    # =========================================================================
    # VERIFICATION & SCANS
    # =========================================================================

    def verify_product(self, code: str) -> Dict[str, Any]:
        """
        Verify a scanned product code

        With a service worker attached this answers offline too, either from a
        previous verification of the same code or with
        {"authenticated": false, "message": "You're offline ..."}.
        """
        clean_code = re.sub(r"[^a-zA-Z0-9-]", "", str(code))
        if not clean_code:
            raise ValueError(f"Invalid product code: {code!r}")
        return self._get_json(f"api/verify/{clean_code}")

    def submit_verification(self, product_id: Union[int, str]) -> Dict[str, Any]:
        """Record a verification request server-side"""
        response = self._make_request(
            "api/verification", method="POST", data={"productId": str(product_id)}
        )
        return response.json()

    def record_scan(
        self,
        scan: Dict[str, Any],
        queue: Optional[Callable[[Dict[str, Any]], int]] = None,
    ) -> Dict[str, Any]:
        """
        Send a scan to the server, queueing it for background sync if that
        is not possible right now.

        Args:
            scan: Scan record
            queue: Called with the scan to queue it; returns the queue id

        Returns:
            {"queued": False, "response": {...}} or {"queued": True, "queue_id": id}

        Raises:
            ApiRequestError: the post failed and no queue was given
        """
        scan = {"scannedAt": datetime.now().isoformat(), **scan}

        if queue is not None and self.monitor is not None and self.monitor.is_offline:
            logger.info("Offline: queueing scan for background sync")
            return {"queued": True, "queue_id": queue(scan)}

        try:
            response = self._make_request("api/scans", method="POST", data=scan)
        except ApiRequestError as e:
            if queue is None:
                raise
            logger.warning(f"Scan upload failed, queueing for background sync: {e}")
            return {"queued": True, "queue_id": queue(scan)}

        body = response.json() if self.validate_response(response) else {}
        return {"queued": False, "response": body}

    # =========================================================================
    # SCHEMA MAPPING
    # =========================================================================

    def map_to_standard_schema(self, records: Union[List[Dict[str, Any]], Dict[str, Any], pd.DataFrame]) -> pd.DataFrame:
        """
        Flatten API records into a DataFrame with snake_case columns

        Accepts a list of records, a paged {"products": [...]} / {"data": [...]}
        wrapper, a supply chain {"steps": [...]} record, or a DataFrame.
        """
        if isinstance(records, pd.DataFrame):
            df = records.copy()
        else:
            if isinstance(records, dict):
                for wrapper in ("products", "data", "steps"):
                    if wrapper in records:
                        records = records[wrapper]
                        break
                else:
                    records = [records]
            df = pd.json_normalize(records or [])

        df = df.rename(columns=self.COLUMN_MAPPING)

        for col in df.columns:
            if col.endswith("_at") or col in ("timestamp", "date"):
                df[col] = pd.to_datetime(df[col], errors="coerce")

        return df

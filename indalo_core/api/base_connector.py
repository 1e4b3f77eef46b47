"""
Base API Connector Class
Provides the abstract interface for talking to HTTP APIs over a requests session
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Union
import pandas as pd
import requests
from dataclasses import dataclass

from indalo_core.errors import ApiRequestError


@dataclass
class APIConfig:
    """Configuration for API connection"""
    api_name: str
    base_url: str
    api_key: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    timeout: int = 30
    additional_params: Optional[Dict[str, Any]] = None


class BaseAPIConnector(ABC):
    """Abstract base class for all API connectors"""

    # Cheapest GET used by test_connection()
    HEALTH_ENDPOINT = ""

    def __init__(self, config: APIConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

        # Set default headers
        if config.headers:
            self.session.headers.update(config.headers)

        # Add API key to headers if provided
        if config.api_key:
            self._set_auth_header()

    @abstractmethod
    def _set_auth_header(self):
        """Set authentication header based on API requirements"""
        pass

    @abstractmethod
    def validate_response(self, response: requests.Response) -> bool:
        """Validate API response"""
        pass

    @abstractmethod
    def map_to_standard_schema(self, records: Union[List[Dict[str, Any]], pd.DataFrame]) -> pd.DataFrame:
        """
        Map API records to the application's standard schema

        Args:
            records: Records as returned by the API

        Returns:
            DataFrame with standardized column names expected by the app
        """
        pass

    def url_for(self, endpoint: str) -> str:
        """Absolute URL for an endpoint relative to base_url"""
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict] = None,
        data: Optional[Dict] = None
    ) -> requests.Response:
        """
        Make HTTP request with error handling

        Args:
            endpoint: API endpoint (appended to base_url)
            method: HTTP method (GET, POST, etc.)
            params: Query parameters
            data: JSON request body

        Returns:
            Response object

        Raises:
            ApiRequestError: transport failure or non-2xx status
        """
        url = self.url_for(endpoint)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                timeout=self.config.timeout
            )
            response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            raise ApiRequestError(
                f"API request failed for {self.config.api_name}: {str(e)}",
                endpoint=endpoint,
                status_code=e.response.status_code if e.response is not None else None,
            ) from e
        except requests.exceptions.RequestException as e:
            raise ApiRequestError(
                f"API request failed for {self.config.api_name}: {str(e)}",
                endpoint=endpoint,
            ) from e

    def test_connection(self) -> Dict[str, Any]:
        """
        Test API connection and return status

        Returns:
            Dict with status and message
        """
        try:
            self._make_request(self.HEALTH_ENDPOINT)
            return {
                "status": "success",
                "message": f"Successfully connected to {self.config.api_name}",
            }
        except Exception as e:
            return {
                "status": "error",
                "message": f"Connection failed: {str(e)}"
            }

    def close(self) -> None:
        """Close the underlying session"""
        self.session.close()

"""
API Configuration Manager
Centralized management of the Indalo API configuration and connector instances
"""
import os
from typing import Dict, Any, Optional
import logging
import requests
import streamlit as st

from indalo_core.offline.connection_manager import ConnectivityMonitor
from .base_connector import APIConfig
from .indalo_connector import IndaloAPIConnector

logger = logging.getLogger(__name__)


class APIConfigManager:
    """
    Manages the API configuration and creates connector instances

    Resolution order: Streamlit secrets, environment variables, defaults.

    Usage:
        config_manager = APIConfigManager()
        connector = config_manager.get_connector()
        categories = connector.get_categories()
    """

    DEFAULT_BASE_URL = "http://localhost:5000"

    ENV_VARS = {
        "base_url": "INDALO_API_URL",
        "api_key": "INDALO_API_KEY",
        "timeout": "INDALO_API_TIMEOUT",
    }

    def __init__(self):
        """Initialize with configuration from Streamlit secrets, env or defaults"""
        self.configs = self._load_configs_from_secrets()

    def _load_configs_from_secrets(self) -> Dict[str, Any]:
        """
        Load the API configuration from Streamlit secrets

        Expected secrets.toml format:
        [api]
        base_url = "https://app.indalo.co.za"
        api_key = "your_api_key"
        timeout = 30
        """
        configs = self._get_default_configs()
        configs.update(self._get_env_configs())

        try:
            if hasattr(st, "secrets") and "api" in st.secrets:
                configs.update(dict(st.secrets["api"]))
        except Exception as e:
            # No secrets.toml present
            logger.debug(f"Streamlit secrets unavailable, using env/defaults: {e}")

        return configs

    def _get_env_configs(self) -> Dict[str, Any]:
        """Return configuration found in INDALO_API_* environment variables"""
        configs = {}
        for key, env_var in self.ENV_VARS.items():
            value = os.getenv(env_var)
            if value:
                configs[key] = value
        return configs

    def _get_default_configs(self) -> Dict[str, Any]:
        """Return default configuration (local development server)"""
        return {"base_url": self.DEFAULT_BASE_URL, "timeout": 30}

    def get_config(self, **overrides) -> APIConfig:
        """Build APIConfig from stored config and overrides"""
        merged = {**self.configs, **overrides}

        return APIConfig(
            api_name="indalo",
            base_url=str(merged.get("base_url") or self.DEFAULT_BASE_URL).rstrip("/"),
            api_key=merged.get("api_key"),
            headers=merged.get("headers"),
            timeout=int(merged.get("timeout", 30)),
            additional_params={
                k: v for k, v in merged.items()
                if k not in ["base_url", "api_key", "headers", "timeout"]
            }
        )

    def get_connector(
        self,
        session: Optional[requests.Session] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        **overrides,
    ) -> IndaloAPIConnector:
        """
        Get an Indalo API connector

        Args:
            session: Session to use (for example one controlled by a service worker)
            monitor: ConnectivityMonitor used to queue scans while offline
            **overrides: Override configuration parameters

        Returns:
            Configured connector instance
        """
        return IndaloAPIConnector(self.get_config(**overrides), session=session, monitor=monitor)

    def test_connection(self) -> Dict[str, Any]:
        """Test the configured API connection"""
        connector = self.get_connector()
        try:
            return connector.test_connection()
        finally:
            connector.close()


# Singleton accessor
_api_config_manager: Optional[APIConfigManager] = None


def get_api_config_manager() -> APIConfigManager:
    """Get the global APIConfigManager instance."""
    global _api_config_manager
    if _api_config_manager is None:
        _api_config_manager = APIConfigManager()
    return _api_config_manager

"""
Indalo API Module
Connector for the Indalo product authenticity API
"""

from .base_connector import BaseAPIConnector, APIConfig
from .indalo_connector import IndaloAPIConnector
from .config_manager import APIConfigManager, get_api_config_manager

__all__ = [
    # Base classes
    "BaseAPIConnector",
    "APIConfig",
    "APIConfigManager",
    "get_api_config_manager",

    # Indalo connector
    "IndaloAPIConnector",
]

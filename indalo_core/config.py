# =============================================================================
# indalo_core/config.py
# Offline Layer Configuration
# =============================================================================
"""
Configuration for the offline layer.

Values are resolved in order:
    1. `[offline]` section of `.streamlit/secrets.toml`
    2. `INDALO_*` environment variables
    3. dataclass defaults

Expected secrets.toml format:
    [offline]
    data_dir = "local_data"
    cache_name = "indalo-cache-v1"
    default_max_age_ms = 3600000
    preserve_keys = ["theme", "user"]
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import streamlit as st

from indalo_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_DATA_DIR = Path(__file__).parent.parent / "local_data"

PRECACHE_ASSETS = [
    "/",
    "/index.html",
    "/offline.html",
    "/manifest.json",
    "/icons/icon.svg",
    "/icons/icon-72x72.png",
    "/icons/icon-96x96.png",
    "/icons/icon-128x128.png",
    "/icons/icon-144x144.png",
    "/icons/icon-152x152.png",
    "/icons/icon-192x192.png",
    "/icons/icon-384x384.png",
    "/icons/icon-512x512.png",
    "/icons/badge-72x72.png",
]


@dataclass
class OfflineSettings:
    """Settings for the offline cache, service worker and monitor."""

    # ==================== STORAGE ====================
    data_dir: Path = DEFAULT_DATA_DIR
    db_filename: str = "indalo_offline.db"

    # ==================== KEY-VALUE CACHE ====================
    default_max_age_ms: int = 3_600_000  # 1 hour
    preserve_keys: List[str] = field(default_factory=lambda: ["theme", "user"])

    # ==================== SERVICE WORKER ====================
    cache_version: str = "v1"
    cache_prefix: str = "indalo-cache"
    offline_page: str = "/offline.html"
    precache_assets: List[str] = field(default_factory=lambda: list(PRECACHE_ASSETS))

    # ==================== CONNECTIVITY ====================
    check_interval_online: int = 30   # seconds
    check_interval_offline: int = 10  # seconds
    connection_timeout: int = 5       # seconds
    sync_interval: int = 60           # seconds between queued-scan retries

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_filename

    @property
    def cache_name(self) -> str:
        """Bucket name; bumping the version is what invalidates precached assets."""
        return f"{self.cache_prefix}-{self.cache_version}"

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> OfflineSettings:
        """Build settings from a mapping, coercing types of known fields."""
        defaults = cls()
        kwargs: Dict[str, Any] = {}

        for f in fields(cls):
            if f.name not in values or values[f.name] is None:
                continue
            raw = values[f.name]
            current = getattr(defaults, f.name)
            try:
                if isinstance(current, Path):
                    kwargs[f.name] = Path(raw)
                elif isinstance(current, int):
                    kwargs[f.name] = int(raw)
                elif isinstance(current, list):
                    if isinstance(raw, str):
                        kwargs[f.name] = [v.strip() for v in raw.split(",") if v.strip()]
                    else:
                        kwargs[f.name] = list(raw)
                else:
                    kwargs[f.name] = str(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for offline setting '{f.name}': {raw!r}",
                    config_key=f.name,
                    expected_type=type(current).__name__,
                ) from e

        return cls(**kwargs)


def _settings_from_secrets() -> Dict[str, Any]:
    """Read the [offline] section from Streamlit secrets, if configured."""
    try:
        if hasattr(st, "secrets") and "offline" in st.secrets:
            return dict(st.secrets["offline"])
    except Exception as e:
        # No secrets.toml present
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def _settings_from_env() -> Dict[str, Any]:
    """Read INDALO_* environment variables for each settings field."""
    values = {}
    for f in fields(OfflineSettings):
        env_value = os.getenv(f"INDALO_{f.name.upper()}")
        if env_value is not None:
            values[f.name] = env_value
    return values


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> OfflineSettings:
    """
    Resolve offline settings from secrets, environment and overrides.

    Args:
        overrides: Explicit values that win over every other source

    Returns:
        OfflineSettings
    """
    merged: Dict[str, Any] = {}
    merged.update(_settings_from_env())
    merged.update(_settings_from_secrets())
    merged.update(overrides or {})
    return OfflineSettings.from_dict(merged)

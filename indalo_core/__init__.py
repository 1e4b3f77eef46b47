# =============================================================================
# indalo_core/__init__.py
# Indalo offline-first client core
# =============================================================================
"""
Offline-first data access for the Indalo product verification client.

Subpackages:
    offline  - key-value cache, connectivity monitor, offline resources,
               service worker transport and background sync
    api      - HTTP connector for the Indalo API
    ui       - Streamlit bindings
    logging  - logging configuration
    errors   - exception hierarchy and handlers
"""

__version__ = "0.1.0"

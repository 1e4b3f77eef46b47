"""
Streamlit UI components for the offline layer
"""

from .network_status import (
    use_offline_data,
    release_offline_data,
    render_offline_state,
    render_network_status,
)

__all__ = [
    "use_offline_data",
    "release_offline_data",
    "render_offline_state",
    "render_network_status",
]

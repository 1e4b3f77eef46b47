from __future__ import annotations
import streamlit as st

from indalo_core.api import get_api_config_manager
from indalo_core.errors import ErrorContext, safe_execute
from indalo_core.logging import setup_logging
from indalo_core.offline import get_offline_runtime
from indalo_core.ui import render_network_status, render_offline_state, use_offline_data

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="Indalo - Verify Product",
    page_icon="🛡️",
    layout="centered",
)


@st.cache_resource
def _bootstrap():
    """Process-wide setup, run once per server."""
    setup_logging()
    runtime = get_offline_runtime()
    connector = get_api_config_manager().get_connector(
        session=runtime.session(),
        monitor=runtime.monitor,
    )
    return runtime, connector


runtime, connector = _bootstrap()

st.title("🛡️ Verify a Product")
render_network_status(runtime)

# ============================================================================
# VERIFICATION
# ============================================================================
code = st.text_input("Product code", placeholder="e.g. INDALO-1024")

if st.button("Verify", type="primary", disabled=not code):
    with ErrorContext("Verifying product"):
        result = connector.verify_product(code)
        if result.get("authenticated") or result.get("verified"):
            st.success(result.get("message", "Product is authentic"))
        else:
            st.warning(result.get("message", "Product could not be verified"))

        outcome = safe_execute(
            connector.record_scan,
            {"code": code, "authenticated": bool(result.get("authenticated"))},
            queue=runtime.queue_scan,
            default=None,
            error_message="Could not record this scan",
        )
        if outcome and outcome.get("queued"):
            st.info("Scan saved offline and will sync when you are back online.")

# ============================================================================
# CATALOGUE
# ============================================================================
st.markdown("---")
st.subheader("Product Categories")

categories = use_offline_data("categories", connector.get_categories)
render_offline_state(categories)
if categories.data:
    st.dataframe(
        connector.map_to_standard_schema(categories.data),
        use_container_width=True,
        hide_index=True,
    )

with st.sidebar:
    st.markdown("### Offline Storage")
    st.json(runtime.get_status(), expanded=False)
    if st.button("Clear cached data", use_container_width=True):
        cleared = runtime.clear_all()
        st.success(f"Removed {cleared['entries']} entries and {cleared['buckets']} response buckets")

# =============================================================================
# indalo_core/errors/__init__.py
# Centralized Error Handling for the Indalo client
# =============================================================================

from .exceptions import (
    IndaloError,
    CacheStorageError,
    ApiRequestError,
    OfflineUnavailableError,
    SyncError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "IndaloError",
    "CacheStorageError",
    "ApiRequestError",
    "OfflineUnavailableError",
    "SyncError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]

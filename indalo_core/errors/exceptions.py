# =============================================================================
# indalo_core/errors/exceptions.py
# Custom Exception Hierarchy for the Indalo client
# =============================================================================

from typing import Optional, Dict, Any


class IndaloError(Exception):
    """
    Base exception for all Indalo client errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "CACHE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "INDALO_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class CacheStorageError(IndaloError):
    """Raised when a cache entry cannot be serialized or persisted"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="CACHE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

class ApiRequestError(IndaloError):
    """Raised when a request to the Indalo API fails"""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if endpoint:
            details["endpoint"] = endpoint
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            code="API_001",
            details=details,
            **kwargs,
        )


class OfflineUnavailableError(IndaloError):
    """Raised when data is required while offline and nothing is cached"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="OFFLINE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class SyncError(IndaloError):
    """Raised when queued offline work cannot be replayed"""

    def __init__(
        self,
        message: str,
        tag: Optional[str] = None,
        failed: Optional[int] = None,
        synced: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if tag:
            details["tag"] = tag
        if failed is not None:
            details["failed"] = failed
        if synced is not None:
            details["synced"] = synced

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(IndaloError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )

from typing import Any, Dict, Optional

from sqlalchemy.exc import OperationalError


class CloudLedgerException(Exception):
    """Base exception for all cloudledger errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class NonRetryableError(CloudLedgerException):
    """Marker base: the orchestration host must not retry these."""


class ExternalAPIError(CloudLedgerException):
    """Raised when a provider API call fails in a way worth retrying (429, 5xx, transport)."""

    def __init__(self, message: str, code: str = "external_api_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class AdapterError(NonRetryableError):
    """Raised when an external cloud adapter fails permanently (auth, not found, bad request)."""

    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class PaginationError(NonRetryableError):
    """Raised when a source pages incorrectly: a repeated cursor or more pages than allowed."""

    def __init__(self, message: str, code: str = "pagination_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ConfigurationError(NonRetryableError):
    """Raised when application configuration is invalid or missing."""

    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ConversionError(NonRetryableError):
    """Raised when a raw provider record cannot be mapped to its canonical form."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code="conversion_error",
            details={"resource_type": resource_type, "resource_id": resource_id, **(details or {})},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PersistenceError(CloudLedgerException):
    """Raised when a snapshot/history write fails; the enclosing transaction is rolled back."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code="persistence_error",
            details={"resource_type": resource_type, "resource_id": resource_id, **(details or {})},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class UnitError(CloudLedgerException):
    """Raised by the orchestration host when a unit cannot be executed."""

    def __init__(self, message: str, code: str = "unit_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class UnitNotFoundError(NonRetryableError):
    """Raised when a unit name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unit '{name}' is not registered", code="unit_not_found", details={"unit": name})


class UnitTimeoutError(UnitError):
    """Raised when a unit exceeds its start-to-close or heartbeat deadline."""

    def __init__(self, message: str, timeout_type: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=f"{timeout_type}_timeout", details=details)
        self.timeout_type = timeout_type


TRANSIENT_ERRORS = (ExternalAPIError, UnitTimeoutError, ConnectionError, TimeoutError)


def is_transient(exc: BaseException) -> bool:
    """Decide retry eligibility. Unknown errors are not retried."""
    if isinstance(exc, NonRetryableError):
        return False
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    if isinstance(exc, PersistenceError):
        return isinstance(exc.__cause__, (OperationalError, ConnectionError, TimeoutError))
    return isinstance(exc, OperationalError)

# =============================================================================
# finca_core/errors/exceptions.py
# Custom Exception Hierarchy for the offline data layer
# =============================================================================

from typing import Optional, Dict, Any


class FincaError(Exception):
    """
    Base exception for all offline data layer errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
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
        self.code = code or "FINCA_000"
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
# LOCAL STORE EXCEPTIONS
# =============================================================================

class LocalStoreError(FincaError):
    """Raised when a read or write against the local SQLite store fails"""

    def __init__(
        self,
        message: str,
        db_path: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if db_path:
            details["db_path"] = db_path
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code=kwargs.pop("code", "STORE_001"),
            details=details,
            **kwargs,
        )


class StoreInitializationError(LocalStoreError):
    """Raised when the local store cannot be opened or its schema created"""

    def __init__(self, message: str, db_path: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            db_path=db_path,
            operation="initialize",
            code="STORE_002",
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# REMOTE / SYNC EXCEPTIONS
# =============================================================================

class RemoteStoreError(FincaError):
    """Raised (or returned) when a remote store call fails"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class SyncProbeError(FincaError):
    """Raised when the connectivity probe against the remote store fails"""

    def __init__(self, message: str, collection: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class MissingIdentifierError(FincaError):
    """Raised when an UPDATE or DELETE operation carries no record id"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        kind: Optional[str] = None,
        operation_id: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if kind:
            details["kind"] = kind
        if operation_id is not None:
            details["operation_id"] = operation_id

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(FincaError):
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

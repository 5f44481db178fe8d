# =============================================================================
# finca_core/errors/__init__.py
# Centralized Error Handling for the offline data layer
# =============================================================================

from .exceptions import (
    FincaError,
    LocalStoreError,
    StoreInitializationError,
    RemoteStoreError,
    SyncProbeError,
    MissingIdentifierError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "FincaError",
    "LocalStoreError",
    "StoreInitializationError",
    "RemoteStoreError",
    "SyncProbeError",
    "MissingIdentifierError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "ErrorContext",
]

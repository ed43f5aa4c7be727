# =============================================================================
# pharmacare_core/errors/__init__.py
# Centralized Error Handling for PharmaCare
# =============================================================================

from .exceptions import (
    PharmaCareError,
    RemoteStoreError,
    LocalStorageError,
    SequenceExhaustedError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
)

__all__ = [
    # Exceptions
    "PharmaCareError",
    "RemoteStoreError",
    "LocalStorageError",
    "SequenceExhaustedError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
]

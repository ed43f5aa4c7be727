# =============================================================================
# pharmacare_core/errors/exceptions.py
# Custom Exception Hierarchy for PharmaCare
# =============================================================================

from typing import Any, Dict, Optional


def _compact(**fields: Any) -> Dict[str, Any]:
    """Keep only the context fields that were actually given."""
    return {key: value for key, value in fields.items() if value is not None}


class PharmaCareError(Exception):
    """
    Root of every error raised by the persistence core.

    Attributes:
        message: What went wrong, for logs and status indicators
        code: Stable machine-readable code, e.g. "STORE_001"
        details: Context such as the key, path or status code involved
        recoverable: False when retrying the same call cannot help
    """

    default_code = "PC_000"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}] {self.message} | Details: {self.details}"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable summary (used by handle_error and status displays)."""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteStoreError(PharmaCareError):
    """
    The remote collection API did not service a request.

    Covers transport failures, timeouts, non-2xx responses and bodies that
    are not JSON. Callers do not distinguish between these.
    """

    default_code = "REMOTE_001"

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        kwargs["details"] = {
            **(kwargs.get("details") or {}),
            **_compact(method=method, path=path, status_code=status_code),
        }
        super().__init__(message, **kwargs)
        self.status_code = status_code


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class LocalStorageError(PharmaCareError):
    """The durable key-value backend failed to persist a value."""

    default_code = "STORE_001"

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        kwargs["details"] = {**(kwargs.get("details") or {}), **_compact(key=key)}
        super().__init__(message, **kwargs)


# =============================================================================
# SEQUENCE EXCEPTIONS
# =============================================================================

class SequenceExhaustedError(PharmaCareError):
    """No unused daily sequence number within the retry budget."""

    default_code = "SEQ_001"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        prefix: Optional[str] = None,
        date: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        kwargs["details"] = {
            **(kwargs.get("details") or {}),
            **_compact(prefix=prefix, date=date, attempts=attempts),
        }
        super().__init__(message, **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(PharmaCareError):
    """A setting is missing, unreadable or out of range."""

    default_code = "CONFIG_001"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        kwargs["details"] = {
            **(kwargs.get("details") or {}),
            **_compact(config_key=config_key, expected_type=expected_type),
        }
        super().__init__(message, **kwargs)

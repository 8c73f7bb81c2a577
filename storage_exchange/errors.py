"""Structured exception hierarchy for storage-exchange.

Provides specific exception types for the failure modes of the storage
registry, the backends and the copy orchestrator, with rich context for
debugging and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

__all__ = [
    "StorageExchangeError",
    "ConfigurationError",
    "UnsupportedConfigurationError",
    "NotRegisteredError",
    "StorageError",
    "NotFoundError",
    "InvalidOperationError",
    "TransferError",
    "FolderCopyError",
]


class StorageExchangeError(Exception):
    """Base exception for all storage-exchange errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(StorageExchangeError):
    """Error in storage configuration.

    Raised when the registry is given missing, duplicate, unknown or
    otherwise invalid configuration entries. All issues found are listed.
    """

    def __init__(
        self,
        message: str,
        *,
        issues: Optional[Sequence[str]] = None,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.issues = list(issues or [])
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if self.issues:
            details["issue_count"] = len(self.issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in self.issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class UnsupportedConfigurationError(ConfigurationError):
    """A configuration variant has no backend factory registered."""


class NotRegisteredError(StorageExchangeError):
    """No storage is registered under the requested name."""

    def __init__(self, name: Any, *, registered: Optional[Sequence[str]] = None) -> None:
        self.name = str(getattr(name, "value", name))
        self.registered = list(registered or [])
        super().__init__(
            f"No file storage is registered for storage name {self.name}",
            details={"registered": ", ".join(self.registered) or "(none)"},
        )


class StorageError(StorageExchangeError):
    """Error raised by a storage backend operation.

    Wraps backend-native exceptions (``OSError``, cloud client errors) so
    callers can handle every backend the same way.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        self.backend = backend
        self.cause = cause
        self.suppressed: List[BaseException] = []

        details = kwargs.pop("details", {})
        if backend:
            details["backend"] = backend
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class NotFoundError(StorageError):
    """The requested path does not exist on the backend."""


class InvalidOperationError(StorageError):
    """The operation is not allowed in the current state.

    Examples:
        - Non-recursive removal of a non-empty folder
        - Any operation on a released backend
        - A path escaping the backend root
    """


class TransferError(StorageError):
    """Byte streaming between two backends failed."""

    def __init__(
        self,
        message: str,
        *,
        source_path: Optional[str] = None,
        target_path: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.source_path = source_path
        self.target_path = target_path

        details = kwargs.pop("details", {})
        if source_path:
            details["source_path"] = source_path
        if target_path:
            details["target_path"] = target_path

        super().__init__(message, details=details, **kwargs)


class FolderCopyError(StorageExchangeError):
    """One or more per-file copies of a folder copy failed.

    No rollback happens: files listed in ``succeeded`` are on the target.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: Dict[str, BaseException],
        succeeded: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> None:
        self.failures = dict(failures)
        self.succeeded = list(succeeded or [])

        failure_lines = "\n".join(
            f"  - {path}: {type(exc).__name__}: {exc}"
            for path, exc in sorted(self.failures.items())
        )
        super().__init__(
            f"{message}\n\nFailed files:\n{failure_lines}",
            details={
                "failed": len(self.failures),
                "succeeded": len(self.succeeded),
            },
            suggestion="Files that copied successfully were not rolled back.",
        )

    @property
    def failed_paths(self) -> List[str]:
        return sorted(self.failures)

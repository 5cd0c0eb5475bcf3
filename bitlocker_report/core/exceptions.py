"""Exceptions raised by the escrow report.

Only failures that abort the run live here. Per-device problems
(unparseable OS versions, unset encryption flags, devices with no
escrowed keys) are absorbed into "Unknown" or zero-key classifications
and never raise.
"""

from typing import Any

# Substrings that must never reach the console in an error message
SENSITIVE_PATTERNS = ["client_secret", "password", "token", "credential"]


class ReportError(Exception):
    """Base exception for escrow report failures."""

    def __init__(
        self, message: str, error_code: str, details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(ReportError):
    """Raised when credentials or report settings are missing or invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, error_code="configuration_error", details=details)


class GraphAPIError(ReportError):
    """Raised when an inventory or key escrow fetch cannot complete."""

    def __init__(
        self,
        message: str,
        error_code: str = "graph_request_failed",
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.status_code = status_code


class ReportRenderError(ReportError):
    """Raised when the workbook cannot be written to its destination."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, error_code="render_failed", details=details)


def sanitize_error(error: Exception) -> str:
    """Return a printable error message with secrets redacted.

    Args:
        error: The exception to describe

    Returns:
        The exception message, or a redaction notice if it mentions secrets
    """
    message = str(error)
    for pattern in SENSITIVE_PATTERNS:
        if pattern in message.lower():
            return f"[REDACTED - {pattern} removed from error]"
    return message

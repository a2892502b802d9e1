"""
Followgraph Exceptions and Error Utilities

File Purpose: Centralized exception types and error classification for the fetch pipeline
Primary Classes/Functions: FollowGraphError, APIError, ErrorKind, AuthenticationError, DataError, PipelineCancelled, handle_error
Inputs and Outputs (I/O): Accepts exceptions and console; prints user-friendly messages
"""

from enum import Enum
from typing import Optional

from rich.console import Console


class FollowGraphError(Exception):
    """Base exception for all followgraph-specific errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.details = details
        self.original_error = original_error
        super().__init__(message)


class ErrorKind(Enum):
    """How a single upstream call failed."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    RATE_LIMITED = "rate_limited"
    API_CODE = "api_code"
    DECODE = "decode"


class APIError(FollowGraphError):
    """Raised when a Bilibili API call fails.

    ``status`` is the HTTP status when a response arrived, ``code`` the
    application-level code from the JSON envelope when one was parsed.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        status: Optional[int] = None,
        code: Optional[int] = None,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, details=details, original_error=original_error)
        self.kind = kind
        self.status = status
        self.code = code

    def __repr__(self) -> str:
        return (
            f"APIError({self.message!r}, kind={self.kind.value}, "
            f"status={self.status}, code={self.code})"
        )


class AuthenticationError(FollowGraphError):
    """Raised when the current session identity cannot be resolved."""

    pass


class DataError(FollowGraphError):
    """Raised when an upstream payload has an unusable shape."""

    pass


class PipelineCancelled(FollowGraphError):
    """Raised at a pipeline checkpoint after cancellation was requested."""

    pass


def handle_error(
    console: Console,
    error: Exception,
    operation: str,
    show_details: bool = False,
) -> None:
    """
    Standardized error reporting for command-line use.

    Args:
        console: Rich console for output
        error: The exception that occurred
        operation: Description of the operation that failed
        show_details: Whether to show detailed error information
    """
    if isinstance(error, FollowGraphError):
        console.print(f"[red]{operation} failed: {error.message}[/]")
        if show_details and error.details:
            console.print(f"[dim]   Details: {error.details}[/]")
        if show_details and error.original_error:
            console.print(f"[dim]   Original error: {error.original_error}[/]")
    else:
        console.print(f"[red]{operation} failed: {str(error)}[/]")
        if show_details:
            console.print(f"[dim]   Error type: {type(error).__name__}[/]")

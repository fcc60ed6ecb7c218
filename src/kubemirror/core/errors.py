"""
Custom exceptions for kubemirror.

This module defines the error taxonomy shared by the change-stream client,
the subscription relay and the client-side mirror.

Exception Hierarchy:
    MirrorError (base)
    ├── StreamError (change-stream failures)
    │   ├── StreamConnectionError (dial/TLS/transport/non-200 failures)
    │   └── DecodeError (malformed change record)
    └── ProtocolError (session protocol misuse)
        ├── AlreadySubscribedError (path already active in the session)
        ├── NotSubscribedError (path not active in the session)
        └── InvalidMessageError (unparseable or unknown client frame)

Example:
    >>> from kubemirror.core.errors import StreamConnectionError
    >>> try:
    ...     raise StreamConnectionError("/api/v1/pods", "Connection refused")
    ... except StreamConnectionError as e:
    ...     print(f"Stream for {e.path} failed: {e}")
"""


class MirrorError(Exception):
    """
    Base exception for all kubemirror errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        """
        Initialize a kubemirror error with message and context.

        Args:
            message: Human-readable error message
            **context: Additional context as keyword arguments
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class StreamError(MirrorError):
    """
    Base exception for change-stream errors.

    Includes the resource path of the stream that failed so the relay can
    scope the resulting error message to a single subscription.

    Attributes:
        path: Resource path of the failing stream
    """

    def __init__(self, path: str, message: str, **context: object) -> None:
        super().__init__(message, path=path, **context)
        self.path = path

    def __str__(self) -> str:
        return f"[{self.path}] {self.message}"


class StreamConnectionError(StreamError):
    """
    Exception for transport-level stream failures.

    Raised when the control plane cannot be reached, the TLS handshake fails,
    the connection drops mid-stream, or the streaming read is answered with a
    non-200 status. The original exception is preserved via ``__cause__``.

    Example:
        >>> import httpx
        >>> try:
        ...     raise httpx.ConnectError("Connection refused")
        ... except httpx.ConnectError as e:
        ...     raise StreamConnectionError(
        ...         "/api/v1/pods", "Failed to connect", url="https://10.0.0.1"
        ...     ) from e
    """

    def __init__(
        self,
        path: str,
        message: str,
        status_code: int | None = None,
        **context: object,
    ) -> None:
        super().__init__(path, message, status_code=status_code, **context)
        self.status_code = status_code


class DecodeError(StreamError):
    """
    Exception for a malformed change record.

    Attributes:
        record: The raw (possibly truncated) record text that failed to decode
    """

    def __init__(self, path: str, message: str, record: str = "", **context: object) -> None:
        super().__init__(path, message, record=record, **context)
        self.record = record


class ProtocolError(MirrorError):
    """
    Base exception for session protocol misuse.

    Protocol errors are reported straight back to the requester and never
    change session state.

    Attributes:
        request_id: ID of the client request that caused the error
        path: Resource path named in the request
    """

    def __init__(
        self, message: str, request_id: str = "", path: str = "", **context: object
    ) -> None:
        super().__init__(message, request_id=request_id, path=path, **context)
        self.request_id = request_id
        self.path = path


class AlreadySubscribedError(ProtocolError):
    """Raised when subscribing to a path that already has an active subscription."""

    def __init__(self, path: str, request_id: str = "") -> None:
        super().__init__("already subscribed to this path", request_id=request_id, path=path)


class NotSubscribedError(ProtocolError):
    """Raised when unsubscribing from a path without an active subscription."""

    def __init__(self, path: str, request_id: str = "") -> None:
        super().__init__("not subscribed to this path", request_id=request_id, path=path)


class InvalidMessageError(ProtocolError):
    """Raised for client frames that cannot be parsed or name an unknown action."""


__all__ = [
    "MirrorError",
    "StreamError",
    "StreamConnectionError",
    "DecodeError",
    "ProtocolError",
    "AlreadySubscribedError",
    "NotSubscribedError",
    "InvalidMessageError",
]

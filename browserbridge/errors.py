"""
BrowserBridge exceptions.

Components raise these; the bridge facade and the request bridge turn them into
``Failed`` results so callers always receive a value.
"""

from __future__ import annotations

from typing import Any, Optional

from browserbridge.core.types import ErrorKind, Failed

EXTENSION_HINT = "Make sure BrowserTools extension is running in Chrome."


class BridgeError(RuntimeError):
    """Base class for bridge errors."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        self.message = message
        self.hint = hint
        super().__init__(message)

    def to_result(self, *, route: Optional[str] = None, label: Optional[str] = None) -> Failed:
        return Failed(kind=self.kind, message=self.message, hint=self.hint, route=route, label=label)


class InstallError(BridgeError):
    """Raised when the server package cannot be fetched or installed."""

    kind = ErrorKind.INSTALL_ERROR


class StartupTimeout(BridgeError):
    """Raised when a spawned server never becomes reachable."""

    kind = ErrorKind.STARTUP_TIMEOUT


class ServerUnavailable(BridgeError):
    """Raised once a managed server failed and its single restart failed too."""

    kind = ErrorKind.SERVER_UNAVAILABLE


class UnknownCommand(BridgeError):
    kind = ErrorKind.UNKNOWN_COMMAND


class InvalidArguments(BridgeError):
    """Raised when a command's arguments do not match its route."""

    kind = ErrorKind.INVALID_ARGUMENTS

    def __init__(self, argument: str, detail: str, *, hint: Optional[str] = None) -> None:
        self.argument = argument
        super().__init__(f"Invalid argument '{argument}': {detail}", hint=hint)


class TransportError(BridgeError):
    """Raised when the server cannot be reached during a request."""

    kind = ErrorKind.TRANSPORT_ERROR


class RequestTimeout(TransportError):
    kind = ErrorKind.REQUEST_TIMEOUT


class ServerError(BridgeError):
    """Raised when the server answers with an HTTP or envelope-level error."""

    kind = ErrorKind.SERVER_ERROR

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
        hint: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.path = path
        self.payload = payload
        status_hint = f" (status={status_code})" if status_code is not None else ""
        path_hint = f" [{path}]" if path else ""
        super().__init__(f"{detail}{status_hint}{path_hint}", hint=hint)


class MalformedResponse(BridgeError):
    """Raised when the server's response body cannot be parsed."""

    kind = ErrorKind.MALFORMED_RESPONSE

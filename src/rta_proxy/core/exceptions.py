"""
Custom exceptions for the RTA proxy.

Each exception carries the HTTP status code and the message returned to the
caller as ``{"error": <message>}``.
"""

from typing import Any, Dict, Optional


class RtaProxyException(Exception):
    """Base exception for the RTA proxy."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ClientAuthorizationError(RtaProxyException):
    """Raised when pub_id is missing or not on the allow list."""

    def __init__(self, message: str = "invalid pub_id", reason: str = "invalid") -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="authorization_error",
            details={"reason": reason},
        )
        self.reason = reason


class ClientRequestError(RtaProxyException):
    """Raised for unsupported endpoints or unreadable request bodies."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="request_error",
            details=details,
        )


class UpstreamRequestError(RtaProxyException):
    """Raised when the upstream request cannot be constructed."""

    def __init__(self, message: str = "rta request failed", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="upstream_request_error",
            details=details,
        )


class UpstreamTransportError(RtaProxyException):
    """Raised when the upstream call fails at the network level."""

    def __init__(self, message: str = "rta request failed", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="upstream_transport_error",
            details=details,
        )


class UpstreamResponseError(RtaProxyException):
    """Raised when the upstream response body cannot be read."""

    def __init__(
        self,
        message: str = "failed to read response body",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="upstream_response_error",
            details=details,
        )


class ConfigLoadError(RtaProxyException):
    """Raised when the pub_id document is unreadable or malformed.

    Never reaches a caller; the config loader handles it.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="config_load_error",
            details=details,
        )


class ClientDisconnectedError(RtaProxyException):
    """Raised when the caller goes away while the upstream call is in flight."""

    def __init__(self, message: str = "client disconnected") -> None:
        super().__init__(
            message=message,
            status_code=499,
            error_code="client_disconnected",
        )

"""Typed failures for Spotify calls and the classifier that produces them.

Every failed request ends up as exactly one of:

- AuthenticationError  (401, missing/expired credential, token endpoint refusal)
- RateLimitError       (429, optional Retry-After hint in seconds)
- SpotifyAPIError      (any other non-2xx; keeps status, message and raw body)
- NetworkError         (no response at all: DNS, connect, timeout)

Anything that is not a transport outcome (bad URL, unsupported scheme, ...)
is not classified and propagates as-is.
"""

import json
from enum import Enum
from typing import Any, Optional

import httpx


class FailureKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    REMOTE = "remote"
    TRANSPORT = "transport"


class SpotifyError(Exception):
    """Base class for classified Spotify failures."""

    kind: FailureKind = FailureKind.REMOTE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    @property
    def recovery_suggestion(self) -> str:
        if self.kind is FailureKind.AUTHENTICATION:
            return "Log in to Spotify again."
        if self.kind is FailureKind.RATE_LIMITED:
            return "Spotify is rate limiting requests. Wait a moment and try again."
        if self.kind is FailureKind.TRANSPORT:
            return "Check your internet connection and try again."
        return "The request was rejected by Spotify."


class SpotifyAPIError(SpotifyError):
    kind = FailureKind.REMOTE

    def __init__(self, message: str = "Spotify API error", status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"Spotify API error {self.status}: {self.message}"


class AuthenticationError(SpotifyAPIError):
    kind = FailureKind.AUTHENTICATION

    def __init__(self, message: str = "Authentication failed", body: Any = None):
        super().__init__(message, 401, body)

    def __str__(self) -> str:
        return self.message


class RateLimitError(SpotifyAPIError):
    kind = FailureKind.RATE_LIMITED

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None, body: Any = None):
        super().__init__(message, 429, body)
        self.retry_after = retry_after

    def __str__(self) -> str:
        if self.retry_after is None:
            return self.message
        return f"{self.message} (retry after {self.retry_after}s)"


class NetworkError(SpotifyError):
    kind = FailureKind.TRANSPORT

    def __init__(self, message: str = "Network error", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


# Transport exceptions that mean "no response reached us".
_NO_RESPONSE_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.ProtocolError,
    httpx.ProxyError,
)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def response_body(response: httpx.Response) -> Any:
    """Return the parsed JSON body, or the raw text when it is not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def _server_message(body: Any) -> Optional[str]:
    # Web API: {"error": {"status": 404, "message": "..."}}
    # Accounts: {"error": "invalid_grant", "error_description": "..."}
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if body.get("error_description"):
        return str(body["error_description"])
    return None


def classify_response(response: httpx.Response) -> SpotifyError:
    """Map a non-2xx response to its typed failure."""

    status = response.status_code
    body = response_body(response)

    if status == 401:
        return AuthenticationError("Invalid or expired token", body=body)

    if status == 429:
        return RateLimitError(
            "Rate limit exceeded",
            retry_after=parse_retry_after(response.headers.get("retry-after")),
            body=body,
        )

    return SpotifyAPIError(_server_message(body) or "Spotify API error", status, body)


def classify_transport_error(exc: httpx.RequestError) -> Optional[SpotifyError]:
    """Map an httpx exception raised before any response arrived.

    Returns None when the exception is not a transport outcome; the caller
    re-raises the original exception in that case.
    """

    if isinstance(exc, _NO_RESPONSE_ERRORS):
        return NetworkError("Network error", exc)
    return None


def token_endpoint_message(exc: Exception, default: str) -> str:
    """Best-effort error_description from a failed token endpoint call."""
    if isinstance(exc, SpotifyAPIError):
        return _server_message(exc.body) or default
    return default


__all__ = [
    "FailureKind",
    "SpotifyError",
    "SpotifyAPIError",
    "AuthenticationError",
    "RateLimitError",
    "NetworkError",
    "classify_response",
    "classify_transport_error",
    "parse_retry_after",
    "response_body",
    "token_endpoint_message",
]

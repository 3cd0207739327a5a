"""Error taxonomy shared by the client, the engines and the HTTP surface.

Every error that can reach a caller is a BridgeError. Its to_dict() is the
structured payload returned to the agent; it never includes raw response
bodies or stack traces.
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for all errors surfaced to callers."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "type": type(self).__name__}


class AuthenticationError(BridgeError):
    """Raised on a remote 401 or a missing/expired session credential."""

    def __init__(
        self,
        message: str = "Authentication failed. Please re-authenticate via the web interface.",
    ) -> None:
        super().__init__(message)


class NoCredential(AuthenticationError):
    """Raised when a session is requested but no upstream credential exists."""

    def __init__(
        self,
        message: str = "Not authenticated. Please authenticate via the web interface first.",
    ) -> None:
        super().__init__(message)


class RateLimitExceeded(BridgeError):
    """Raised when a caller or the remote API is over its request budget."""

    def __init__(
        self,
        retry_after: float | None = None,
        message: str = "Rate limit exceeded. Please try again later.",
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


class RemoteAPIError(BridgeError):
    """Raised when the remote API fails in a way that is not retried.

    status_code is 0 when no HTTP response was received at all.
    """

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")

    def to_dict(self) -> dict[str, Any]:
        # detail may carry the remote body; only the status leaves the process.
        return {
            "error": f"Remote API request failed (HTTP {self.status_code})",
            "type": type(self).__name__,
            "status_code": self.status_code,
        }


class TransientRemoteError(RemoteAPIError):
    """Raised when a 5xx or timeout persists after the retry budget."""

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["error"] = (
            "The remote API is temporarily unavailable "
            f"(HTTP {self.status_code}). Please try again later."
        )
        return payload


class ValidationError(BridgeError):
    """Raised when an operation's input record is malformed."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "Validation error",
            "type": type(self).__name__,
            "field": self.field,
            "details": self.reason,
        }


class PartialDataUnavailable(BridgeError):
    """An optional sub-fetch failed. Recovered locally, never surfaced."""

    def __init__(self, source: str, cause: BaseException) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"{source} unavailable ({type(cause).__name__})")


class FatalDependencyUnavailable(BridgeError):
    """Every known endpoint for a required resource failed."""

    def __init__(self, resource: str, message: str) -> None:
        self.resource = resource
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["resource"] = self.resource
        return payload

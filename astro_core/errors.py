"""
Typed failures raised by the gateway.

Every exception carries an HTTP ``status`` that the API error middleware
uses when rendering it.  Lower layers (registry, sessions, RPC) raise;
orchestrators decide whether a sub-failure ends the whole call.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base exception for the gateway."""

    status = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(GatewayError):
    """Invalid static configuration (e.g. a chain with no endpoints)."""


class ValidationFailure(GatewayError):
    """Malformed or missing caller input, detected before any network I/O."""

    status = 400


class NotFound(GatewayError):
    """The query succeeded but the target does not exist."""

    status = 404


class NoObjectsRetrievable(NotFound):
    """A batch object fetch produced no objects at all."""

    def __init__(self, message: str = "Couldn't retrieve objects", details: Optional[dict] = None):
        super().__init__(message, details)


class ConnectivityFailure(GatewayError):
    """Endpoint unreachable, or the handshake failed or timed out."""

    status = 503

    def __init__(self, message: str, endpoint: str = "", cause: Optional[BaseException] = None):
        super().__init__(message, {"endpoint": endpoint})
        self.endpoint = endpoint
        self.cause = cause


class RemoteCallFailure(GatewayError):
    """The node rejected or errored on a specific call."""

    status = 502

    def __init__(self, message: str, method: str = "", details: Optional[dict] = None):
        super().__init__(message, details)
        self.method = method


class ApiUnavailable(RemoteCallFailure):
    """The node did not grant the API a call needs (e.g. no database API)."""

    def __init__(self, api: str, method: str = ""):
        super().__init__(f"no {api} api", method=method, details={"api": api})
        self.api = api


class UpstreamFailure(GatewayError):
    """The external history service answered with an error."""

    status = 502


class TransactionStepFailure(GatewayError):
    """A transaction build step failed; carries the step name and cause."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"{step} failed: {cause}", {"step": step})
        self.step = step
        self.cause = cause
        self.status = getattr(cause, "status", 500)

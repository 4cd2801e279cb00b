"""Gateway error taxonomy.

Every failure the core can surface is a ``GatewayError`` subclass carrying the
HTTP status and error code it is rendered with. A single exception handler in
``moltguard.main`` turns them into ``{"error": {...}}`` JSON bodies.

A policy BLOCK is not an error: it is a ``PolicyDecision`` answered in-band.
"""

from __future__ import annotations

from typing import Any, Optional

from moltguard.constants import CLASSIFIER_RETRY_AFTER_S


class GatewayError(Exception):
    """Base class for all errors surfaced to the gateway's caller."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, Any]:
        return {"error": {"message": self.message, "code": self.code}}

    def headers(self) -> Optional[dict[str, str]]:
        return None


class ClassifierNotProvisioned(GatewayError):
    """Backend answered 404 for the guard model: it has not been pulled yet."""

    status_code = 503
    code = "classifier_not_provisioned"

    def __init__(self, model: str) -> None:
        super().__init__(
            f"Guard model '{model}' is not available on the backend yet "
            "(it may still be downloading). Please retry shortly."
        )
        self.model = model

    def headers(self) -> Optional[dict[str, str]]:
        return {"Retry-After": str(CLASSIFIER_RETRY_AFTER_S)}


class BackendError(GatewayError):
    """Backend returned a non-success status on a structured call."""

    status_code = 502
    code = "backend_error"

    def __init__(self, backend_status: int, context: str = "Backend") -> None:
        super().__init__(f"{context} returned error: {backend_status}")
        self.backend_status = backend_status

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["error"]["backend_status"] = self.backend_status
        return body


class TransportFailure(GatewayError):
    """The backend could not be reached (connect, timeout, protocol error)."""

    status_code = 500
    code = "backend_unreachable"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Backend unreachable: {reason}")
        self.reason = reason


class DecodeFailure(GatewayError):
    """A payload did not conform to its schema.

    ``side="client"`` is the caller's fault (400); ``side="backend"`` means the
    backend sent something unexpected (500).
    """

    def __init__(self, detail: str, side: str = "client") -> None:
        if side == "client":
            message = f"Invalid request body: {detail}"
        else:
            message = f"Invalid backend response: {detail}"
        super().__init__(message)
        self.side = side
        self.status_code = 400 if side == "client" else 500
        self.code = "invalid_request" if side == "client" else "invalid_backend_response"

"""Error taxonomy shared by the resolvers, provisioning and the HTTP layer.

Each error carries a stable ``kind`` so callers can pick the remediation
(reconnect, administrator setup, retry later) without parsing messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NOT_CONNECTED = "not_connected"
    RECONNECT_REQUIRED = "reconnect_required"
    NOT_CONFIGURED = "not_configured"
    PROVIDER_ERROR = "provider_error"
    CONFLICT = "conflict"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_CONNECTED: 409,
    ErrorKind.RECONNECT_REQUIRED: 401,
    ErrorKind.NOT_CONFIGURED: 503,
    ErrorKind.PROVIDER_ERROR: 502,
    ErrorKind.CONFLICT: 409,
}


class IntakeError(Exception):
    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class NotFoundError(IntakeError):
    kind = ErrorKind.NOT_FOUND


class NotConnectedError(IntakeError):
    kind = ErrorKind.NOT_CONNECTED


class ReconnectRequiredError(IntakeError):
    kind = ErrorKind.RECONNECT_REQUIRED


class NotConfiguredError(IntakeError):
    kind = ErrorKind.NOT_CONFIGURED


class ProviderError(IntakeError):
    kind = ErrorKind.PROVIDER_ERROR


class ConflictError(IntakeError):
    kind = ErrorKind.CONFLICT

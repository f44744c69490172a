"""Mediator error taxonomy."""

from __future__ import annotations

from enum import StrEnum


class FailureReason(StrEnum):
    """Why a registration, request, or command execution did not succeed."""

    INVALID_REGISTRATION = "invalid_registration"
    TARGET_UNAVAILABLE = "target_unavailable"
    NO_PROVIDER = "no_provider"
    REQUEST_TIMED_OUT = "request_timed_out"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    TRANSPORT_LOST = "transport_lost"
    HANDLER_FAILURE = "handler_failure"
    REJECTED = "rejected"
    REMOTE_ERROR = "remote_error"
    CONFIRMATION_TIMED_OUT = "confirmation_timed_out"


class MediatorError(Exception):
    """Mediator operation error with stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    @property
    def reason(self) -> FailureReason | None:
        try:
            return FailureReason(self.code)
        except ValueError:
            return None


class ProtocolError(ValueError):
    """Envelope could not be decoded."""

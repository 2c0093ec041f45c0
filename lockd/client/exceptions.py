"""Exceptions raised by the lockd client."""

from typing import Any

from lockd.exceptions import InvalidArgument


class LockClientError(Exception):
    """Base exception for lockd client failures."""


class TransportFailure(LockClientError):
    """Raised when a call could not be carried to the service and back."""


class RemoteError(TransportFailure):
    """Raised when the service answered with an error envelope."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(f"{code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.request_id = request_id
        self.details = details or {}


__all__ = ["InvalidArgument", "LockClientError", "RemoteError", "TransportFailure"]

from typing import Any


class LockdError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidArgument(ValueError):
    """Raised when a resource, id or duration is rejected before any call is made."""

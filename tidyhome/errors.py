from typing import Any, Optional


class ServiceError(Exception):
    """Base error raised by the service layer; carries the HTTP status to answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class ValidationFailed(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", **extra: Any):
        super().__init__(message, **extra)


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    """Absent or invisible to the caller; the two cases are not told apart."""

    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class NotImplementedYet(ServiceError):
    status_code = 501

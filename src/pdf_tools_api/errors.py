from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    @property
    def public_message(self) -> str:
        return self.message


class AuthError(ApiError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(code="UNAUTHORIZED", message=message, status_code=401)


class BadRequestError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(code="BAD_REQUEST", message=message, status_code=400)


class RateLimitError(ApiError):
    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(code="RATE_LIMITED", message=message, status_code=429)


class InternalError(ApiError):
    """Server-side failure; the message is logged but never sent to the client."""

    def __init__(self, message: str) -> None:
        super().__init__(code="INTERNAL_ERROR", message=message, status_code=500)

    @property
    def public_message(self) -> str:
        return "Internal Server Error"

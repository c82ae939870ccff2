from __future__ import annotations

from fastapi import status


class SubscriptionError(Exception):
    """Terminal failure of a single subscription attempt."""

    code: str = "InternalError"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Failed to subscribe. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def headers(self) -> dict[str, str] | None:
        return None


class InvalidEmail(SubscriptionError):
    code = "InvalidEmail"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Please enter a valid email address."


class ChallengeFailed(SubscriptionError):
    code = "ChallengeFailed"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Challenge verification failed. Please try again."


class RateLimited(SubscriptionError):
    code = "RateLimited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: str | None = None, *, retry_after: int = 1) -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))

    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.retry_after)}


class InternalError(SubscriptionError):
    code = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

"""Custom exception classes for the API."""

from typing import Any


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int = 400, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Validation error."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=422, details=details)


class QuotaExceededError(APIError):
    """Daily analysis quota reached for the user's tier."""

    def __init__(self, user_id: str, tier: str, count: int, limit: int):
        self.user_id = user_id
        self.tier = tier
        self.count = count
        self.limit = limit
        super().__init__(
            message=f"Daily analysis limit reached: {count}/{limit} for tier '{tier}'",
            status_code=429,
            details={"user_id": user_id, "tier": tier, "count": count, "limit": limit},
        )

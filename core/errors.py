"""Domain errors raised by storage and services.

Each error carries the HTTP status and machine-readable code the route layer
renders; the core never maps errors to responses itself.
"""
from typing import Any, Dict, Optional


class FanlistError(Exception):
    status_code: int = 400
    code: str = "error"
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class NotFoundError(FanlistError):
    status_code = 404
    code = "not_found"
    default_detail = "Resource not found"


class UnauthorizedError(FanlistError):
    status_code = 401
    code = "unauthorized"
    default_detail = "Authentication required"


class ForbiddenError(FanlistError):
    status_code = 403
    code = "forbidden"
    default_detail = "You are not allowed to perform this action"


class PremiumRequiredError(ForbiddenError):
    code = "premium_required"
    default_detail = "Premium access required"

    def __init__(self, detail: Optional[str] = None, user_status: Optional[str] = None):
        super().__init__(detail)
        self.user_status = user_status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["premiumRequired"] = True
        if self.user_status is not None:
            data["userStatus"] = self.user_status
        return data


class ConflictError(FanlistError):
    status_code = 409
    code = "conflict"
    default_detail = "Resource already exists"


class InsufficientPointsError(FanlistError):
    code = "insufficient_points"
    default_detail = "Not enough points"

    def __init__(self, detail: Optional[str] = None, required: int = 0, available: int = 0):
        super().__init__(detail)
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["required"] = self.required
        data["available"] = self.available
        return data


class UnavailableError(FanlistError):
    code = "unavailable"
    default_detail = "Store item is not available"


class QuotaExceededError(FanlistError):
    status_code = 403
    code = "quota_exceeded"
    default_detail = "Limit reached"

    def __init__(self, detail: Optional[str] = None, limit: Optional[int] = None, remaining: Optional[int] = None):
        super().__init__(detail)
        self.limit = limit
        self.remaining = remaining

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.limit is not None:
            data["rateLimitInfo"] = {"remaining": self.remaining or 0, "limit": self.limit}
        return data


class ValidationError(FanlistError):
    code = "validation_error"
    default_detail = "Invalid input"


class InvalidTransitionError(FanlistError):
    status_code = 409
    code = "invalid_transition"
    default_detail = "Invalid status transition"


class ServiceUnavailableError(FanlistError):
    status_code = 503
    code = "service_unavailable"
    default_detail = "External service unavailable"

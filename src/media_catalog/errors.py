"""
Application error hierarchy.

Every error carries the HTTP status the API layer should answer with, a stable
machine-readable code and an `is_operational` flag (False means a programming
error rather than a runtime condition).
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all catalog errors"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Internal error",
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        is_operational: bool = True,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.is_operational = is_operational

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses (never includes tracebacks)"""
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(AppError):
    """Malformed query input (bad range, bad year, bad parameter)"""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", details: Optional[Any] = None):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        obj = super().to_dict()
        if self.details is not None:
            obj["error"]["details"] = self.details
        return obj


class NotFoundError(AppError):
    """A requested resource does not exist"""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource

    def to_dict(self) -> Dict[str, Any]:
        obj = super().to_dict()
        if self.resource:
            obj["error"]["resource"] = self.resource
        return obj


class DatabaseError(AppError):
    """A primary store operation failed"""

    status_code = 503
    code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database operation failed", operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        obj = super().to_dict()
        if self.operation:
            obj["error"]["operation"] = self.operation
        return obj


class DependencyUnavailableError(AppError):
    """A dependency is known to be down; the call was not attempted"""

    status_code = 503
    code = "DEPENDENCY_UNAVAILABLE"

    def __init__(self, message: str = "Dependency unavailable", service: Optional[str] = None):
        super().__init__(message)
        self.service = service

    def to_dict(self) -> Dict[str, Any]:
        obj = super().to_dict()
        if self.service:
            obj["error"]["service"] = self.service
        return obj


class GatewayTimeoutError(AppError):
    status_code = 504
    code = "GATEWAY_TIMEOUT"

    def __init__(self, message: str = "Gateway Timeout"):
        super().__init__(message)


class UnsupportedQueryError(AppError):
    """
    A filter operator or aggregation stage the in-memory engine cannot evaluate.

    Not operational: it means caller code built a query outside the supported
    subset, which would make the two backends disagree.
    """

    status_code = 500
    code = "UNSUPPORTED_QUERY"

    def __init__(self, message: str, construct: Optional[str] = None):
        super().__init__(message, is_operational=False)
        self.construct = construct

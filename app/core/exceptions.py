from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status


class AppException(HTTPException):
    """Domain failure that the exception handler renders with a stable error code."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, detail: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.details = details


class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictException(AppException):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class NotEligibleException(AppException):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NOT_ELIGIBLE"


class IncompleteException(AppException):
    status_code = status.HTTP_409_CONFLICT
    code = "INCOMPLETE"


class UnauthorizedException(AppException):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ValidationFailedException(AppException):
    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, detail: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(detail, details={"validation_errors": field_errors or []})
        self.field_errors = field_errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailedException":
        return cls(message, field_errors=[{"field": field, "message": message}])


class AIGradingUnavailableException(AppException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "AI_GRADING_UNAVAILABLE"

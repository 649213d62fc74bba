"""
Standardized exception handling for the EVA ERP Assistant
Every error leaves the API in one envelope: {"error": {code, message, category, ...}}
"""

import logging
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories; each maps to one HTTP status"""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    EXTERNAL_SERVICE = "external_service"
    LLM_SERVICE = "llm_service"
    PROCESSING = "processing"
    SYSTEM = "system"


class ErrorDetails(BaseModel):
    code: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    recoverable: bool = True
    retry_after_seconds: Optional[int] = None


class EVAException(Exception):
    """
    Base exception for all EVA ERP Assistant errors.

    Subclasses fix the code, category and suggestions; the category alone
    decides the HTTP status (see ``status_code``).
    """

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        recoverable: bool = True,
        retry_after_seconds: Optional[int] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(message)
        self.details = ErrorDetails(
            code=code,
            message=message,
            category=category,
            severity=severity,
            correlation_id=correlation_id,
            context=context or {},
            suggestions=suggestions or [],
            recoverable=recoverable,
            retry_after_seconds=retry_after_seconds
        )

    @property
    def status_code(self) -> int:
        return _get_status_code_for_category(self.details.category)

    def to_dict(self) -> Dict[str, Any]:
        """Error envelope for API responses"""
        return {"error": self.details.model_dump(mode="json")}

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat fields for structured logging ``extra``"""
        return {
            "error_code": self.details.code,
            "error_category": self.details.category.value,
            "error_severity": self.details.severity.value,
            "correlation_id": self.details.correlation_id,
            "error_context": self.details.context,
        }


# Specific exception classes for different error scenarios

class ValidationException(EVAException):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: str, value: Any = None, **kwargs):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            context={"field": field, "value": str(value)[:100]},
            suggestions=["Check input format and try again", "Refer to API documentation"],
            **kwargs
        )


class NotFoundException(EVAException):
    """Raised when an explicitly requested resource does not exist"""

    def __init__(self, message: str, resource: str, identifier: str, **kwargs):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            context={"resource": resource, "identifier": identifier},
            suggestions=["Verify the identifier", "The session may have expired"],
            **kwargs
        )


class AuthenticationException(EVAException):
    """Raised when the API key gate rejects a request"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.MEDIUM,
            suggestions=["Provide a valid X-API-Key header"],
            recoverable=False,
            **kwargs
        )


class RateLimitedException(EVAException):
    """Raised when a client exceeds its request quota"""

    def __init__(self, message: str, limit: int, window_seconds: int, retry_after_seconds: int, **kwargs):
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            category=ErrorCategory.RATE_LIMIT,
            severity=ErrorSeverity.LOW,
            context={"limit": limit, "window_seconds": window_seconds},
            suggestions=["Slow down and retry after the indicated delay"],
            retry_after_seconds=retry_after_seconds,
            **kwargs
        )


class LLMServiceException(EVAException):
    """Raised when LLM service operations fail"""

    def __init__(self, message: str, model: str, operation: str, code: str = "LLM_SERVICE_ERROR",
                 category: ErrorCategory = ErrorCategory.LLM_SERVICE, **kwargs):
        kwargs.setdefault("retry_after_seconds", 60)
        super().__init__(
            message=message,
            code=code,
            category=category,
            severity=ErrorSeverity.HIGH,
            context={"model": model, "operation": operation},
            suggestions=[
                "Check API key validity",
                "Verify model availability",
                "Review request parameters"
            ],
            **kwargs
        )


class UpstreamTimeoutException(LLMServiceException):
    """Raised when the model provider does not answer within the time budget"""

    def __init__(self, model: str, timeout_seconds: float, **kwargs):
        super().__init__(
            message=f"Request timeout after {timeout_seconds}s",
            model=model,
            operation="chat_completion",
            code="UPSTREAM_TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            **kwargs
        )
        self.details.context["timeout_seconds"] = timeout_seconds


class UpstreamEmptyResponseException(LLMServiceException):
    """Raised when the model provider returns no usable content"""

    def __init__(self, model: str, **kwargs):
        super().__init__(
            message="No response content received from the model provider",
            model=model,
            operation="chat_completion",
            code="UPSTREAM_EMPTY_RESPONSE",
            **kwargs
        )


class ProcessingException(EVAException):
    """Raised when processing operations fail"""

    def __init__(self, message: str, process_step: str, **kwargs):
        super().__init__(
            message=message,
            code="PROCESSING_ERROR",
            category=ErrorCategory.PROCESSING,
            severity=ErrorSeverity.MEDIUM,
            context={"process_step": process_step},
            suggestions=[
                "Review input data quality",
                "Try again with different inputs"
            ],
            **kwargs
        )


# Exception handlers for FastAPI

def _correlate(request: Request, exc: EVAException) -> EVAException:
    if exc.details.correlation_id is None:
        exc.details.correlation_id = getattr(request.state, "request_id", None)
    return exc


def _error_response(exc: EVAException, status_code: Optional[int] = None,
                    headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or exc.status_code,
        content=exc.to_dict(),
        headers=headers if headers is not None else error_headers(exc.details)
    )


async def eva_exception_handler(request: Request, exc: EVAException) -> JSONResponse:
    logger = logging.getLogger("exception_handler")
    _correlate(request, exc)

    if exc.status_code >= 500:
        logger.error(f"EVA exception occurred: {exc.details.code}", extra=exc.to_log_dict())
    else:
        logger.warning(f"EVA exception occurred: {exc.details.code}", extra=exc.to_log_dict())

    return _error_response(exc)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    FastAPI body/path/query validation failures, reported as 400 like every
    other validation error
    """
    logger = logging.getLogger("validation_handler")
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"

    eva_exc = _correlate(request, ValidationException(
        message=first.get("msg", "Invalid request"),
        field=field,
        value=first.get("input")
    ))
    eva_exc.details.context["errors"] = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in errors
    ]
    logger.warning(f"Validation error on {field}: {eva_exc.details.message}")

    return _error_response(eva_exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Plain HTTP errors (unknown routes, wrong methods) in the EVA envelope"""
    eva_exc = _correlate(request, EVAException(
        message=str(exc.detail),
        code="HTTP_ERROR",
        category=_get_category_for_status(exc.status_code),
        severity=_get_severity_for_status(exc.status_code),
        context={"status_code": exc.status_code, "path": request.url.path}
    ))
    return _error_response(eva_exc, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger = logging.getLogger("exception_handler")
    logger.error(f"Unhandled exception on {request.url.path}: {type(exc).__name__}: {exc}", exc_info=True)

    eva_exc = _correlate(request, EVAException(
        message="Internal server error",
        code="INTERNAL_ERROR",
        severity=ErrorSeverity.HIGH,
        context={"path": request.url.path},
        suggestions=["Contact support if this persists"]
    ))
    return _error_response(eva_exc)


# Utility functions

def _get_status_code_for_category(category: ErrorCategory) -> int:
    category_status_map = {
        ErrorCategory.VALIDATION: 400,
        ErrorCategory.AUTHENTICATION: 401,
        ErrorCategory.NOT_FOUND: 404,
        ErrorCategory.RATE_LIMIT: 429,
        ErrorCategory.TIMEOUT: 504,
        ErrorCategory.EXTERNAL_SERVICE: 502,
        ErrorCategory.LLM_SERVICE: 502,
    }
    return category_status_map.get(category, 500)


def _get_category_for_status(status_code: int) -> ErrorCategory:
    status_category_map = {
        400: ErrorCategory.VALIDATION,
        401: ErrorCategory.AUTHENTICATION,
        404: ErrorCategory.NOT_FOUND,
        405: ErrorCategory.VALIDATION,
        413: ErrorCategory.VALIDATION,
        429: ErrorCategory.RATE_LIMIT,
        502: ErrorCategory.EXTERNAL_SERVICE,
        504: ErrorCategory.TIMEOUT
    }
    return status_category_map.get(status_code, ErrorCategory.SYSTEM)


def _get_severity_for_status(status_code: int) -> ErrorSeverity:
    return ErrorSeverity.MEDIUM if status_code < 500 else ErrorSeverity.HIGH


def error_headers(error_details: ErrorDetails) -> Dict[str, str]:
    """X-Error-* headers, plus Retry-After when the error is retryable later"""
    headers = {
        "X-Error-Code": error_details.code,
        "X-Error-Category": error_details.category.value
    }
    if error_details.correlation_id:
        headers["X-Correlation-Id"] = error_details.correlation_id
    if error_details.retry_after_seconds:
        headers["Retry-After"] = str(error_details.retry_after_seconds)
    return headers

"""
Error Handling for the Gradebook Engine

This module defines the typed failures returned by the engine:
1. Error codes and severities shared by every failure
2. A base exception carrying structured details and an optional cause
3. The engine's failure taxonomy (not found, attempt limits, state guards,
   identity checks, validation and storage failures)
4. Helpers that turn failures into API error bodies and log lines
"""

import json
import logging
import traceback
from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for the gradebook engine"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_AUTHORIZED = "not_authorized"
    NOT_FOUND = "not_found"

    # Attempt lifecycle errors
    ATTEMPT_LIMIT_EXCEEDED = "attempt_limit_exceeded"
    ATTEMPT_NOT_EDITABLE = "attempt_not_editable"
    ATTEMPT_CONFLICT = "attempt_conflict"
    ASSESSMENT_UNAVAILABLE = "assessment_unavailable"

    # Persistence errors
    STORAGE_ERROR = "storage_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Format stack trace if it's a string"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class GradebookError(Exception):
    """Base exception class for all gradebook errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exc().splitlines()

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details or None,
            exception_type=type(self).__name__,
            stack_trace=stack_trace,
            context=self.context or None
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        """Convert the exception to a JSON string"""
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class NotFoundError(GradebookError):
    """Error raised when an assessment, question, attempt or rubric is missing"""

    def __init__(self, resource_type: str, resource_id: Any, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{resource_type} with ID {resource_id} not found",
            code=ErrorCode.NOT_FOUND,
            severity=ErrorSeverity.WARNING,
            details={"resource_type": resource_type, "resource_id": resource_id},
            context=context
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(GradebookError):
    """Error raised for malformed answer data, bad points or unknown types"""

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details={"errors": errors} if errors else None,
            cause=cause,
            context=context
        )
        self.errors = errors or {}


class NotAuthenticated(GradebookError):
    """Error raised when no caller identity is available"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code=ErrorCode.NOT_AUTHENTICATED,
            severity=ErrorSeverity.WARNING
        )


class NotAuthorized(GradebookError):
    """Error raised when the caller may not act on a resource"""

    def __init__(self, message: str, resource: Optional[str] = None, action: Optional[str] = None):
        details = {}
        if resource is not None:
            details["resource"] = resource
        if action is not None:
            details["action"] = action
        super().__init__(
            message=message,
            code=ErrorCode.NOT_AUTHORIZED,
            severity=ErrorSeverity.WARNING,
            details=details
        )
        self.resource = resource
        self.action = action


class AttemptLimitExceeded(GradebookError):
    """Error raised when a learner has used up an assessment's attempts"""

    def __init__(self, assessment_id: str, user_id: str, max_attempts: int):
        super().__init__(
            message=(
                f"User {user_id} has reached the maximum of {max_attempts} "
                f"attempts for assessment {assessment_id}"
            ),
            code=ErrorCode.ATTEMPT_LIMIT_EXCEEDED,
            severity=ErrorSeverity.WARNING,
            details={
                "assessment_id": assessment_id,
                "user_id": user_id,
                "max_attempts": max_attempts
            }
        )
        self.max_attempts = max_attempts


class AttemptNotEditable(GradebookError):
    """Error raised when an attempt's status forbids the requested change"""

    def __init__(self, attempt_id: str, status: Optional[str], action: str):
        super().__init__(
            message=f"Attempt {attempt_id} cannot be {action} while its status is {status}",
            code=ErrorCode.ATTEMPT_NOT_EDITABLE,
            severity=ErrorSeverity.WARNING,
            details={"attempt_id": attempt_id, "status": status, "action": action}
        )
        self.attempt_id = attempt_id
        self.status = status
        self.action = action


class AssessmentUnavailable(GradebookError):
    """Error raised when an assessment cannot be started right now"""

    def __init__(self, assessment_id: str, reason: str):
        super().__init__(
            message=f"Assessment {assessment_id} is not available: {reason}",
            code=ErrorCode.ASSESSMENT_UNAVAILABLE,
            severity=ErrorSeverity.WARNING,
            details={"assessment_id": assessment_id, "reason": reason}
        )
        self.reason = reason


class AttemptConflictError(GradebookError):
    """Error raised when two starts race for the same attempt number"""

    def __init__(self, assessment_id: str, user_id: str, attempt_number: int, cause: Optional[Exception] = None):
        super().__init__(
            message=(
                f"Attempt number {attempt_number} for user {user_id} on "
                f"assessment {assessment_id} was taken concurrently"
            ),
            code=ErrorCode.ATTEMPT_CONFLICT,
            severity=ErrorSeverity.INFO,
            details={
                "assessment_id": assessment_id,
                "user_id": user_id,
                "attempt_number": attempt_number
            },
            cause=cause
        )


class StorageError(GradebookError):
    """Error raised when the persistence layer fails"""

    def __init__(self, message: str, cause: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Storage error: {message}",
            code=ErrorCode.STORAGE_ERROR,
            severity=ErrorSeverity.ERROR,
            cause=cause,
            context=context
        )


_HTTP_STATUS = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_AUTHENTICATED: 401,
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ATTEMPT_LIMIT_EXCEEDED: 409,
    ErrorCode.ATTEMPT_NOT_EDITABLE: 409,
    ErrorCode.ATTEMPT_CONFLICT: 409,
    ErrorCode.ASSESSMENT_UNAVAILABLE: 409,
    ErrorCode.STORAGE_ERROR: 503,
}


def http_status_for(error: GradebookError) -> int:
    """Map an error to the HTTP status the API layer responds with."""
    return _HTTP_STATUS.get(error.code, 500)


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: Optional[Dict[str, Any]] = None
) -> GradebookError:
    """
    Convert a foreign exception to a GradebookError.

    GradebookErrors pass through, with ``context`` merged in.
    """
    if isinstance(exception, GradebookError):
        if context:
            exception.context.update(context)
        return exception

    return GradebookError(
        message=str(exception) or default_message,
        cause=exception,
        context=context
    )


def error_response(error: Union[GradebookError, Exception], include_details: bool = True) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to describe
        include_details: Whether to include the error's details

    Returns:
        ``{"status": "error", "code": ..., "message": ...[, "details": ...]}``
    """
    if not isinstance(error, GradebookError):
        error = convert_exception(error)

    response: Dict[str, Any] = {
        "status": "error",
        "code": error.code.value,
        "message": error.message
    }

    if include_details and error.details:
        response["details"] = error.details

    return response


def log_error(
    error: Union[GradebookError, Exception],
    level: int = logging.ERROR,
    context: Optional[Dict[str, Any]] = None,
    target: Optional[logging.Logger] = None
) -> None:
    """Log an error with its code, context and cause on one line."""
    error = convert_exception(error, context=context)

    message = f"ERROR [{error.code.value}]: {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"

    (target or logger).log(level, message)

"""
Custom exception classes for the performance appraisal service.

Every error carries a stable ``code`` so callers at the transition boundary
can react to the failure without parsing messages, plus a user-friendly
message suitable for display.
"""

from __future__ import annotations

from typing import Any


class AppraisalError(Exception):
    """Base exception for all application errors."""

    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.user_message, "details": self.details}

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(AppraisalError):
    """Raised when input validation fails."""

    code = "VALIDATION_FAILED"

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class MultipleValidationError(AppraisalError):
    """Raised when multiple validation errors occur."""

    code = "VALIDATION_FAILED"

    def __init__(self, errors: list[ValidationError]):
        self.validation_errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(
            message=f"Multiple validation errors: {'; '.join(messages)}",
            details={
                "errors": [
                    {"field": e.field, "message": e.message, "value": e.value} for e in errors
                ]
            },
            user_message="Please correct the following errors and try again.",
        )


class IncompleteScoresError(ValidationError):
    """Raised when a grader tries to advance without scoring every question."""

    code = "SCORES_INCOMPLETE"

    def __init__(self, role: str, missing_question_ids: list[int]):
        self.role = role
        self.missing_question_ids = list(missing_question_ids)
        super().__init__(
            field=f"score_{role}",
            message=f"{len(self.missing_question_ids)} question(s) have no score",
            value=self.missing_question_ids,
            details={"role": role, "missing_question_ids": self.missing_question_ids},
        )
        self.user_message = "Please score every question before submitting."


class AuthenticationError(AppraisalError):
    """Raised when a request does not say who is acting."""

    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "The acting employee was not identified"):
        super().__init__(
            message=message,
            user_message="Identify the acting employee with the X-Actor header.",
        )


class AuthorizationError(AppraisalError):
    """Raised when the acting principal may not perform the action."""

    code = "NOT_AUTHORIZED"

    def __init__(
        self,
        message: str,
        actor: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.actor = actor
        super().__init__(
            message=message,
            details=details or {"actor": actor},
            user_message="You are not allowed to act on this assessment right now.",
        )


class InvalidStateError(AuthorizationError):
    """Raised when an action is not valid from the assessment's current state."""

    code = "INVALID_STATE"

    def __init__(self, status: str, action: str, actor: str | None = None):
        self.status = status
        self.action = action
        super().__init__(
            message=f"Cannot {action} an assessment in status {status}",
            actor=actor,
            details={"status": status, "action": action, "actor": actor},
        )
        self.user_message = f"The {action} action is not available for this assessment right now."


class NotFoundError(AppraisalError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} with ID {identifier} not found",
            details={"resource": resource, "id": identifier},
        )

    def _get_default_user_message(self) -> str:
        return f"The requested {self.resource.lower()} could not be found."


class AssessmentNotFoundError(NotFoundError):
    """Raised when an assessment is not found."""

    def __init__(self, assessment_id: int):
        super().__init__("Assessment", assessment_id)


class EmployeeNotFoundError(NotFoundError):
    """Raised when an employee is not found in the directory."""

    def __init__(self, emp_code: str):
        super().__init__("Employee", emp_code)


class QuestionNotFoundError(NotFoundError):
    """Raised when a question is not part of the applicable catalog."""

    def __init__(self, question_id: int):
        super().__init__("Question", question_id)


class ConflictError(AppraisalError):
    """Raised when a transition was computed against stale assessment state."""

    code = "STALE_STATE"

    def __init__(
        self,
        message: str,
        assessment_id: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.assessment_id = assessment_id
        super().__init__(
            message=message,
            details=details or {"assessment_id": assessment_id},
            user_message=(
                "This assessment was changed by someone else. Please reload and try again."
            ),
        )


class DatabaseError(AppraisalError):
    """Raised when database operations fail."""

    code = "DATABASE_ERROR"

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Database error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="A database error occurred. Please try again in a moment.",
        )


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    code = "DATABASE_UNAVAILABLE"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)
        self.user_message = (
            "Unable to connect to the database. Please check your connection and try again."
        )


class IntegrityError(DatabaseError):
    """Raised when database integrity constraints are violated."""

    code = "INTEGRITY_ERROR"

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint
        super().__init__(
            message=message,
            operation="integrity_check",
            details=details or {"constraint": constraint},
        )
        self.user_message = self._constraint_message()

    def _constraint_message(self) -> str:
        if self.constraint:
            if "unique" in self.constraint.lower():
                return "This record already exists (unique constraint)."
            elif "foreign" in self.constraint.lower():
                return "Referenced record no longer exists (foreign key constraint)."
        return "Data integrity constraint violated. Please check your input and try again."


class ConfigurationError(AppraisalError):
    """Raised when configuration is invalid."""

    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


class NotificationError(AppraisalError):
    """Raised when a notification could not be delivered."""

    code = "NOTIFICATION_FAILED"

    def __init__(self, message: str, target: str | None = None, kind: str | None = None):
        self.target = target
        self.kind = kind
        super().__init__(
            message=message,
            details={"target": target, "kind": kind},
            user_message="The notification could not be delivered.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> AppraisalError:
    """
    Convert generic database exceptions to appropriate custom exceptions.

    Args:
        e: The original exception
        operation: Description of the operation that failed

    Returns:
        Appropriate AppraisalError subclass

    Example:
        >>> try:
        ...     session.commit()
        >>> except Exception as e:
        ...     raise handle_database_error(e, "commit transaction")
    """
    from sqlalchemy.orm.exc import StaleDataError

    if isinstance(e, StaleDataError):
        return ConflictError(f"Concurrent update detected during {operation}: {e}")

    error_msg = str(e).lower()

    if "connection" in error_msg or "timeout" in error_msg:
        return ConnectionError(str(e))
    elif "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    elif "foreign key" in error_msg or "foreign_key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    elif "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    else:
        return DatabaseError(str(e), operation)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = ValidationError("reason", "cannot be empty")
        >>> create_user_friendly_error_message(error)
        'Invalid reason: cannot be empty'
    """
    if isinstance(error, AppraisalError):
        return error.user_message

    error_type = type(error).__name__
    messages = {
        "ValueError": "Invalid input provided. Please check your data and try again.",
        "KeyError": "Required information is missing. Please check your input.",
        "TypeError": "Incorrect data type provided. Please check your input format.",
    }
    return messages.get(
        error_type, "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Args:
        error: The exception to log
        context: Additional context information

    Returns:
        Dictionary with structured error details
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, AppraisalError):
        details.update(
            {
                "error_code": error.code,
                "user_message": error.user_message,
                "error_details": error.details,
            }
        )

    return details

"""
Custom exceptions for workflow system.
Provides a hierarchy of exceptions for better error handling.
"""

from typing import Any


class WorkflowException(Exception):
    """Base exception for all workflow-related errors."""

    code = "WORKFLOW_ERROR"

    def __init__(
        self,
        message: str,
        step: str | None = None,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        """
        Initialize workflow exception.

        Args:
            message: Technical error message for logging
            step: Workflow step or action where error occurred
            details: Additional error details
            user_message: User-friendly message to display
        """
        self.message = message
        self.step = step
        self.details = details or {}
        self.user_message = user_message or "An error occurred. Please try again."
        super().__init__(self.message)


class StateError(WorkflowException):
    """Raised when no workflow state is loaded or the state is unusable."""

    code = "SESSION_INVALID"

    def __init__(
        self,
        message: str,
        workflow_id: str | None = None,
        step: str | None = None,
        user_message: str | None = None,
    ):
        super().__init__(
            message=message,
            step=step,
            user_message=user_message or "This workflow cannot continue. Please start over.",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class ValidationError(WorkflowException):
    """Raised when a field or a submitted record fails rule evaluation."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: dict[str, list[str]] | None = None,
        step: str | None = None,
        user_message: str | None = None,
    ):
        super().__init__(
            message=message,
            step=step,
            user_message=user_message or "Please check your input and try again.",
            details={"field": field, "errors": errors or {}},
        )
        self.field = field
        self.errors = errors or {}


class TemplateError(WorkflowException):
    """Raised when a template cannot be rendered outside preview mode."""

    code = "TEMPLATE_ERROR"

    def __init__(
        self,
        message: str,
        template_id: str | None = None,
        step: str | None = None,
    ):
        super().__init__(
            message=message,
            step=step,
            user_message="The email could not be generated. Please try again.",
            details={"template_id": template_id},
        )
        self.template_id = template_id


class NotFoundError(WorkflowException):
    """Raised when a template, variable or record is absent."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str | None = None, step: str | None = None):
        super().__init__(
            message=f"{entity_type} {entity_id} not found",
            step=step,
            user_message=f"The requested {entity_type.lower()} could not be found.",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class SessionNotFoundException(StateError):
    """Raised when a workflow session cannot be found."""

    code = "SESSION_NOT_FOUND"

    def __init__(self, workflow_id: str, step: str | None = None):
        super().__init__(
            message=f"Workflow {workflow_id} not found",
            workflow_id=workflow_id,
            step=step,
            user_message="Session not found. Please start a new session.",
        )


class CacheError(WorkflowException):
    """Raised by cache backends; always contained by the cache layer."""

    code = "CACHE_ERROR"

    def __init__(self, operation: str, key: str | None = None, original_error: str | None = None):
        super().__init__(
            message=f"Cache {operation} failed for key {key}: {original_error}",
            details={"operation": operation, "key": key, "original_error": original_error},
        )
        self.operation = operation
        self.key = key

"""
Pydantic schemas for API requests and responses.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Structured error detail for API responses."""

    code: str = Field(..., description="Error code (e.g., 'VALIDATION_ERROR')")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(None, description="Field name for validation errors")
    details: dict[str, Any] | None = Field(None, description="Additional error context")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response envelope."""

    success: bool
    data: T | None = None
    error: ErrorDetail | None = None


# Request bodies
class NewWorkflowRequest(BaseModel):
    """Start a new workflow session."""

    owner_id: str = Field(..., min_length=1)
    locale: str | None = None


class WorkflowTypeRequest(BaseModel):
    workflow_type: str


class PolicySelectionRequest(BaseModel):
    category: str
    subcategory: str | None = None


class StatusRequest(BaseModel):
    status: str


class VariablesRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)


class PreviewRequest(BaseModel):
    variables: dict[str, Any] | None = None


class TemplateValidationRequest(BaseModel):
    """Template content to check for syntax problems."""

    content: str


class CleanupRequest(BaseModel):
    max_age_hours: float | None = Field(None, gt=0)


# Error code constants
class ErrorCodes:
    """Standard error codes for API responses."""

    # Session
    SESSION_INVALID = "SESSION_INVALID"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Records and templates
    NOT_FOUND = "NOT_FOUND"
    TEMPLATE_ERROR = "TEMPLATE_ERROR"

    # Workflow
    WORKFLOW_ERROR = "WORKFLOW_ERROR"

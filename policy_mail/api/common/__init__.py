"""
Common utilities shared across the application.
"""

from policy_mail.api.common.responses import (
    error_response,
    json_error,
    json_success,
    status_for_code,
)
from policy_mail.api.common.schemas import (
    APIResponse,
    CleanupRequest,
    ErrorCodes,
    ErrorDetail,
    NewWorkflowRequest,
    PolicySelectionRequest,
    PreviewRequest,
    StatusRequest,
    TemplateValidationRequest,
    VariablesRequest,
    WorkflowTypeRequest,
)

__all__ = [
    # Responses
    "error_response",
    "json_error",
    "json_success",
    "status_for_code",
    # Schemas
    "APIResponse",
    "CleanupRequest",
    "ErrorCodes",
    "ErrorDetail",
    "NewWorkflowRequest",
    "PolicySelectionRequest",
    "PreviewRequest",
    "StatusRequest",
    "TemplateValidationRequest",
    "VariablesRequest",
    "WorkflowTypeRequest",
]

"""
HTTP routes for the policy email workflow.
Thin controller: parses requests, calls the workflow manager and wraps results
in the standard response envelope.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from policy_mail.api.common.responses import error_response, json_success
from policy_mail.api.common.schemas import (
    CleanupRequest,
    NewWorkflowRequest,
    PolicySelectionRequest,
    PreviewRequest,
    StatusRequest,
    TemplateValidationRequest,
    VariablesRequest,
    WorkflowTypeRequest,
)
from policy_mail.api.workflow_base.exceptions import WorkflowException

from .workflow_manager import EmailWorkflowManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["email"])


def get_manager(request: Request) -> EmailWorkflowManager:
    return request.app.state.workflow_manager


def request_locale(request: Request) -> str | None:
    """First language tag of the Accept-Language header, if any."""
    header = request.headers.get("accept-language")
    if not header:
        return None
    return header.split(",")[0].split(";")[0].strip() or None


def respond(request: Request, operation: Callable[[], Any]) -> JSONResponse:
    """Run a manager operation and wrap the outcome in the response envelope."""
    try:
        return JSONResponse(content=json_success(operation()))
    except WorkflowException as e:
        manager = get_manager(request)
        return error_response(manager.localize_error(e, request_locale(request)))


@router.post("/new", response_model=None)
async def new_workflow(request: Request, body: NewWorkflowRequest):
    """Start a new email workflow."""
    manager = get_manager(request)
    locale = body.locale or request_locale(request)
    return respond(request, lambda: manager.initialize(body.owner_id, locale=locale))


@router.post("/templates/validate", response_model=None)
async def validate_template(request: Request, body: TemplateValidationRequest):
    """Check template content for syntax errors and warnings."""
    manager = get_manager(request)
    return respond(
        request, lambda: manager.template_engine.validate_template(body.content).model_dump()
    )


@router.post("/maintenance/cleanup", response_model=None)
async def cleanup_states(request: Request, body: CleanupRequest | None = None):
    """Remove workflow states older than the configured age."""
    manager = get_manager(request)
    max_age_hours = body.max_age_hours if body else None
    return respond(request, lambda: {"removed": manager.cleanup_old_states(max_age_hours)})


@router.get("/{workflow_id}", response_model=None)
async def get_workflow(request: Request, workflow_id: str):
    """Return the current state of a workflow."""
    manager = get_manager(request)
    return respond(request, lambda: manager.get_state(workflow_id))


@router.post("/{workflow_id}/type", response_model=None)
async def select_workflow_type(request: Request, workflow_id: str, body: WorkflowTypeRequest):
    manager = get_manager(request)
    return respond(request, lambda: manager.set_workflow_type(workflow_id, body.workflow_type))


@router.post("/{workflow_id}/policy", response_model=None)
async def select_policy(request: Request, workflow_id: str, body: PolicySelectionRequest):
    manager = get_manager(request)
    return respond(
        request,
        lambda: manager.set_policy_selection(workflow_id, body.category, body.subcategory),
    )


@router.post("/{workflow_id}/status", response_model=None)
async def select_status(request: Request, workflow_id: str, body: StatusRequest):
    manager = get_manager(request)
    return respond(request, lambda: manager.set_status(workflow_id, body.status))


@router.post("/{workflow_id}/variables", response_model=None)
async def submit_variables(request: Request, workflow_id: str, body: VariablesRequest):
    """Validate and store template variables."""
    manager = get_manager(request)
    return respond(request, lambda: manager.set_template_variables(workflow_id, body.variables))


@router.post("/{workflow_id}/preview", response_model=None)
async def preview(request: Request, workflow_id: str, body: PreviewRequest | None = None):
    """Render a preview without changing the workflow."""
    manager = get_manager(request)
    variables = body.variables if body else None
    return respond(request, lambda: manager.preview_content(workflow_id, variables))


@router.post("/{workflow_id}/generate", response_model=None)
async def generate(request: Request, workflow_id: str):
    """Generate the final email content."""
    manager = get_manager(request)
    return respond(request, lambda: manager.generate_content(workflow_id))


@router.post("/{workflow_id}/reset", response_model=None)
async def reset_workflow(request: Request, workflow_id: str):
    manager = get_manager(request)
    logger.info(f"Reset requested for workflow {workflow_id}")
    return respond(request, lambda: manager.reset(workflow_id))


@router.get("/{workflow_id}/result", response_model=None)
async def get_result(request: Request, workflow_id: str):
    """Return the generated email while it is still cached."""
    manager = get_manager(request)
    return respond(request, lambda: manager.get_generated_content(workflow_id))

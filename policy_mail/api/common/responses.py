"""
Response envelope helpers shared by the HTTP routers.

Every JSON response uses the same {success, data, error} envelope.
"""

from typing import Any

from fastapi.responses import JSONResponse

from policy_mail.api.common.schemas import APIResponse, ErrorCodes, ErrorDetail

STATUS_BY_CODE = {
    ErrorCodes.VALIDATION_ERROR: 422,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.SESSION_NOT_FOUND: 404,
    ErrorCodes.SESSION_INVALID: 409,
    ErrorCodes.TEMPLATE_ERROR: 500,
}


def json_success(data: dict[str, Any] | list[Any] | None = None) -> dict[str, Any]:
    """
    Create a standard success response envelope.

    Args:
        data: Optional data payload

    Returns:
        Standardized success response dict
    """
    return APIResponse(success=True, data=data).model_dump()


def json_error(
    code: str,
    message: str,
    field: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standard error response envelope.

    Args:
        code: Error code (e.g., "VALIDATION_ERROR", "NOT_FOUND")
        message: Human-readable error message
        field: Optional field name for validation errors
        details: Optional additional error details

    Returns:
        Standardized error response dict
    """
    error = ErrorDetail(code=code, message=message, field=field or None, details=details or None)
    envelope = APIResponse(success=False).model_dump()
    # Optional error fields are omitted rather than sent as null
    envelope["error"] = error.model_dump(exclude_none=True)
    return envelope


def status_for_code(code: str) -> int:
    """Map an error code to its HTTP status, 500 for anything unmapped."""
    return STATUS_BY_CODE.get(code, 500)


def error_response(envelope: dict[str, Any]) -> JSONResponse:
    """Wrap an error envelope in a JSONResponse with the mapped status."""
    return JSONResponse(content=envelope, status_code=status_for_code(envelope["error"]["code"]))

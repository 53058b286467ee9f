"""
Workflow session validators.
"""

import re
from typing import Any

UUID4_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"


def validate_workflow_id(workflow_id: str | None) -> dict[str, Any]:
    """
    Validate workflow ID format.

    Args:
        workflow_id: Workflow ID to validate

    Returns:
        Dict with validation result and details
    """
    result = {"is_valid": False, "error": None, "workflow_id": workflow_id}

    if not workflow_id:
        result["error"] = "Workflow ID is required"
        return result

    if not re.match(UUID4_PATTERN, str(workflow_id).lower()):
        result["error"] = "Invalid workflow ID format"
        return result

    result["is_valid"] = True
    return result

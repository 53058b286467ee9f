"""
Transition table for workflow sessions.
"""

import logging

from .models import WorkflowAction, WorkflowStatus

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[WorkflowStatus, WorkflowAction], WorkflowStatus] = {
    (WorkflowStatus.INITIAL, WorkflowAction.SELECT_TYPE): WorkflowStatus.TYPE_SELECTED,
    (WorkflowStatus.TYPE_SELECTED, WorkflowAction.SELECT_POLICY): WorkflowStatus.POLICY_SELECTED,
    (WorkflowStatus.POLICY_SELECTED, WorkflowAction.SELECT_STATUS): WorkflowStatus.STATUS_SELECTED,
    (WorkflowStatus.STATUS_SELECTED, WorkflowAction.REQUIRE_INPUT): WorkflowStatus.INPUT_REQUIRED,
    (WorkflowStatus.STATUS_SELECTED, WorkflowAction.GENERATE): WorkflowStatus.GENERATION,
    (WorkflowStatus.INPUT_REQUIRED, WorkflowAction.SUBMIT_INPUT): WorkflowStatus.VALIDATION,
    (WorkflowStatus.VALIDATION, WorkflowAction.VALIDATE): WorkflowStatus.GENERATION,
    (WorkflowStatus.GENERATION, WorkflowAction.COMPLETE): WorkflowStatus.COMPLETED,
}


def transition(current: WorkflowStatus | str, action: WorkflowAction | str) -> WorkflowStatus:
    """
    Compute the next lifecycle status for an action.

    Args:
        current: Current lifecycle status
        action: Action requested by the user

    Returns:
        The next status. Unlisted actions leave the status unchanged and an
        unrecognized current status yields ERROR.
    """
    try:
        current = WorkflowStatus(current)
    except ValueError:
        logger.error(f"Unrecognized workflow status: {current}")
        return WorkflowStatus.ERROR

    try:
        action = WorkflowAction(action)
    except ValueError:
        logger.debug(f"Ignoring unknown action {action} in state {current.value}")
        return current

    return TRANSITIONS.get((current, action), current)


def can_transition(current: WorkflowStatus | str, action: WorkflowAction | str) -> bool:
    """Check whether an action moves the workflow out of its current status."""
    try:
        return (WorkflowStatus(current), WorkflowAction(action)) in TRANSITIONS
    except ValueError:
        return False


def available_actions(current: WorkflowStatus | str) -> list[WorkflowAction]:
    """List the actions accepted in the given status."""
    try:
        current = WorkflowStatus(current)
    except ValueError:
        return []
    return [action for (status, action) in TRANSITIONS if status == current]

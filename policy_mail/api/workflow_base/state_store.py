"""
Persistence for workflow states.
"""

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from .backends import KeyValueBackend
from .models import WorkflowState

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "workflow_state:"


class StateStore(Protocol):
    """Protocol for workflow state persistence backends."""

    def load(self, workflow_id: str) -> WorkflowState | None:
        """Retrieve a workflow state by id."""

    def save(self, workflow_id: str, state: WorkflowState) -> None:
        """Persist a workflow state."""

    def delete(self, workflow_id: str) -> bool:
        """Remove a workflow state."""

    def list_ids(self) -> list[str]:
        """Return all persisted workflow ids."""

    def delete_older_than(self, max_age: timedelta, deadline: float | None = None) -> int:
        """Remove stale and unreadable states, returning how many were removed."""


class KeyValueStateStore:
    """Store workflow states as JSON documents in a key/value backend."""

    def __init__(self, backend: KeyValueBackend):
        self.backend = backend

    @staticmethod
    def _key(workflow_id: str) -> str:
        return f"{STATE_KEY_PREFIX}{workflow_id}"

    def load(self, workflow_id: str) -> WorkflowState | None:
        raw = self.backend.get(self._key(workflow_id))
        if raw is None:
            return None
        try:
            return WorkflowState.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Stored state for workflow {workflow_id} is unreadable: {e}")
            return None

    def save(self, workflow_id: str, state: WorkflowState) -> None:
        self.backend.set(self._key(workflow_id), state.model_dump_json())

    def delete(self, workflow_id: str) -> bool:
        return self.backend.delete(self._key(workflow_id))

    def list_ids(self) -> list[str]:
        return [key[len(STATE_KEY_PREFIX) :] for key in self.backend.keys(STATE_KEY_PREFIX)]

    def delete_older_than(self, max_age: timedelta, deadline: float | None = None) -> int:
        """
        Remove states whose last update is older than max_age.

        Age is measured from updated_at, falling back to created_at. Entries
        that cannot be parsed are removed as well.

        Args:
            max_age: Age threshold
            deadline: time.monotonic() value after which the sweep stops early

        Returns:
            Number of states removed
        """
        now = datetime.now(UTC)
        removed = 0

        for key in self.backend.keys(STATE_KEY_PREFIX):
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"State cleanup stopped at deadline after removing {removed}")
                break

            raw = self.backend.get(key)
            if raw is None:
                continue

            try:
                state = WorkflowState.model_validate_json(raw)
            except PydanticValidationError:
                logger.warning(f"Removing unreadable workflow state: {key}")
                self.backend.delete(key)
                removed += 1
                continue

            reference = state.updated_at or state.created_at
            if reference.tzinfo is None:
                reference = reference.replace(tzinfo=UTC)
            if now - reference > max_age:
                self.backend.delete(key)
                removed += 1
                logger.info(f"Cleaned up expired workflow: {state.workflow_id}")

        return removed

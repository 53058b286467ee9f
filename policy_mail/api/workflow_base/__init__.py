"""
Workflow Base Framework - Reusable components for multi-step workflows.
"""

from .backends import InMemoryKeyValueBackend, KeyValueBackend, SQLiteKeyValueBackend
from .cache import CacheScope, CacheTier, TieredCache, cache_key
from .config import BaseWorkflowConfig
from .exceptions import (
    CacheError,
    NotFoundError,
    SessionNotFoundException,
    StateError,
    TemplateError,
    ValidationError,
    WorkflowException,
)
from .models import (
    ValidationResult,
    WorkflowAction,
    WorkflowState,
    WorkflowStatus,
    WorkflowType,
)
from .state_machine import available_actions, can_transition, transition
from .state_store import KeyValueStateStore, StateStore

__all__ = [
    "BaseWorkflowConfig",
    "KeyValueBackend",
    "InMemoryKeyValueBackend",
    "SQLiteKeyValueBackend",
    "TieredCache",
    "CacheTier",
    "CacheScope",
    "cache_key",
    "StateStore",
    "KeyValueStateStore",
    "WorkflowException",
    "StateError",
    "ValidationError",
    "TemplateError",
    "NotFoundError",
    "SessionNotFoundException",
    "CacheError",
    "WorkflowStatus",
    "WorkflowAction",
    "WorkflowType",
    "WorkflowState",
    "ValidationResult",
    "transition",
    "can_transition",
    "available_actions",
]

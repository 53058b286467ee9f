"""
Base configuration class for workflow system.
Provides abstract interface for workflow-specific configurations.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic_settings import BaseSettings


class BaseWorkflowConfig(ABC, BaseSettings):
    """Abstract base class for workflow configuration."""

    # Common configuration that all workflows can override
    app_name: str = "Workflow System"
    debug: bool = False
    default_locale: str = "en-US"
    state_max_age_hours: int = 24
    state_db_path: str | None = None
    cache_default_ttl_seconds: int = 600
    cache_memory_capacity: int = 100
    cache_max_entry_bytes: int = 8 * 1024
    operation_deadline_seconds: int = 300

    @abstractmethod
    def get_workflow_steps(self) -> list[str]:
        """Return ordered list of workflow steps."""

    @abstractmethod
    def get_validation_rules(self) -> dict[str, list[Any]]:
        """Return default validation rules per field name."""

    def get_step_titles(self) -> dict[str, str]:
        """Return display titles for steps (can be overridden)."""
        steps = self.get_workflow_steps()
        return {step: step.replace("_", " ").title() for step in steps}

    def get_error_messages(self, locale: str | None = None) -> dict[str, str]:
        """Return user-facing messages keyed by error code (can be overridden)."""
        return {
            "SESSION_INVALID": "This workflow cannot continue. Please start over.",
            "SESSION_NOT_FOUND": "Session not found. Please start a new session.",
            "VALIDATION_ERROR": "Please check your input and try again.",
            "NOT_FOUND": "The requested item could not be found.",
            "TEMPLATE_ERROR": "The email could not be generated. Please try again.",
            "WORKFLOW_ERROR": "An unexpected error occurred. Please try again.",
        }

    class Config:
        env_file = ".env"
        env_prefix = "POLICY_MAIL_"
        case_sensitive = False
        extra = "ignore"

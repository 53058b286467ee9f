"""
Configuration for policy email workflow.
Centralizes workflow steps, option defaults, validation rules and messages.
"""

from functools import lru_cache
from typing import Any

from policy_mail.api.workflow_base.config import BaseWorkflowConfig
from policy_mail.api.workflow_base.models import WorkflowType

TEN_DIGIT_PATTERN = r"^\d{10}$"


class EmailWorkflowConfig(BaseWorkflowConfig):
    """Configuration specific to policy email workflow."""

    # Override base settings
    app_name: str = "Policy Mail"

    # JSON export of the record store (templates, variables, options, categories)
    records_path: str | None = None
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    def get_workflow_steps(self) -> list[str]:
        """Return ordered list of workflow steps."""
        return ["workflow_type", "policy", "status", "variables", "generate"]

    def get_step_titles(self) -> dict[str, str]:
        """Return display titles for steps."""
        return {
            "workflow_type": "Review Type",
            "policy": "Policy Category",
            "status": "Review Status",
            "variables": "Email Details",
            "generate": "Generated Email",
        }

    def get_workflow_types(self) -> list[str]:
        return [workflow_type.value for workflow_type in WorkflowType]

    def get_status_options(self, workflow_type: str) -> list[dict[str, str]]:
        """Return default review statuses for a workflow type."""
        statuses = {
            WorkflowType.MISREVIEW: [
                ("overturned", "Overturned"),
                ("upheld", "Upheld"),
                ("partially_overturned", "Partially Overturned"),
            ],
            WorkflowType.DISAPPROVAL: [
                ("appealed", "Appealed"),
                ("final", "Final"),
                ("pending_review", "Pending Review"),
            ],
            WorkflowType.CERTIFICATION: [
                ("approved", "Approved"),
                ("denied", "Denied"),
                ("revoked", "Revoked"),
            ],
            WorkflowType.OTHER: [
                ("resolved", "Resolved"),
                ("escalated", "Escalated"),
            ],
        }
        try:
            options = statuses[WorkflowType(workflow_type)]
        except ValueError:
            return []
        return [{"value": value, "label": label} for value, label in options]

    def get_channel_options(self) -> list[dict[str, str]]:
        """Return default contact channels."""
        return [
            {"value": "email", "label": "Email"},
            {"value": "phone", "label": "Phone"},
            {"value": "chat", "label": "Chat"},
            {"value": "web_form", "label": "Web Form"},
        ]

    def get_validation_rules(self) -> dict[str, list[Any]]:
        """Return default validation rules per field name."""
        return {
            "ecid": [
                {
                    "type": "pattern",
                    "options": {
                        "pattern": TEN_DIGIT_PATTERN,
                        "message": "ECID must be exactly 10 digits",
                    },
                }
            ],
            "customer_id": [
                {
                    "type": "pattern",
                    "options": {
                        "pattern": TEN_DIGIT_PATTERN,
                        "message": "Customer ID must be exactly 10 digits",
                    },
                }
            ],
            "customer_email": ["email"],
            "advertiser_url": ["url"],
            "agent_name": [{"type": "length", "options": {"min": 2, "max": 100}}],
        }

    def get_error_messages(self, locale: str | None = None) -> dict[str, str]:
        """Return user-facing messages for the locale's language, English by default."""
        base_messages = super().get_error_messages()
        base_messages.update(
            {
                "NOT_FOUND": "No matching template or record was found.",
                "TEMPLATE_ERROR": "The email could not be generated from this template.",
            }
        )
        language = (locale or self.default_locale).split("-")[0].lower()
        if language == "es":
            base_messages.update(
                {
                    "SESSION_INVALID": "Este flujo no puede continuar. Vuelva a empezar.",
                    "SESSION_NOT_FOUND": "Sesión no encontrada. Inicie una nueva sesión.",
                    "VALIDATION_ERROR": "Revise los datos introducidos e inténtelo de nuevo.",
                    "NOT_FOUND": "No se encontró ninguna plantilla o registro.",
                    "TEMPLATE_ERROR": "No se pudo generar el correo con esta plantilla.",
                    "WORKFLOW_ERROR": "Se produjo un error inesperado. Inténtelo de nuevo.",
                }
            )
        return base_messages


@lru_cache
def get_email_config() -> EmailWorkflowConfig:
    """Get cached email workflow configuration."""
    return EmailWorkflowConfig()

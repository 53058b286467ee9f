"""
Base models for workflow framework.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow session."""

    INITIAL = "initial"
    TYPE_SELECTED = "type_selected"
    POLICY_SELECTED = "policy_selected"
    STATUS_SELECTED = "status_selected"
    INPUT_REQUIRED = "input_required"
    VALIDATION = "validation"
    GENERATION = "generation"
    COMPLETED = "completed"
    ERROR = "error"


class WorkflowAction(str, Enum):
    """User actions that drive the workflow state machine."""

    SELECT_TYPE = "select_type"
    SELECT_POLICY = "select_policy"
    SELECT_STATUS = "select_status"
    REQUIRE_INPUT = "require_input"
    SUBMIT_INPUT = "submit_input"
    VALIDATE = "validate"
    GENERATE = "generate"
    COMPLETE = "complete"


class WorkflowType(str, Enum):
    """Closed set of review workflow types."""

    MISREVIEW = "misreview"
    DISAPPROVAL = "disapproval"
    CERTIFICATION = "certification"
    OTHER = "other"


class WorkflowData(BaseModel):
    """Selections and inputs collected during a workflow."""

    workflow_type: WorkflowType | None = None
    category: str | None = None
    subcategory: str | None = None
    status: str | None = None
    template_id: str | None = None
    variables: dict[str, Any] | None = None
    preview: str | None = None
    generated_content: str | None = None


class WorkflowState(BaseModel):
    """Complete workflow state."""

    workflow_id: str
    current_step_index: int = 1
    total_steps: int
    lifecycle_status: WorkflowStatus = WorkflowStatus.INITIAL
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    owner_id: str
    locale: str = "en-US"
    data: WorkflowData = Field(default_factory=WorkflowData)
    last_error: str | None = None

    def to_client_dict(self) -> dict[str, Any]:
        """Project the state for API clients, dropping internal-only fields."""
        return self.model_dump(mode="json", exclude={"owner_id", "last_error"})


class VariableType(str, Enum):
    """Semantic type of a template variable."""

    TEXT = "text"
    EMAIL = "email"
    URL = "url"
    NUMBER = "number"
    DATE = "date"
    CHOICE = "choice"
    CUSTOM = "custom"


class Option(BaseModel):
    """A selectable value for choice-like variables."""

    value: str
    label: str


class VariableDefinition(BaseModel):
    """Named, typed input slot consumed by templates."""

    name: str
    display_name: str | None = None
    type: VariableType = VariableType.TEXT
    required: bool = False
    default_value: Any = None
    options: list[Option] = []


class Template(BaseModel):
    """Versioned email template record."""

    template_id: str
    workflow_type: WorkflowType
    category: str
    subcategory: str | None = None
    content: str
    required_variables: list[str] = []
    optional_variables: list[str] = []
    active: bool = True
    required_status: str | None = None

    def matches(
        self,
        workflow_type: str,
        category: str,
        subcategory: str | None,
        status: str | None = None,
    ) -> bool:
        """Check whether this template serves the given selection."""
        if not self.active:
            return False
        if self.workflow_type != workflow_type:
            return False
        if self.category != category:
            return False
        if (self.subcategory or None) != (subcategory or None):
            return False
        if self.required_status and self.required_status != status:
            return False
        return True


class TemplateVariables(BaseModel):
    """Required and optional variable names of a template."""

    required: list[str] = []
    optional: list[str] = []


class PolicyCategory(BaseModel):
    """Hierarchical policy category."""

    category_id: str
    name: str
    subcategories: list["PolicyCategory"] = []


class ValidationResult(BaseModel):
    """Outcome of validating one field."""

    is_valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Combine two results, keeping message order."""
        return ValidationResult(
            is_valid=self.is_valid and other.is_valid,
            errors=[*self.errors, *other.errors],
            warnings=[*self.warnings, *other.warnings],
        )


class RecordValidationResult(BaseModel):
    """Outcome of validating a whole submitted record."""

    is_valid: bool = True
    errors: dict[str, list[str]] = {}
    warnings: dict[str, list[str]] = {}


class GenerationMetadata(BaseModel):
    """Metadata attached to a generated email."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    generated_at: str
    template_used: str
    word_count: int
    estimated_read_time: str


class GenerationResult(BaseModel):
    """Payload returned to the UI after a successful generation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    generated_content: str
    metadata: GenerationMetadata

"""
Validators package for policy email workflow.
Provides rule-based field validation, sanitization and workflow id checks.
"""

from .field_validators import is_empty, parse_date, sanitize, to_number
from .rule_engine import (
    RuleKind,
    RuleRegistry,
    RuleSpec,
    ValidationEngine,
    coerce_rules,
    default_rule_registry,
    rules_for_definition,
)
from .session_validators import validate_workflow_id

__all__ = [
    # Field validators
    "is_empty",
    "parse_date",
    "sanitize",
    "to_number",
    # Rule engine
    "RuleKind",
    "RuleRegistry",
    "RuleSpec",
    "ValidationEngine",
    "coerce_rules",
    "default_rule_registry",
    "rules_for_definition",
    # Session validators
    "validate_workflow_id",
]

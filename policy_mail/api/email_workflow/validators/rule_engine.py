"""
Rule-based field validation.
Rules are looked up in a registry that is built at startup and handed to
each engine, so tests and workflows never share hidden registry state.
"""

import logging
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator

from policy_mail.api.workflow_base.models import (
    RecordValidationResult,
    ValidationResult,
    VariableDefinition,
    VariableType,
)

from .field_validators import (
    RuleEvaluator,
    sanitize,
    validate_choice,
    validate_custom,
    validate_date,
    validate_email,
    validate_length,
    validate_number,
    validate_pattern,
    validate_range,
    validate_required,
    validate_url,
)

logger = logging.getLogger(__name__)


class RuleKind(str, Enum):
    """Built-in rule types."""

    REQUIRED = "required"
    EMAIL = "email"
    URL = "url"
    LENGTH = "length"
    RANGE = "range"
    PATTERN = "pattern"
    DATE = "date"
    NUMBER = "number"
    CHOICE = "choice"
    CUSTOM = "custom"


BUILTIN_RULES: dict[str, RuleEvaluator] = {
    RuleKind.REQUIRED.value: validate_required,
    RuleKind.EMAIL.value: validate_email,
    RuleKind.URL.value: validate_url,
    RuleKind.LENGTH.value: validate_length,
    RuleKind.RANGE.value: validate_range,
    RuleKind.PATTERN.value: validate_pattern,
    RuleKind.DATE.value: validate_date,
    RuleKind.NUMBER.value: validate_number,
    RuleKind.CHOICE.value: validate_choice,
    RuleKind.CUSTOM.value: validate_custom,
}


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class RuleSpec(BaseModel):
    """A rule type plus its options, e.g. {"type": "length", "options": {"max": 50}}."""

    type: str
    options: dict[str, Any] = {}

    @field_validator("type")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("options")
    @classmethod
    def normalize_options(cls, value: dict[str, Any]) -> dict[str, Any]:
        # Record store rows use camelCase option names (minMessage, ...)
        return {_snake_case(key): option for key, option in value.items()}

    @classmethod
    def coerce(cls, rule: "RuleSpec | str | dict[str, Any]") -> "RuleSpec":
        """Build a RuleSpec from a bare type name, a dict or a RuleSpec."""
        if isinstance(rule, RuleSpec):
            return rule
        if isinstance(rule, str):
            return cls(type=rule)
        if isinstance(rule, dict):
            if "options" in rule:
                return cls(type=rule["type"], options=rule.get("options") or {})
            return cls(
                type=rule["type"],
                options={key: value for key, value in rule.items() if key != "type"},
            )
        raise TypeError(f"Unsupported rule definition: {rule!r}")

    @property
    def kind(self) -> RuleKind | None:
        try:
            return RuleKind(self.type)
        except ValueError:
            return None


def coerce_rules(rules: Any) -> list[RuleSpec]:
    """Accept a single rule or a list of rules."""
    if rules is None:
        return []
    if isinstance(rules, (list, tuple)):
        return [RuleSpec.coerce(rule) for rule in rules]
    return [RuleSpec.coerce(rules)]


class RuleRegistry:
    """Maps rule type names to evaluators."""

    def __init__(self, evaluators: dict[str, RuleEvaluator] | None = None):
        self._evaluators: dict[str, RuleEvaluator] = dict(evaluators or {})

    def register(self, rule_type: str, evaluator: RuleEvaluator) -> None:
        self._evaluators[rule_type.strip().lower()] = evaluator

    def get(self, rule_type: str) -> RuleEvaluator | None:
        return self._evaluators.get(rule_type)

    def __contains__(self, rule_type: str) -> bool:
        return rule_type in self._evaluators


def default_rule_registry() -> RuleRegistry:
    """Create a registry holding the built-in rule types."""
    return RuleRegistry(BUILTIN_RULES)


class ValidationEngine:
    """Validate field values against caller rules plus per-field defaults."""

    def __init__(
        self,
        registry: RuleRegistry | None = None,
        field_rules: dict[str, Any] | None = None,
    ):
        self.registry = registry or default_rule_registry()
        self.field_rules: dict[str, list[RuleSpec]] = {}
        for field_name, rules in (field_rules or {}).items():
            self.add_field_rules(field_name, rules)

    def add_field_rules(self, field_name: str, rules: Any) -> None:
        """Register or replace the default rules of a field."""
        self.field_rules[field_name] = coerce_rules(rules)
        logger.debug(f"Registered {len(self.field_rules[field_name])} rules for {field_name}")

    def get_field_rules(self, field_name: str) -> list[RuleSpec]:
        return list(self.field_rules.get(field_name, []))

    def _apply(self, rule: RuleSpec, field_name: str, value: Any) -> ValidationResult:
        evaluator = self.registry.get(rule.type)
        if evaluator is None:
            logger.warning(f"Unknown validation rule type {rule.type!r} on field {field_name}")
            return ValidationResult(warnings=[f"Unknown validation rule type: {rule.type}"])
        try:
            return evaluator(value, rule.options)
        except Exception as e:
            logger.error(f"Rule {rule.type} failed on field {field_name}: {e}")
            return ValidationResult(is_valid=False, errors=[f"Could not validate {field_name}"])

    def validate(self, field_name: str, value: Any, rules: Any = None) -> ValidationResult:
        """
        Validate one value.

        Args:
            field_name: Name of the field (selects registered default rules)
            value: Value to check
            rules: A rule or list of rules applied before the field defaults

        Returns:
            ValidationResult with errors and warnings in evaluation order
        """
        result = ValidationResult()
        for rule in [*coerce_rules(rules), *self.get_field_rules(field_name)]:
            result = result.merge(self._apply(rule, field_name, value))
        return result

    def validate_multiple(
        self, record: dict[str, Any], per_field_rules: dict[str, Any] | None = None
    ) -> RecordValidationResult:
        """Validate every field of a record and aggregate failures and warnings."""
        per_field_rules = per_field_rules or {}
        outcome = RecordValidationResult()

        for field_name, value in record.items():
            result = self.validate(field_name, value, per_field_rules.get(field_name))
            if not result.is_valid:
                outcome.is_valid = False
                outcome.errors[field_name] = result.errors
            if result.warnings:
                outcome.warnings[field_name] = result.warnings

        return outcome

    @staticmethod
    def sanitize(value: Any, **options: Any) -> Any:
        return sanitize(value, **options)


def rules_for_definition(definition: VariableDefinition) -> list[RuleSpec]:
    """Derive validation rules from a variable definition."""
    rules = []
    if definition.required:
        rules.append(RuleSpec(type=RuleKind.REQUIRED.value))

    type_rules = {
        VariableType.EMAIL: RuleKind.EMAIL,
        VariableType.URL: RuleKind.URL,
        VariableType.NUMBER: RuleKind.NUMBER,
        VariableType.DATE: RuleKind.DATE,
    }
    if definition.type in type_rules:
        rules.append(RuleSpec(type=type_rules[definition.type].value))
    elif definition.type == VariableType.CHOICE and definition.options:
        rules.append(
            RuleSpec(
                type=RuleKind.CHOICE.value,
                options={"choices": [option.value for option in definition.options]},
            )
        )
    return rules

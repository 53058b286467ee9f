"""
Record store adapter.
Templates, variable definitions, options and policy categories live in an
external tabular store; the workflow only depends on the lookup contract below.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from policy_mail.api.workflow_base.cache import CacheScope, TieredCache, cache_key
from policy_mail.api.workflow_base.exceptions import NotFoundError
from policy_mail.api.workflow_base.models import (
    Option,
    PolicyCategory,
    Template,
    TemplateVariables,
    VariableDefinition,
)

logger = logging.getLogger(__name__)

RECORDS_TAG = "records"


class RecordStore(Protocol):
    """Lookup contract the workflow requires from the record store."""

    def find_template(
        self,
        workflow_type: str,
        category: str,
        subcategory: str | None,
        status: str | None = None,
    ) -> Template | None:
        """Return the first active template matching the selection."""

    def find_template_by_id(self, template_id: str) -> Template | None:
        """Return a template by id."""

    def get_template_variables(self, template_id: str) -> TemplateVariables:
        """Return the required and optional variable names of a template."""

    def get_variable_definition(self, name: str) -> VariableDefinition | None:
        """Return a variable definition by name."""

    def get_options_for(self, variable_name: str) -> list[Option]:
        """Return the ordered options of a choice-like variable."""

    def get_policy_categories(self, workflow_type: str) -> list[PolicyCategory]:
        """Return the category tree for a workflow type."""

    def record_audit_event(
        self, action: str, entity_type: str, entity_id: str, details: dict[str, Any]
    ) -> None:
        """Append an audit event."""

    def list_templates(self) -> list[Template]:
        """Return every template, active or not."""


class InMemoryRecordStore:
    """Record store over in-process collections."""

    def __init__(
        self,
        templates: list[Template] | None = None,
        variables: list[VariableDefinition] | None = None,
        options: dict[str, list[Option]] | None = None,
        policy_categories: dict[str, list[PolicyCategory]] | None = None,
    ):
        self.templates: list[Template] = list(templates or [])
        self.variables: dict[str, VariableDefinition] = {v.name: v for v in variables or []}
        self.options: dict[str, list[Option]] = dict(options or {})
        self.policy_categories: dict[str, list[PolicyCategory]] = dict(policy_categories or {})
        self.audit_events: list[dict[str, Any]] = []

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryRecordStore":
        """
        Build a store from plain collections.

        Args:
            data: Dict with "templates", "variables", "options" and
                "policy_categories" keys

        Returns:
            Populated record store
        """
        return cls(
            templates=[Template.model_validate(t) for t in data.get("templates", [])],
            variables=[VariableDefinition.model_validate(v) for v in data.get("variables", [])],
            options={
                name: [Option.model_validate(o) for o in rows]
                for name, rows in data.get("options", {}).items()
            },
            policy_categories={
                workflow_type: [PolicyCategory.model_validate(c) for c in rows]
                for workflow_type, rows in data.get("policy_categories", {}).items()
            },
        )

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryRecordStore":
        """Load a store from a JSON export with the same layout as from_dict."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_dict(data)
        logger.info(f"Loaded {len(store.templates)} templates from {path}")
        return store

    def find_template(
        self,
        workflow_type: str,
        category: str,
        subcategory: str | None,
        status: str | None = None,
    ) -> Template | None:
        for template in self.templates:
            if template.matches(workflow_type, category, subcategory, status):
                return template
        return None

    def find_template_by_id(self, template_id: str) -> Template | None:
        for template in self.templates:
            if template.template_id == template_id:
                return template
        return None

    def get_template_variables(self, template_id: str) -> TemplateVariables:
        template = self.find_template_by_id(template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        return TemplateVariables(
            required=list(template.required_variables),
            optional=list(template.optional_variables),
        )

    def get_variable_definition(self, name: str) -> VariableDefinition | None:
        definition = self.variables.get(name)
        if definition is None:
            return None
        if not definition.options and name in self.options:
            definition = definition.model_copy(update={"options": self.get_options_for(name)})
        return definition

    def get_options_for(self, variable_name: str) -> list[Option]:
        return list(self.options.get(variable_name, []))

    def get_policy_categories(self, workflow_type: str) -> list[PolicyCategory]:
        return list(self.policy_categories.get(getattr(workflow_type, "value", workflow_type), []))

    def record_audit_event(
        self, action: str, entity_type: str, entity_id: str, details: dict[str, Any]
    ) -> None:
        self.audit_events.append(
            {
                "timestamp": datetime.now(UTC).isoformat(),
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "details": details,
            }
        )
        logger.info(f"Audit: {action} {entity_type} {entity_id}")

    def list_templates(self) -> list[Template]:
        return list(self.templates)


class CachedRecordStore:
    """Serve record store reads through the tiered cache."""

    def __init__(self, store: RecordStore, cache: TieredCache, ttl: float | None = 600):
        self.store = store
        self.cache = cache
        self.ttl = ttl

    def _cached(self, name: str, compute, *args) -> Any:
        key = f"records:{name}:{cache_key(*args)}"
        return self.cache.get_or_compute(
            key, compute, self.ttl, scope=CacheScope.PROCESS, tags=[RECORDS_TAG]
        )

    def find_template(
        self,
        workflow_type: str,
        category: str,
        subcategory: str | None,
        status: str | None = None,
    ) -> Template | None:
        def compute():
            template = self.store.find_template(workflow_type, category, subcategory, status)
            return template.model_dump(mode="json") if template else None

        data = self._cached("find_template", compute, workflow_type, category, subcategory, status)
        return Template.model_validate(data) if data else None

    def find_template_by_id(self, template_id: str) -> Template | None:
        def compute():
            template = self.store.find_template_by_id(template_id)
            return template.model_dump(mode="json") if template else None

        data = self._cached("template_by_id", compute, template_id)
        return Template.model_validate(data) if data else None

    def get_template_variables(self, template_id: str) -> TemplateVariables:
        data = self._cached(
            "template_variables",
            lambda: self.store.get_template_variables(template_id).model_dump(mode="json"),
            template_id,
        )
        return TemplateVariables.model_validate(data)

    def get_variable_definition(self, name: str) -> VariableDefinition | None:
        def compute():
            definition = self.store.get_variable_definition(name)
            return definition.model_dump(mode="json") if definition else None

        data = self._cached("variable_definition", compute, name)
        return VariableDefinition.model_validate(data) if data else None

    def get_options_for(self, variable_name: str) -> list[Option]:
        data = self._cached(
            "options",
            lambda: [o.model_dump(mode="json") for o in self.store.get_options_for(variable_name)],
            variable_name,
        )
        return [Option.model_validate(o) for o in data]

    def get_policy_categories(self, workflow_type: str) -> list[PolicyCategory]:
        data = self._cached(
            "policy_categories",
            lambda: [
                c.model_dump(mode="json") for c in self.store.get_policy_categories(workflow_type)
            ],
            workflow_type,
        )
        return [PolicyCategory.model_validate(c) for c in data]

    def record_audit_event(
        self, action: str, entity_type: str, entity_id: str, details: dict[str, Any]
    ) -> None:
        self.store.record_audit_event(action, entity_type, entity_id, details)

    def list_templates(self) -> list[Template]:
        return self.store.list_templates()

    def invalidate(self) -> int:
        """Drop every cached record lookup."""
        return self.cache.invalidate_by_tag(RECORDS_TAG)

"""
Workflow management for policy violation emails.
Drives a session from review type selection through to the generated email.
"""

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from policy_mail.api.common.responses import json_error
from policy_mail.api.workflow_base.backends import InMemoryKeyValueBackend, SQLiteKeyValueBackend
from policy_mail.api.workflow_base.cache import TieredCache
from policy_mail.api.workflow_base.exceptions import (
    NotFoundError,
    SessionNotFoundException,
    StateError,
    TemplateError,
    ValidationError,
    WorkflowException,
)
from policy_mail.api.workflow_base.models import (
    GenerationMetadata,
    GenerationResult,
    PolicyCategory,
    Template,
    VariableDefinition,
    WorkflowAction,
    WorkflowState,
    WorkflowStatus,
    WorkflowType,
)
from policy_mail.api.workflow_base.state_machine import available_actions, transition
from policy_mail.api.workflow_base.state_store import KeyValueStateStore, StateStore

from .config import EmailWorkflowConfig, get_email_config
from .record_store import CachedRecordStore, InMemoryRecordStore, RecordStore
from .template_engine import TemplateEngine, build_default_functions
from .validators import (
    ValidationEngine,
    default_rule_registry,
    rules_for_definition,
    sanitize,
    validate_workflow_id,
)

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200


class EmailWorkflowManager:
    """Coordinates state transitions, validation, rendering and persistence."""

    def __init__(
        self,
        config: EmailWorkflowConfig,
        record_store: RecordStore,
        state_store: StateStore,
        validation_engine: ValidationEngine,
        template_engine: TemplateEngine,
        cache: TieredCache,
    ):
        self.config = config
        self.record_store = record_store
        self.state_store = state_store
        self.validation_engine = validation_engine
        self.template_engine = template_engine
        self.cache = cache
        self.steps = config.get_workflow_steps()

    # ------------------------------------------------------------------
    # Helpers
    @contextmanager
    def _operation(self, action: str, workflow_id: str | None) -> Iterator[None]:
        """Log failures with their context; unexpected errors put the workflow in ERROR."""
        try:
            yield
        except WorkflowException as e:
            logger.error(
                f"{action} failed for workflow {workflow_id}: {e.message}"
                + (f" (field: {e.field})" if isinstance(e, ValidationError) and e.field else "")
            )
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {action} for workflow {workflow_id}")
            self._mark_error(workflow_id, str(e))
            raise WorkflowException(message=f"{action} failed: {e}", step=action) from e

    def _mark_error(self, workflow_id: str | None, detail: str) -> None:
        if not workflow_id:
            return
        try:
            state = self.state_store.load(workflow_id)
            if state is not None:
                state.lifecycle_status = WorkflowStatus.ERROR
                state.last_error = detail
                self._save(state)
        except Exception:
            logger.exception(f"Could not record error state for workflow {workflow_id}")

    def _load(self, workflow_id: str, action: str) -> WorkflowState:
        check = validate_workflow_id(workflow_id)
        if not check["is_valid"]:
            raise StateError(check["error"], workflow_id=workflow_id, step=action)

        state = self.state_store.load(workflow_id)
        if state is None:
            raise SessionNotFoundException(workflow_id, step=action)
        if state.workflow_id != workflow_id:
            raise StateError("Stored state does not match workflow id", workflow_id, action)
        return state

    def _save(self, state: WorkflowState) -> None:
        state.updated_at = datetime.now(UTC)
        self.state_store.save(state.workflow_id, state)

    @staticmethod
    def _advance(state: WorkflowState, action: WorkflowAction) -> None:
        current = state.lifecycle_status
        next_status = transition(current, action)
        if next_status == current or next_status == WorkflowStatus.ERROR:
            raise StateError(
                f"Action {action.value} is not allowed in state {current.value}",
                workflow_id=state.workflow_id,
                step=action.value,
            )
        state.lifecycle_status = next_status
        logger.info(f"Workflow {state.workflow_id}: {current.value} -> {next_status.value}")

    @staticmethod
    def _set_step(state: WorkflowState, step_index: int) -> None:
        state.current_step_index = max(state.current_step_index, step_index)

    def _project(self, state: WorkflowState, **extra: Any) -> dict[str, Any]:
        data = state.to_client_dict()
        step = self.steps[min(state.current_step_index, len(self.steps)) - 1]
        data["current_step"] = step
        data["step_title"] = self.config.get_step_titles().get(step, step)
        data["available_actions"] = [a.value for a in available_actions(state.lifecycle_status)]
        data.update(extra)
        return data

    def _require_template(self, state: WorkflowState, action: str) -> Template:
        if not state.data.template_id:
            raise StateError("No template selected", state.workflow_id, action)
        template = self.record_store.find_template_by_id(state.data.template_id)
        if template is None:
            raise NotFoundError("Template", state.data.template_id, step=action)
        return template

    def _definition(self, name: str, required: bool) -> VariableDefinition:
        definition = self.record_store.get_variable_definition(name)
        if definition is None:
            definition = VariableDefinition(name=name)
        return definition.model_copy(update={"required": required})

    def _status_options(self, workflow_type: WorkflowType) -> list[dict[str, str]]:
        options = self.record_store.get_options_for(f"status_{workflow_type.value}")
        if options:
            return [option.model_dump() for option in options]
        return self.config.get_status_options(workflow_type.value)

    def _build_context(self, state: WorkflowState, template: Template) -> dict[str, Any]:
        context: dict[str, Any] = {
            "workflow_type": state.data.workflow_type.value if state.data.workflow_type else None,
            "category": state.data.category,
            "subcategory": state.data.subcategory,
            "status": state.data.status,
            "locale": state.locale,
        }
        for name in [*template.required_variables, *template.optional_variables]:
            definition = self.record_store.get_variable_definition(name)
            if definition is not None and definition.default_value is not None:
                context[name] = definition.default_value
        context.update(state.data.variables or {})
        return context

    @staticmethod
    def _find_category(categories: list[PolicyCategory], key: str | None) -> PolicyCategory | None:
        for category in categories:
            if key in (category.category_id, category.name):
                return category
        return None

    # ------------------------------------------------------------------
    # Workflow operations
    def initialize(
        self, owner_id: str, locale: str | None = None, workflow_id: str | None = None
    ) -> dict[str, Any]:
        """Create and persist a new workflow session."""
        with self._operation("initialize", workflow_id):
            if workflow_id is not None:
                check = validate_workflow_id(workflow_id)
                if not check["is_valid"]:
                    raise StateError(check["error"], workflow_id, "initialize")

            now = datetime.now(UTC)
            state = WorkflowState(
                workflow_id=workflow_id or str(uuid.uuid4()),
                total_steps=len(self.steps),
                created_at=now,
                updated_at=now,
                owner_id=owner_id,
                locale=locale or self.config.default_locale,
            )
            self._save(state)
            logger.info(f"Created new workflow: {state.workflow_id}")
            return self._project(state, workflow_types=self.config.get_workflow_types())

    def get_state(self, workflow_id: str) -> dict[str, Any]:
        with self._operation("get_state", workflow_id):
            return self._project(self._load(workflow_id, "get_state"))

    def set_workflow_type(self, workflow_id: str, workflow_type: str) -> dict[str, Any]:
        """Select the review type. The type cannot change once set."""
        action = WorkflowAction.SELECT_TYPE.value
        with self._operation(action, workflow_id):
            state = self._load(workflow_id, action)
            try:
                selected = WorkflowType(workflow_type)
            except ValueError:
                message = f"Unknown workflow type: {workflow_type}"
                raise ValidationError(
                    message, field="workflow_type", errors={"workflow_type": [message]}, step=action
                ) from None

            if state.data.workflow_type is not None:
                raise StateError("Workflow type is already set", workflow_id, action)

            self._advance(state, WorkflowAction.SELECT_TYPE)
            state.data.workflow_type = selected
            self._set_step(state, 2)
            self._save(state)

            categories = self.record_store.get_policy_categories(selected.value)
            return self._project(
                state, policy_categories=[c.model_dump(mode="json") for c in categories]
            )

    def get_policy_categories(self, workflow_id: str) -> list[dict[str, Any]]:
        with self._operation("get_policy_categories", workflow_id):
            state = self._load(workflow_id, "get_policy_categories")
            if state.data.workflow_type is None:
                raise StateError("Workflow type is not set", workflow_id, "get_policy_categories")
            categories = self.record_store.get_policy_categories(state.data.workflow_type.value)
            return [c.model_dump(mode="json") for c in categories]

    def set_policy_selection(
        self, workflow_id: str, category: str, subcategory: str | None = None
    ) -> dict[str, Any]:
        """Select the policy category and, where the category has them, a subcategory."""
        action = WorkflowAction.SELECT_POLICY.value
        with self._operation(action, workflow_id):
            state = self._load(workflow_id, action)
            if state.data.workflow_type is None:
                raise StateError("Workflow type is not set", workflow_id, action)

            categories = self.record_store.get_policy_categories(state.data.workflow_type.value)
            selected = self._find_category(categories, category)
            if selected is None:
                raise NotFoundError("Policy category", category, step=action)

            subcategory_id = subcategory or None
            if selected.subcategories:
                if not subcategory:
                    message = f"A subcategory is required for {selected.name}"
                    raise ValidationError(
                        message, field="subcategory", errors={"subcategory": [message]}, step=action
                    )
                child = self._find_category(selected.subcategories, subcategory)
                if child is None:
                    raise NotFoundError("Policy subcategory", subcategory, step=action)
                subcategory_id = child.category_id

            self._advance(state, WorkflowAction.SELECT_POLICY)
            state.data.category = selected.category_id
            state.data.subcategory = subcategory_id
            self._set_step(state, 3)
            self._save(state)
            return self._project(
                state, status_options=self._status_options(state.data.workflow_type)
            )

    def set_status(self, workflow_id: str, status: str) -> dict[str, Any]:
        """
        Select the review status and resolve the template.

        Moves to INPUT_REQUIRED when the template takes variables, otherwise
        stays in STATUS_SELECTED ready for generation.
        """
        action = WorkflowAction.SELECT_STATUS.value
        with self._operation(action, workflow_id):
            state = self._load(workflow_id, action)
            if state.data.workflow_type is None or state.data.category is None:
                raise StateError("Policy selection is incomplete", workflow_id, action)

            allowed = [o["value"] for o in self._status_options(state.data.workflow_type)]
            if status not in allowed:
                message = f"Unknown status: {status}"
                raise ValidationError(
                    message, field="status", errors={"status": [message]}, step=action
                )

            template = self.record_store.find_template(
                state.data.workflow_type.value,
                state.data.category,
                state.data.subcategory,
                status,
            )
            if template is None:
                selection = "/".join(
                    str(part)
                    for part in (
                        state.data.workflow_type.value,
                        state.data.category,
                        state.data.subcategory,
                        status,
                    )
                    if part
                )
                raise NotFoundError("Template", selection, step=action)

            self._advance(state, WorkflowAction.SELECT_STATUS)
            state.data.status = status
            state.data.template_id = template.template_id

            template_variables = self.record_store.get_template_variables(template.template_id)
            requires_input = bool(template_variables.required or template_variables.optional)
            if requires_input:
                self._advance(state, WorkflowAction.REQUIRE_INPUT)
            else:
                state.data.variables = {}

            self._set_step(state, 4)
            self._save(state)
            return self._project(
                state,
                requires_input=requires_input,
                variables=self._describe_variables(
                    template_variables.required, template_variables.optional
                ),
            )

    def _describe_variables(self, required: list[str], optional: list[str]) -> dict[str, Any]:
        return {
            "required": [self._definition(n, True).model_dump(mode="json") for n in required],
            "optional": [self._definition(n, False).model_dump(mode="json") for n in optional],
        }

    def get_template_variables(self, workflow_id: str) -> dict[str, Any]:
        with self._operation("get_template_variables", workflow_id):
            state = self._load(workflow_id, "get_template_variables")
            if not state.data.template_id:
                raise StateError("No template selected", workflow_id, "get_template_variables")
            names = self.record_store.get_template_variables(state.data.template_id)
            return self._describe_variables(names.required, names.optional)

    def set_template_variables(self, workflow_id: str, variables: dict[str, Any]) -> dict[str, Any]:
        """
        Validate and store template variables.

        Every required variable must pass its rules; any failure rejects the
        whole submission and leaves the stored state untouched.
        """
        action = WorkflowAction.SUBMIT_INPUT.value
        with self._operation(action, workflow_id):
            state = self._load(workflow_id, action)
            template = self._require_template(state, action)
            self._advance(state, WorkflowAction.SUBMIT_INPUT)

            cleaned = {name: sanitize(value) for name, value in (variables or {}).items()}
            names = self.record_store.get_template_variables(template.template_id)

            errors: dict[str, list[str]] = {}
            warnings: dict[str, list[str]] = {}
            checks = [(name, True) for name in names.required]
            checks += [(name, False) for name in names.optional if name in cleaned]
            for name, required in checks:
                rules = rules_for_definition(self._definition(name, required))
                result = self.validation_engine.validate(name, cleaned.get(name), rules)
                if not result.is_valid:
                    errors[name] = result.errors
                if result.warnings:
                    warnings[name] = result.warnings

            if errors:
                raise ValidationError(
                    f"{len(errors)} template variables failed validation",
                    field=next(iter(errors)),
                    errors=errors,
                    step=action,
                )

            self._advance(state, WorkflowAction.VALIDATE)
            state.data.variables = cleaned
            state.data.preview = self.template_engine.render(
                template.content,
                self._build_context(state, template),
                preview=True,
                locale=state.locale,
            )
            self._set_step(state, 5)
            self._save(state)
            return self._project(state, warnings=warnings)

    def preview_content(
        self, workflow_id: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Render the selected template in preview mode without changing state."""
        with self._operation("preview", workflow_id):
            state = self._load(workflow_id, "preview")
            template = self._require_template(state, "preview")
            context = self._build_context(state, template)
            context.update({name: sanitize(value) for name, value in (variables or {}).items()})
            preview = self.template_engine.render(
                template.content, context, preview=True, locale=state.locale
            )
            return {
                "workflow_id": workflow_id,
                "template_id": template.template_id,
                "preview": preview,
            }

    def generate_content(self, workflow_id: str) -> dict[str, Any]:
        """
        Render the final email.

        The state is persisted as GENERATION before rendering so an
        interrupted render stays visible. Failures leave the workflow in ERROR.
        """
        action = WorkflowAction.GENERATE.value
        with self._operation(action, workflow_id):
            state = self._load(workflow_id, action)
            if not state.data.template_id or state.data.variables is None:
                raise StateError(
                    "Template and variables must be set before generation", workflow_id, action
                )
            if state.lifecycle_status == WorkflowStatus.STATUS_SELECTED:
                self._advance(state, WorkflowAction.GENERATE)
            elif state.lifecycle_status != WorkflowStatus.GENERATION:
                raise StateError(
                    f"Cannot generate in state {state.lifecycle_status.value}", workflow_id, action
                )
            self._save(state)

            try:
                template = self._require_template(state, action)
                content = self.template_engine.render(
                    template.content,
                    self._build_context(state, template),
                    preview=False,
                    locale=state.locale,
                )
            except Exception as e:
                state.lifecycle_status = WorkflowStatus.ERROR
                state.last_error = str(e)
                self._save(state)
                logger.error(
                    f"Generation failed for workflow {workflow_id} "
                    f"(template {state.data.template_id}): {e}",
                    exc_info=True,
                )
                if isinstance(e, WorkflowException):
                    raise
                raise TemplateError(
                    f"Generation failed: {e}", template_id=state.data.template_id, step=action
                ) from e

            now = datetime.now(UTC)
            state.data.generated_content = content
            self._advance(state, WorkflowAction.COMPLETE)
            state.completed_at = now
            self._set_step(state, len(self.steps))
            self._save(state)

            word_count = len(content.split())
            result = GenerationResult(
                generated_content=content,
                metadata=GenerationMetadata(
                    generated_at=now.isoformat(),
                    template_used=template.template_id,
                    word_count=word_count,
                    estimated_read_time=f"{max(1, -(-word_count // WORDS_PER_MINUTE))} min read",
                ),
            )
            try:
                self.record_store.record_audit_event(
                    "generate_content",
                    "workflow",
                    workflow_id,
                    {
                        "template_id": template.template_id,
                        "content_length": len(content),
                        "word_count": word_count,
                    },
                )
            except Exception:
                logger.exception(f"Could not record audit event for workflow {workflow_id}")

            payload = result.model_dump(by_alias=True)
            self.cache.set(
                f"generation:{workflow_id}", payload, self.config.cache_default_ttl_seconds
            )
            logger.info(f"Generated {word_count} words for workflow {workflow_id}")
            return payload

    def get_generated_content(self, workflow_id: str) -> dict[str, Any]:
        """Return the cached generation result of a workflow."""
        with self._operation("get_generated_content", workflow_id):
            self._load(workflow_id, "get_generated_content")
            result = self.cache.get(f"generation:{workflow_id}")
            if result is None:
                raise NotFoundError("Generation result", workflow_id, step="get_generated_content")
            return result

    def reset(self, workflow_id: str) -> dict[str, Any]:
        """Return the workflow to its first step and discard collected data."""
        with self._operation("reset", workflow_id):
            state = self._load(workflow_id, "reset")
            fresh = WorkflowState(
                workflow_id=state.workflow_id,
                total_steps=len(self.steps),
                created_at=state.created_at,
                owner_id=state.owner_id,
                locale=state.locale,
            )
            self._save(fresh)
            self.cache.delete(f"generation:{workflow_id}")
            logger.info(f"Reset workflow: {workflow_id}")
            return self._project(fresh)

    def cleanup_old_states(self, max_age_hours: float | None = None) -> int:
        """Delete states older than the threshold along with unreadable ones."""
        hours = max_age_hours if max_age_hours is not None else self.config.state_max_age_hours
        deadline = time.monotonic() + self.config.operation_deadline_seconds
        removed = self.state_store.delete_older_than(timedelta(hours=hours), deadline=deadline)
        self.cache.cleanup()
        logger.info(f"Cleaned up {removed} workflow states older than {hours} hours")
        return removed

    def localize_error(
        self, error: WorkflowException, locale: str | None = None
    ) -> dict[str, Any]:
        """Build a localized error envelope; internal detail stays in the logs."""
        messages = self.config.get_error_messages(locale)
        message = messages.get(error.code, error.user_message)
        field = error.field if isinstance(error, ValidationError) else None
        details = {"errors": error.errors} if isinstance(error, ValidationError) else None
        return json_error(error.code, message, field=field, details=details)


def build_workflow_manager(
    config: EmailWorkflowConfig | None = None,
    record_store: RecordStore | None = None,
) -> EmailWorkflowManager:
    """
    Wire the workflow manager and its collaborators.

    Args:
        config: Workflow configuration (default: cached environment config)
        record_store: Source of templates and reference data (default:
            loaded from config.records_path)

    Returns:
        Configured EmailWorkflowManager
    """
    config = config or get_email_config()
    if record_store is None:
        if config.records_path:
            record_store = InMemoryRecordStore.from_json_file(config.records_path)
        else:
            logger.warning("No records_path configured, starting with an empty record store")
            record_store = InMemoryRecordStore()

    if config.state_db_path:
        state_backend = SQLiteKeyValueBackend(config.state_db_path, table="workflow_states")
        subject_backend = SQLiteKeyValueBackend(config.state_db_path, table="cache_subject")
        process_backend = SQLiteKeyValueBackend(config.state_db_path, table="cache_process")
    else:
        state_backend = InMemoryKeyValueBackend()
        subject_backend = InMemoryKeyValueBackend()
        process_backend = InMemoryKeyValueBackend()

    cache = TieredCache(
        memory_capacity=config.cache_memory_capacity,
        subject_backend=subject_backend,
        process_backend=process_backend,
        max_entry_bytes=config.cache_max_entry_bytes,
    )
    store = CachedRecordStore(record_store, cache, ttl=config.cache_default_ttl_seconds)
    template_engine = TemplateEngine(
        build_default_functions(config, store), locale=config.default_locale
    )
    validation_engine = ValidationEngine(default_rule_registry(), config.get_validation_rules())

    return EmailWorkflowManager(
        config=config,
        record_store=store,
        state_store=KeyValueStateStore(state_backend),
        validation_engine=validation_engine,
        template_engine=template_engine,
        cache=cache,
    )

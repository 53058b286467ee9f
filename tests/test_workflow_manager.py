"""
Tests for the email workflow manager.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from policy_mail.api.email_workflow.config import EmailWorkflowConfig
from policy_mail.api.email_workflow.workflow_manager import build_workflow_manager
from policy_mail.api.workflow_base.exceptions import (
    NotFoundError,
    SessionNotFoundException,
    StateError,
    TemplateError,
    ValidationError,
    WorkflowException,
)
from policy_mail.api.workflow_base.models import WorkflowState

UNKNOWN_ID = "3f2b8c1e-9d4a-4f6b-8a2c-1e5d7f9b0a3c"

VALID_VARIABLES = {"customer_name": " Ana ", "ecid": "1234567890", "agent_name": "Sam"}


def start_misreview(manager) -> str:
    """Drive a workflow up to variable input."""
    workflow_id = manager.initialize("owner-1")["workflow_id"]
    manager.set_workflow_type(workflow_id, "misreview")
    manager.set_policy_selection(workflow_id, "ads_policy", "misleading_claims")
    manager.set_status(workflow_id, "upheld")
    return workflow_id


def start_certification(manager) -> str:
    """Drive a workflow to a template without variables."""
    workflow_id = manager.initialize("owner-1")["workflow_id"]
    manager.set_workflow_type(workflow_id, "certification")
    manager.set_policy_selection(workflow_id, "trademark")
    manager.set_status(workflow_id, "approved")
    return workflow_id


class TestInitialize:
    """Session creation and state projection."""

    def test_initialize_creates_state(self, manager):
        result = manager.initialize("owner-1")

        assert result["lifecycle_status"] == "initial"
        assert result["current_step_index"] == 1
        assert result["total_steps"] == 5
        assert result["current_step"] == "workflow_type"
        assert result["step_title"] == "Review Type"
        assert result["available_actions"] == ["select_type"]
        assert "misreview" in result["workflow_types"]
        assert "owner_id" not in result
        assert manager.state_store.load(result["workflow_id"]).owner_id == "owner-1"

    def test_initialize_uses_locale(self, manager):
        result = manager.initialize("owner-1", locale="es-ES")
        assert result["locale"] == "es-ES"

    def test_initialize_rejects_malformed_id(self, manager):
        with pytest.raises(StateError):
            manager.initialize("owner-1", workflow_id="abc")

    def test_get_state_with_malformed_id(self, manager):
        with pytest.raises(StateError) as exc_info:
            manager.get_state("not-a-uuid")
        assert exc_info.value.code == "SESSION_INVALID"

    def test_get_state_for_unknown_workflow(self, manager):
        with pytest.raises(SessionNotFoundException) as exc_info:
            manager.get_state(UNKNOWN_ID)
        assert isinstance(exc_info.value, StateError)


class TestSelections:
    """Type, policy and status selection."""

    @pytest.fixture
    def workflow_id(self, manager):
        return manager.initialize("owner-1")["workflow_id"]

    def test_set_workflow_type(self, manager, workflow_id):
        result = manager.set_workflow_type(workflow_id, "misreview")

        assert result["lifecycle_status"] == "type_selected"
        assert result["current_step_index"] == 2
        assert result["data"]["workflow_type"] == "misreview"
        assert result["policy_categories"][0]["category_id"] == "ads_policy"

    def test_unknown_workflow_type(self, manager, workflow_id):
        with pytest.raises(ValidationError) as exc_info:
            manager.set_workflow_type(workflow_id, "bogus")

        assert exc_info.value.field == "workflow_type"
        assert manager.get_state(workflow_id)["lifecycle_status"] == "initial"

    def test_workflow_type_cannot_change(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")

        with pytest.raises(StateError):
            manager.set_workflow_type(workflow_id, "disapproval")

    def test_policy_categories_require_type(self, manager, workflow_id):
        with pytest.raises(StateError):
            manager.get_policy_categories(workflow_id)

        manager.set_workflow_type(workflow_id, "certification")
        assert manager.get_policy_categories(workflow_id)[0]["name"] == "Trademark"

    def test_set_policy_selection(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")

        result = manager.set_policy_selection(workflow_id, "ads_policy", "misleading_claims")

        assert result["lifecycle_status"] == "policy_selected"
        assert result["data"]["category"] == "ads_policy"
        assert result["data"]["subcategory"] == "misleading_claims"
        assert [o["value"] for o in result["status_options"]] == [
            "overturned",
            "upheld",
            "partially_overturned",
        ]

    def test_policy_selection_by_name(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")

        result = manager.set_policy_selection(workflow_id, "Ads Policy", "Misleading Claims")

        assert result["data"]["category"] == "ads_policy"
        assert result["data"]["subcategory"] == "misleading_claims"

    def test_subcategory_required_when_category_has_children(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")

        with pytest.raises(ValidationError) as exc_info:
            manager.set_policy_selection(workflow_id, "ads_policy")
        assert exc_info.value.field == "subcategory"

    @pytest.mark.parametrize(
        "category, subcategory", [("unknown", None), ("ads_policy", "unknown")]
    )
    def test_unknown_policy(self, manager, workflow_id, category, subcategory):
        manager.set_workflow_type(workflow_id, "misreview")

        with pytest.raises(NotFoundError):
            manager.set_policy_selection(workflow_id, category, subcategory)

    def test_status_before_policy(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")

        with pytest.raises(StateError):
            manager.set_status(workflow_id, "upheld")

    def test_unknown_status(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")
        manager.set_policy_selection(workflow_id, "ads_policy", "misleading_claims")

        with pytest.raises(ValidationError):
            manager.set_status(workflow_id, "celebrated")

    def test_status_without_matching_template(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")
        manager.set_policy_selection(workflow_id, "ads_policy", "restricted_content")

        with pytest.raises(NotFoundError):
            manager.set_status(workflow_id, "upheld")
        assert manager.get_state(workflow_id)["lifecycle_status"] == "policy_selected"

    def test_status_with_variables_requires_input(self, manager, workflow_id):
        manager.set_workflow_type(workflow_id, "misreview")
        manager.set_policy_selection(workflow_id, "ads_policy", "misleading_claims")

        result = manager.set_status(workflow_id, "upheld")

        assert result["lifecycle_status"] == "input_required"
        assert result["requires_input"] is True
        assert result["data"]["template_id"] == "misreview-claims"
        assert [v["name"] for v in result["variables"]["required"]] == ["customer_name", "ecid"]
        assert all(v["required"] for v in result["variables"]["required"])
        assert not any(v["required"] for v in result["variables"]["optional"])

    def test_status_without_variables_skips_input(self, manager):
        workflow_id = start_certification(manager)
        state = manager.get_state(workflow_id)

        assert state["lifecycle_status"] == "status_selected"
        assert state["data"]["variables"] == {}
        assert state["available_actions"] == ["require_input", "generate"]


class TestVariables:
    """Variable submission and previews."""

    def test_get_template_variables(self, manager):
        workflow_id = start_misreview(manager)

        variables = manager.get_template_variables(workflow_id)

        assert variables["required"][0]["display_name"] == "Customer Name"
        notes = next(v for v in variables["optional"] if v["name"] == "notes")
        assert notes["default_value"] == "No additional notes."

    def test_submit_valid_variables(self, manager):
        workflow_id = start_misreview(manager)

        result = manager.set_template_variables(workflow_id, VALID_VARIABLES)

        assert result["lifecycle_status"] == "generation"
        assert result["current_step_index"] == 5
        assert result["data"]["variables"]["customer_name"] == "Ana"
        assert result["data"]["preview"] == (
            "Hello Ana,\n\n"
            "Your review for account 1234567890 was UPHELD.\n"
            "Reviewed by Sam.\n"
            "No additional notes."
        )

    def test_invalid_variables_leave_state_untouched(self, manager):
        workflow_id = start_misreview(manager)

        with pytest.raises(ValidationError) as exc_info:
            manager.set_template_variables(workflow_id, {"customer_name": "  ", "ecid": "123"})

        assert exc_info.value.errors == {
            "customer_name": ["This field is required"],
            "ecid": ["ECID must be exactly 10 digits"],
        }
        state = manager.get_state(workflow_id)
        assert state["lifecycle_status"] == "input_required"
        assert state["data"]["variables"] is None

        # A corrected submission is accepted
        manager.set_template_variables(workflow_id, VALID_VARIABLES)
        assert manager.get_state(workflow_id)["lifecycle_status"] == "generation"

    def test_optional_variables_validated_when_present(self, manager):
        workflow_id = start_misreview(manager)

        with pytest.raises(ValidationError) as exc_info:
            manager.set_template_variables(workflow_id, {**VALID_VARIABLES, "agent_name": "S"})
        assert list(exc_info.value.errors) == ["agent_name"]

    def test_preview_does_not_mutate_state(self, manager):
        workflow_id = start_misreview(manager)
        before = manager.get_state(workflow_id)

        preview = manager.preview_content(workflow_id, {"customer_name": "Ana"})

        assert preview["template_id"] == "misreview-claims"
        assert preview["preview"].startswith("Hello Ana,")
        assert "[ecid]" in preview["preview"]
        assert manager.get_state(workflow_id) == before

    def test_preview_without_template(self, manager):
        workflow_id = manager.initialize("owner-1")["workflow_id"]

        with pytest.raises(StateError):
            manager.preview_content(workflow_id)


class TestGeneration:
    """Final content generation."""

    def test_generate_after_input(self, manager, record_store):
        workflow_id = start_misreview(manager)
        manager.set_template_variables(workflow_id, VALID_VARIABLES)

        result = manager.generate_content(workflow_id)

        assert result["generatedContent"].startswith("Hello Ana,")
        metadata = result["metadata"]
        assert metadata["templateUsed"] == "misreview-claims"
        assert metadata["wordCount"] == 15
        assert metadata["estimatedReadTime"] == "1 min read"
        assert datetime.fromisoformat(metadata["generatedAt"]).tzinfo is not None

        state = manager.get_state(workflow_id)
        assert state["lifecycle_status"] == "completed"
        assert state["completed_at"] is not None
        assert state["data"]["generated_content"] == result["generatedContent"]

        audit = record_store.audit_events[-1]
        assert audit["action"] == "generate_content"
        assert audit["entity_id"] == workflow_id
        assert audit["details"]["word_count"] == 15

        assert manager.get_generated_content(workflow_id) == result

    def test_generate_without_variables(self, manager):
        workflow_id = start_certification(manager)

        result = manager.generate_content(workflow_id)

        assert result["generatedContent"] == "Your trademark certification was approved."
        state = manager.get_state(workflow_id)
        assert state["lifecycle_status"] == "completed"
        assert state["current_step_index"] == 5
        assert state["current_step"] == "generate"

    def test_generate_before_status(self, manager):
        workflow_id = manager.initialize("owner-1")["workflow_id"]

        with pytest.raises(StateError):
            manager.generate_content(workflow_id)

    def test_generate_while_input_required(self, manager):
        workflow_id = start_misreview(manager)

        with pytest.raises(StateError):
            manager.generate_content(workflow_id)

    def test_generate_twice(self, manager):
        workflow_id = start_certification(manager)
        manager.generate_content(workflow_id)

        with pytest.raises(StateError):
            manager.generate_content(workflow_id)

    def test_render_failure_moves_to_error(self, manager):
        workflow_id = start_certification(manager)

        with patch.object(manager.template_engine, "render", side_effect=RuntimeError("boom")):
            with pytest.raises(TemplateError):
                manager.generate_content(workflow_id)

        assert manager.get_state(workflow_id)["lifecycle_status"] == "error"
        assert manager.state_store.load(workflow_id).last_error == "boom"
        with pytest.raises(NotFoundError):
            manager.get_generated_content(workflow_id)

    def test_template_error_is_not_wrapped(self, manager):
        workflow_id = start_certification(manager)
        error = TemplateError("Template content is missing", template_id="x")

        with patch.object(manager.template_engine, "render", side_effect=error):
            with pytest.raises(TemplateError) as exc_info:
                manager.generate_content(workflow_id)

        assert exc_info.value is error

    def test_audit_failure_does_not_fail_generation(self, manager):
        workflow_id = start_certification(manager)

        with patch.object(
            manager.record_store, "record_audit_event", side_effect=RuntimeError("audit down")
        ):
            result = manager.generate_content(workflow_id)

        assert result["generatedContent"]
        assert manager.get_state(workflow_id)["lifecycle_status"] == "completed"


class TestErrorHandling:
    """Unexpected failures and localized envelopes."""

    def test_unexpected_error_marks_workflow_failed(self, manager):
        workflow_id = manager.initialize("owner-1")["workflow_id"]

        with patch.object(
            manager.record_store, "get_policy_categories", side_effect=RuntimeError("db down")
        ):
            with pytest.raises(WorkflowException) as exc_info:
                manager.set_workflow_type(workflow_id, "misreview")

        assert exc_info.type is WorkflowException
        assert manager.get_state(workflow_id)["lifecycle_status"] == "error"

    def test_localize_validation_error(self, manager):
        error = ValidationError(
            "1 template variables failed validation",
            field="ecid",
            errors={"ecid": ["ECID must be exactly 10 digits"]},
        )

        envelope = manager.localize_error(error)

        assert envelope["success"] is False
        assert envelope["error"]["code"] == "VALIDATION_ERROR"
        assert envelope["error"]["field"] == "ecid"
        assert envelope["error"]["details"] == {
            "errors": {"ecid": ["ECID must be exactly 10 digits"]}
        }
        assert "failed validation" not in envelope["error"]["message"]

    def test_localize_in_spanish(self, manager):
        envelope = manager.localize_error(SessionNotFoundException(UNKNOWN_ID), "es-ES")
        assert envelope["error"]["message"] == "Sesión no encontrada. Inicie una nueva sesión."

    def test_unknown_locale_falls_back_to_english(self, manager):
        envelope = manager.localize_error(NotFoundError("Template", "x"), "xx")
        assert envelope["error"]["message"] == "No matching template or record was found."


class TestResetAndCleanup:
    """Explicit reset and removal of old states."""

    def test_reset_returns_to_start(self, manager):
        workflow_id = start_certification(manager)
        manager.generate_content(workflow_id)

        result = manager.reset(workflow_id)

        assert result["lifecycle_status"] == "initial"
        assert result["current_step_index"] == 1
        assert result["data"]["workflow_type"] is None
        assert result["data"]["generated_content"] is None
        with pytest.raises(NotFoundError):
            manager.get_generated_content(workflow_id)

        manager.set_workflow_type(workflow_id, "misreview")
        assert manager.get_state(workflow_id)["lifecycle_status"] == "type_selected"

    def _store_state(self, manager, workflow_id, age_hours, use_created_at=False):
        stamp = datetime.now(UTC) - timedelta(hours=age_hours)
        state = WorkflowState(
            workflow_id=workflow_id,
            total_steps=5,
            created_at=stamp,
            updated_at=None if use_created_at else stamp,
            owner_id="owner-1",
        )
        manager.state_store.save(workflow_id, state)

    def test_cleanup_removes_old_and_corrupt_states(self, manager):
        fresh_id = manager.initialize("owner-1")["workflow_id"]
        self._store_state(manager, "recent", 23)
        self._store_state(manager, "stale", 25)
        self._store_state(manager, "stale-created", 30, use_created_at=True)
        manager.state_store.backend.set("workflow_state:corrupt", "{not json")

        removed = manager.cleanup_old_states()

        assert removed == 3
        assert sorted(manager.state_store.list_ids()) == sorted([fresh_id, "recent"])

    def test_cleanup_with_custom_age(self, manager):
        self._store_state(manager, "recent", 23)

        assert manager.cleanup_old_states(max_age_hours=1) == 1
        assert manager.state_store.list_ids() == []

    def test_cleanup_stops_at_deadline(self, record_store):
        config = EmailWorkflowConfig(_env_file=None, operation_deadline_seconds=0)
        manager = build_workflow_manager(config, record_store)
        self._store_state(manager, "stale", 48)

        assert manager.cleanup_old_states() == 0
        assert manager.state_store.list_ids() == ["stale"]


class TestPersistence:
    """SQLite-backed managers."""

    def test_state_survives_new_manager(self, tmp_path, record_store):
        config = EmailWorkflowConfig(_env_file=None, state_db_path=str(tmp_path / "mail.db"))
        first = build_workflow_manager(config, record_store)
        workflow_id = first.initialize("owner-1")["workflow_id"]
        first.set_workflow_type(workflow_id, "misreview")

        second = build_workflow_manager(config, record_store)

        assert second.get_state(workflow_id)["lifecycle_status"] == "type_selected"

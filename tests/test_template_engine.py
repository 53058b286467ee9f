"""
Tests for the template engine and its function registry.
"""

from datetime import date

import pytest

from policy_mail.api.email_workflow.config import EmailWorkflowConfig
from policy_mail.api.email_workflow.template_engine import (
    FunctionRegistry,
    TemplateEngine,
    build_default_functions,
    resolve_path,
    stringify,
)
from policy_mail.api.workflow_base.exceptions import TemplateError


@pytest.fixture
def engine(record_store):
    config = EmailWorkflowConfig(_env_file=None)
    return TemplateEngine(build_default_functions(config, record_store))


class TestVariables:
    """Variable substitution and value display."""

    def test_substitutes_variables_and_paths(self, engine):
        content = "Dear {{name}}, your city is {{customer.address.city}}."
        variables = {"name": "Ana", "customer": {"address": {"city": "Lima"}}}

        assert engine.render(content, variables) == "Dear Ana, your city is Lima."

    def test_missing_variable_renders_empty(self, engine):
        assert engine.render("Hi {{name}}!", {}) == "Hi !"

    def test_missing_variable_in_preview_shows_name(self, engine):
        assert engine.render("Hi {{name}}!", {}, preview=True) == "Hi [name]!"

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3.0, "3"),
            (2.5, "2.5"),
            (["a", "b"], "a, b"),
            ({"k": 1}, '{"k": 1}'),
        ],
    )
    def test_stringify(self, value, expected):
        assert stringify(value) == expected

    def test_resolve_path_with_list_index(self):
        assert resolve_path("items.1", {"items": ["a", "b"]}) == "b"
        assert resolve_path("items.5", {"items": ["a"]}) is None
        assert resolve_path("a.b", {"a": "text"}) is None

    def test_escapes_are_normalized(self, engine):
        assert engine.render("a\\nb &lt;ok&gt; &amp;lt;", {}) == "a\nb <ok> &lt;"


class TestConditionals:
    """{{#if}} blocks."""

    @pytest.mark.parametrize(
        "flag, expected", [(True, "shown"), (False, ""), ("yes", "shown"), ("", "")]
    )
    def test_truthiness(self, engine, flag, expected):
        assert engine.render("{{#if flag}}shown{{/if}}", {"flag": flag}) == expected

    def test_missing_condition_is_false(self, engine):
        assert engine.render("{{#if missing}}shown{{/if}}", {}) == ""

    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("status == 'upheld'", True),
            ("status != 'upheld'", False),
            ("count > 3", True),
            ("count <= 3", False),
            ("count == '5'", True),
            ("missing > 3", False),
            ("missing == null", True),
            ("customer.tier == 'gold'", True),
        ],
    )
    def test_comparisons(self, engine, expression, expected):
        variables = {"status": "upheld", "count": 5, "customer": {"tier": "gold"}}
        assert engine.evaluate_condition(expression, variables) is expected

    def test_block_body_is_rendered(self, engine):
        content = "{{#if agent}}Reviewed by {{agent}}.{{/if}}"
        assert engine.render(content, {"agent": "Sam"}) == "Reviewed by Sam."

    def test_multiple_blocks(self, engine):
        content = "{{#if a}}A{{/if}}-{{#if b}}B{{/if}}"
        assert engine.render(content, {"a": True, "b": False}) == "A-"


class TestLoops:
    """{{#each}} blocks."""

    def test_iterates_items(self, engine):
        content = "{{#each items}}[{{@index}}:{{this}}]{{/each}}"
        assert engine.render(content, {"items": ["a", "b"]}) == "[0:a][1:b]"

    def test_item_properties(self, engine):
        content = "{{#each rows}}{{this.name}}={{this.detail.code}};{{/each}}"
        rows = [{"name": "x", "detail": {"code": 1}}, {"name": "y", "detail": {"code": 2}}]

        assert engine.render(content, {"rows": rows}) == "x=1;y=2;"

    def test_first_and_last_markers(self, engine):
        content = "{{#each items}}{{this}}:{{@first}}/{{@last}} {{/each}}"
        assert engine.render(content, {"items": [1, 2]}) == "1:true/false 2:false/true "

    def test_empty_list_renders_nothing(self, engine):
        assert engine.render("a{{#each items}}x{{/each}}b", {"items": []}) == "ab"

    def test_non_list_outside_preview(self, engine):
        assert engine.render("{{#each items}}x{{/each}}", {"items": "nope"}) == ""

    def test_non_list_in_preview(self, engine):
        result = engine.render("{{#each items}}x{{/each}}", {"items": 3}, preview=True)
        assert result == "[Error: items is not a list]"


class TestFunctions:
    """Function calls resolved through the registry."""

    def test_string_functions(self, engine):
        content = "{{upper(name)}} {{lower('ABC')}} {{capitalize(word)}}"
        assert engine.render(content, {"name": "ana", "word": "hELLO"}) == "ANA abc Hello"

    def test_truncate(self, engine):
        assert engine.render("{{truncate(text, 5)}}", {"text": "Hello world"}) == "Hello..."
        assert engine.render("{{truncate(text, 50)}}", {"text": "short"}) == "short"

    def test_default_and_join(self, engine):
        content = "{{default(missing, 'n/a')}} | {{join(items, ' / ')}}"
        assert engine.render(content, {"items": ["a", "b"]}) == "n/a | a / b"

    def test_format_number_uses_locale(self, engine):
        content = "{{formatNumber(amount, 2)}}"

        assert engine.render(content, {"amount": 1234.5}) == "1,234.50"
        assert engine.render(content, {"amount": 1234.5}, locale="de-DE") == "1.234,50"

    def test_format_date_styles(self, engine):
        variables = {"when": "2024-03-05"}

        assert engine.render("{{formatDate(when)}}", variables) == "03/05/2024"
        assert engine.render("{{formatDate(when, 'long')}}", variables) == "March 05, 2024"
        assert engine.render("{{formatDate(when, 'iso')}}", variables) == "2024-03-05"
        assert engine.render("{{formatDate(when)}}", variables, locale="en-GB") == "05/03/2024"

    def test_format_date_accepts_date_objects(self, engine):
        assert engine.render("{{formatDate(d, '%Y')}}", {"d": date(2020, 1, 2)}) == "2020"

    def test_channel_options_come_from_records(self, engine):
        assert engine.render("{{getChannelOptions()}}", {}) == "Email, Live Chat"

    def test_status_options_fall_back_to_config(self, engine):
        result = engine.render("{{getStatusOptions(workflow_type)}}", {"workflow_type": "other"})
        assert result == "Resolved, Escalated"

    def test_unknown_function(self, engine):
        assert engine.render("a{{nope(x)}}b", {}) == "ab"
        assert engine.render("a{{nope(x)}}b", {}, preview=True) == "a[Unknown function: nope]b"

    def test_failing_function_in_preview(self, engine):
        result = engine.render("{{formatDate(when)}}", {"when": "garbage"}, preview=True)
        assert result.startswith("[Error in formatDate:")

    def test_failing_function_outside_preview_renders_empty(self, engine):
        assert engine.render("x{{formatNumber(v)}}", {"v": "abc"}) == "x"

    def test_custom_registry(self):
        engine = TemplateEngine(FunctionRegistry({"shout": lambda value: f"{value}!"}))
        assert engine.render("{{shout(word)}}", {"word": "hey"}) == "hey!"


class TestRenderModes:
    """Missing content and preview cleanup."""

    @pytest.mark.parametrize("content", [None, "", "   \n"])
    def test_missing_content_raises(self, engine, content):
        with pytest.raises(TemplateError):
            engine.render(content, {})

    def test_missing_content_in_preview(self, engine):
        assert engine.render("", {}, preview=True) == "[Template content is missing]"

    def test_preview_replaces_leftover_tokens(self, engine):
        assert engine.render("a {{@index}} b", {}, preview=True) == "a [...] b"

    def test_preview_collapses_blank_lines(self, engine):
        assert engine.render("a\n\n\n\n\nb", {}, preview=True) == "a\n\nb"

    def test_later_passes_see_substituted_values(self, engine):
        variables = {"name": "{{upper('pwned')}} &lt;b&gt;"}

        assert engine.render("Hi {{name}}", variables) == "Hi PWNED <b>"


class TestValidateTemplate:
    """Structural checks without rendering."""

    def test_valid_template(self, engine):
        result = engine.validate_template("{{#if a}}{{upper(b)}}{{/if}}")

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_empty_template(self, engine):
        result = engine.validate_template("  ")
        assert result.is_valid is False

    def test_unbalanced_braces(self, engine):
        result = engine.validate_template("Hello {{name}")

        assert result.is_valid is False
        assert "Unbalanced braces" in result.errors[0]

    def test_mismatched_blocks(self, engine):
        result = engine.validate_template("{{#if a}}x")

        assert result.is_valid is False
        assert result.errors == ["Mismatched #if blocks: 1 opened and 0 closed"]

    def test_unknown_function_is_a_warning(self, engine):
        result = engine.validate_template("{{mystery(a)}}")

        assert result.is_valid is True
        assert result.warnings == ["Unknown function: mystery"]

    def test_nested_blocks_warn(self, engine):
        result = engine.validate_template("{{#if a}}{{#if b}}x{{/if}}{{/if}}")

        assert result.is_valid is True
        assert "Nested #if blocks are not supported" in result.warnings

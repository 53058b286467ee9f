"""
Template rendering for policy emails.

Passes run in a fixed order and each sees the output of the previous one:
conditionals, loops, variables, function calls, formatting, then preview
cleanup. Blocks do not nest.
"""

import json
import logging
import operator
import re
from typing import Any

from policy_mail.api.email_workflow.validators import to_number
from policy_mail.api.workflow_base.exceptions import TemplateError
from policy_mail.api.workflow_base.models import ValidationResult

from .functions import FunctionRegistry, build_default_functions

logger = logging.getLogger(__name__)

IF_BLOCK = re.compile(r"\{\{#if\s+(.+?)\s*\}\}(.*?)\{\{/if\}\}", re.DOTALL)
EACH_BLOCK = re.compile(r"\{\{#each\s+([\w.]+)\s*\}\}(.*?)\{\{/each\}\}", re.DOTALL)
ITEM_TOKEN = re.compile(r"\{\{\s*this(?:\.([\w.]+))?\s*\}\}")
VARIABLE_TOKEN = re.compile(r"\{\{\s*([A-Za-z_]\w*(?:\.\w+)*)\s*\}\}")
FUNCTION_TOKEN = re.compile(r"\{\{\s*([A-Za-z_]\w*)\((.*?)\)\s*\}\}", re.DOTALL)
LEFTOVER_TOKEN = re.compile(r"\{\{[^{}]*\}\}")
COMPARISON = re.compile(r"^(.+?)\s*(==|!=|>=|<=|>|<)\s*(.+)$", re.DOTALL)
NUMBER_LITERAL = re.compile(r"^-?\d+(\.\d+)?$")
EXCESS_BLANK_LINES = re.compile(r"(?:[ \t]*\n){3,}")

PREVIEW_PLACEHOLDER = "[...]"

ORDERING = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def resolve_path(path: str, variables: dict[str, Any]) -> Any:
    """Look up a dot-path such as customer.address.city. Missing parts give None."""
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    """Render a value the way templates display it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def split_arguments(raw: str) -> list[str]:
    """Split a function argument list on commas outside quotes."""
    args: list[str] = []
    current: list[str] = []
    quote = None
    for char in raw:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
            current.append(char)
        elif char == ",":
            args.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tail = "".join(current).strip()
    if tail or args:
        args.append(tail)
    return args


def parse_operand(token: str, variables: dict[str, Any]) -> Any:
    """Parse a string, number or boolean literal, else resolve a variable."""
    token = token.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    if token == "true":
        return True
    if token == "false":
        return False
    if token in ("null", "undefined"):
        return None
    if NUMBER_LITERAL.match(token):
        return float(token) if "." in token else int(token)
    return resolve_path(token, variables)


def _loosely_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return stringify(left) == stringify(right)


def compare(left: Any, op: str, right: Any) -> bool:
    if op == "==":
        return _loosely_equal(left, right)
    if op == "!=":
        return not _loosely_equal(left, right)
    if left is None or right is None:
        return False
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return ORDERING[op](left_number, right_number)
    return ORDERING[op](stringify(left), stringify(right))


class TemplateEngine:
    """Render template strings against a variable context."""

    def __init__(self, functions: FunctionRegistry | None = None, locale: str = "en-US"):
        self.functions = functions or build_default_functions()
        self.locale = locale

    def render(
        self,
        content: str | None,
        variables: dict[str, Any] | None = None,
        preview: bool = False,
        locale: str | None = None,
    ) -> str:
        """
        Render a template.

        Args:
            content: Template source
            variables: Values addressable from the template
            preview: Contain errors inline instead of raising
            locale: Locale tag for date and number formatting

        Returns:
            Rendered text

        Raises:
            TemplateError: Outside preview mode, when the template cannot be rendered
        """
        if not isinstance(content, str) or not content.strip():
            if preview:
                return "[Template content is missing]"
            raise TemplateError("Template content is missing")

        variables = dict(variables or {})
        locale = locale or self.locale

        try:
            text = self._render_conditionals(content, variables, preview)
            text = self._render_loops(text, variables, preview)
            text = self._render_variables(text, variables, preview)
            text = self._render_functions(text, variables, preview, locale)
            text = self._format(text)
            if preview:
                text = self._cleanup_preview(text)
            return text
        except TemplateError:
            raise
        except Exception as e:
            logger.error(f"Template rendering failed: {e}")
            if preview:
                return f"[Template error: {e}]"
            raise TemplateError(f"Template rendering failed: {e}") from e

    def evaluate_condition(self, expression: str, variables: dict[str, Any]) -> bool:
        """Evaluate an {{#if}} expression. Missing values are false."""
        expression = expression.strip()
        if expression in variables:
            return bool(variables[expression])

        match = COMPARISON.match(expression)
        if match:
            left, op, right = match.groups()
            return compare(parse_operand(left, variables), op, parse_operand(right, variables))

        return bool(resolve_path(expression, variables))

    def _render_conditionals(self, text: str, variables: dict[str, Any], preview: bool) -> str:
        def replace(match: re.Match) -> str:
            expression, body = match.group(1), match.group(2)
            try:
                return body if self.evaluate_condition(expression, variables) else ""
            except Exception as e:
                logger.warning(f"Condition {expression!r} failed: {e}")
                return f"[Error in condition: {expression}]" if preview else ""

        return IF_BLOCK.sub(replace, text)

    def _render_loops(self, text: str, variables: dict[str, Any], preview: bool) -> str:
        def replace(match: re.Match) -> str:
            name, body = match.group(1), match.group(2)
            items = resolve_path(name, variables)
            if not isinstance(items, (list, tuple)):
                return f"[Error: {name} is not a list]" if preview else ""
            return "".join(
                self._render_item(body, item, index, len(items))
                for index, item in enumerate(items)
            )

        return EACH_BLOCK.sub(replace, text)

    @staticmethod
    def _render_item(body: str, item: Any, index: int, count: int) -> str:
        def replace_item(match: re.Match) -> str:
            path = match.group(1)
            if path is None:
                return stringify(item)
            return stringify(resolve_path(path, item)) if isinstance(item, dict) else ""

        text = ITEM_TOKEN.sub(replace_item, body)
        text = re.sub(r"\{\{\s*@index\s*\}\}", str(index), text)
        text = re.sub(r"\{\{\s*@first\s*\}\}", "true" if index == 0 else "false", text)
        return re.sub(r"\{\{\s*@last\s*\}\}", "true" if index == count - 1 else "false", text)

    @staticmethod
    def _render_variables(text: str, variables: dict[str, Any], preview: bool) -> str:
        def replace(match: re.Match) -> str:
            name = match.group(1)
            value = resolve_path(name, variables)
            if value is None:
                return f"[{name}]" if preview else ""
            return stringify(value)

        return VARIABLE_TOKEN.sub(replace, text)

    def _render_functions(
        self, text: str, variables: dict[str, Any], preview: bool, locale: str
    ) -> str:
        def replace(match: re.Match) -> str:
            name, raw_args = match.group(1), match.group(2)
            func = self.functions.get(name)
            if func is None:
                logger.warning(f"Unknown template function: {name}")
                return f"[Unknown function: {name}]" if preview else ""
            args = [parse_operand(arg, variables) for arg in split_arguments(raw_args)]
            try:
                if getattr(func, "uses_locale", False):
                    return stringify(func(*args, locale=locale))
                return stringify(func(*args))
            except Exception as e:
                logger.warning(f"Template function {name} failed: {e}")
                return f"[Error in {name}: {e}]" if preview else ""

        return FUNCTION_TOKEN.sub(replace, text)

    @staticmethod
    def _format(text: str) -> str:
        text = text.replace("\\n", "\n").replace("\\t", "\t")
        # &amp; last so "&amp;lt;" becomes "&lt;" rather than "<"
        return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")

    @staticmethod
    def _cleanup_preview(text: str) -> str:
        text = LEFTOVER_TOKEN.sub(PREVIEW_PLACEHOLDER, text)
        return EXCESS_BLANK_LINES.sub("\n\n", text)

    def validate_template(self, content: str | None) -> ValidationResult:
        """Check a template's structure without rendering it."""
        if not isinstance(content, str) or not content.strip():
            return ValidationResult(is_valid=False, errors=["Template content is empty"])

        errors: list[str] = []
        warnings: list[str] = []

        opening, closing = content.count("{{"), content.count("}}")
        if opening != closing:
            errors.append(f"Unbalanced braces: {opening} opening and {closing} closing")

        for block in ("if", "each"):
            opened = len(re.findall(r"\{\{#" + block + r"\s", content))
            closed = len(re.findall(r"\{\{/" + block + r"\}\}", content))
            if opened != closed:
                errors.append(f"Mismatched #{block} blocks: {opened} opened and {closed} closed")

        for pattern, block in ((IF_BLOCK, "if"), (EACH_BLOCK, "each")):
            for match in pattern.finditer(content):
                if "{{#" + block in match.group(2):
                    warnings.append(f"Nested #{block} blocks are not supported")
                    break

        for name in dict.fromkeys(match.group(1) for match in FUNCTION_TOKEN.finditer(content)):
            if name not in self.functions:
                warnings.append(f"Unknown function: {name}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

"""
Built-in template functions and the registry the engine resolves them from.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from policy_mail.api.email_workflow.validators import is_empty, parse_date, to_number

if TYPE_CHECKING:
    from policy_mail.api.email_workflow.config import EmailWorkflowConfig
    from policy_mail.api.email_workflow.record_store import RecordStore

logger = logging.getLogger(__name__)

TemplateFunction = Callable[..., Any]

LOCALE_FORMATS = {
    "en-US": {"short": "%m/%d/%Y", "long": "%B %d, %Y", "decimal": ".", "group": ","},
    "en-GB": {"short": "%d/%m/%Y", "long": "%d %B %Y", "decimal": ".", "group": ","},
    "de-DE": {"short": "%d.%m.%Y", "long": "%d.%m.%Y", "decimal": ",", "group": "."},
    "fr-FR": {"short": "%d/%m/%Y", "long": "%d/%m/%Y", "decimal": ",", "group": " "},
    "es-ES": {"short": "%d/%m/%Y", "long": "%d/%m/%Y", "decimal": ",", "group": "."},
}
DEFAULT_LOCALE = "en-US"


def locale_formats(locale: str | None) -> dict[str, str]:
    """Pick formats for a locale tag, falling back on language then en-US."""
    if locale in LOCALE_FORMATS:
        return LOCALE_FORMATS[locale]
    language = (locale or "").split("-")[0].lower()
    for tag, formats in LOCALE_FORMATS.items():
        if tag.split("-")[0] == language:
            return formats
    return LOCALE_FORMATS[DEFAULT_LOCALE]


def locale_aware(func: TemplateFunction) -> TemplateFunction:
    """Mark a function as taking the render locale as a keyword argument."""
    func.uses_locale = True
    return func


class FunctionRegistry:
    """Template functions addressable by name, e.g. {{upper(name)}}."""

    def __init__(self, functions: dict[str, TemplateFunction] | None = None):
        self._functions: dict[str, TemplateFunction] = dict(functions or {})

    def register(self, name: str, func: TemplateFunction) -> None:
        self._functions[name] = func

    def get(self, name: str) -> TemplateFunction | None:
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions


@locale_aware
def format_date(value: Any, style: str = "short", locale: str | None = None) -> str:
    """Format a date as short, long, iso or an explicit strftime pattern."""
    if is_empty(value):
        return ""
    parsed = datetime.now() if value == "today" else parse_date(value)
    if parsed is None:
        raise ValueError(f"Cannot format {value!r} as a date")
    if style == "iso":
        return parsed.date().isoformat()
    pattern = style if "%" in style else locale_formats(locale).get(style, "%Y-%m-%d")
    return parsed.strftime(pattern)


@locale_aware
def format_number(value: Any, decimals: int = 0, locale: str | None = None) -> str:
    if is_empty(value):
        return ""
    number = to_number(value)
    if number is None:
        raise ValueError(f"Cannot format {value!r} as a number")
    formats = locale_formats(locale)
    text = f"{number:,.{int(decimals)}f}"
    return text.replace(",", "\0").replace(".", formats["decimal"]).replace("\0", formats["group"])


def upper(value: Any) -> str:
    return "" if value is None else str(value).upper()


def lower(value: Any) -> str:
    return "" if value is None else str(value).lower()


def capitalize(value: Any) -> str:
    return "" if value is None else str(value).capitalize()


def truncate(value: Any, length: int = 50, suffix: str = "...") -> str:
    text = "" if value is None else str(value)
    length = int(length)
    if len(text) <= length:
        return text
    return text[:length].rstrip() + suffix


def default(value: Any, fallback: Any = "") -> Any:
    return fallback if is_empty(value) else value


def join(values: Any, separator: str = ", ") -> str:
    if values is None:
        return ""
    if not isinstance(values, (list, tuple)):
        return str(values)
    return separator.join("" if item is None else str(item) for item in values)


def build_default_functions(
    config: "EmailWorkflowConfig | None" = None,
    record_store: "RecordStore | None" = None,
) -> FunctionRegistry:
    """
    Create the function registry used by the template engine.

    Option lookups prefer record store rows and fall back to configured
    defaults.
    """

    def _labels(variable_name: str, fallback: list[dict[str, str]]) -> list[str]:
        options = record_store.get_options_for(variable_name) if record_store else []
        if options:
            return [option.label for option in options]
        return [option["label"] for option in fallback]

    def get_channel_options() -> list[str]:
        return _labels("channel", config.get_channel_options() if config else [])

    def get_status_options(workflow_type: Any) -> list[str]:
        if is_empty(workflow_type):
            return []
        fallback = config.get_status_options(workflow_type) if config else []
        return _labels(f"status_{workflow_type}", fallback)

    return FunctionRegistry(
        {
            "formatDate": format_date,
            "formatNumber": format_number,
            "upper": upper,
            "lower": lower,
            "capitalize": capitalize,
            "truncate": truncate,
            "default": default,
            "join": join,
            "getChannelOptions": get_channel_options,
            "getStatusOptions": get_status_options,
        }
    )

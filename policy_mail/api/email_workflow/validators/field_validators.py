"""
Field-level rule evaluators and sanitization.
Each evaluator takes a value and its rule options and returns a ValidationResult.
"""

import html
import logging
import math
import re
from collections.abc import Callable
from datetime import UTC, date, datetime
from functools import wraps
from typing import Any
from urllib.parse import urlparse

from policy_mail.api.workflow_base.models import ValidationResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
DATE_FORMATS = ["%m/%d/%Y", "%d %B %Y", "%B %d, %Y", "%b %d, %Y"]
REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}

RuleEvaluator = Callable[[Any, dict[str, Any]], ValidationResult]


def is_empty(value: Any) -> bool:
    """Check for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _fail(message: str) -> ValidationResult:
    return ValidationResult(is_valid=False, errors=[message])


def _collect(errors: list[str]) -> ValidationResult:
    return ValidationResult(is_valid=not errors, errors=errors)


def skip_empty(evaluator: RuleEvaluator) -> RuleEvaluator:
    """Treat an empty value as valid; only the required rule checks presence."""

    @wraps(evaluator)
    def wrapper(value: Any, options: dict[str, Any]) -> ValidationResult:
        if is_empty(value):
            return ValidationResult()
        return evaluator(value, options)

    return wrapper


def to_number(value: Any) -> float | None:
    """Coerce ints, floats and numeric strings. Returns None when not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> datetime | None:
    """Parse dates and ISO or common written date strings into naive UTC datetimes."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    elif isinstance(value, str):
        text = value.strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def validate_required(value: Any, options: dict[str, Any]) -> ValidationResult:
    if is_empty(value):
        return _fail(options.get("message") or "This field is required")
    return ValidationResult()


@skip_empty
def validate_email(value: Any, options: dict[str, Any]) -> ValidationResult:
    email = str(value).strip()
    if not re.match(EMAIL_PATTERN, email) or ".." in email:
        return _fail(options.get("message") or "Please enter a valid email address")
    return ValidationResult()


@skip_empty
def validate_url(value: Any, options: dict[str, Any]) -> ValidationResult:
    text = str(value).strip()
    try:
        parsed = urlparse(text)
    except ValueError:
        parsed = None
    if parsed is None or not parsed.scheme or not parsed.netloc or re.search(r"\s", text):
        return _fail(options.get("message") or "Please enter a valid URL")
    return ValidationResult()


@skip_empty
def validate_length(value: Any, options: dict[str, Any]) -> ValidationResult:
    length = len(value) if isinstance(value, (str, list, tuple)) else len(str(value))
    minimum = options.get("min")
    maximum = options.get("max")
    errors = []
    if minimum is not None and length < minimum:
        errors.append(options.get("min_message") or f"Must be at least {minimum} characters")
    if maximum is not None and length > maximum:
        errors.append(options.get("max_message") or f"Must be no more than {maximum} characters")
    return _collect(errors)


@skip_empty
def validate_range(value: Any, options: dict[str, Any]) -> ValidationResult:
    number = to_number(value)
    if number is None:
        return _fail(options.get("message") or "Must be a number")
    minimum = options.get("min")
    maximum = options.get("max")
    errors = []
    if minimum is not None and number < minimum:
        errors.append(options.get("min_message") or f"Must be at least {minimum}")
    if maximum is not None and number > maximum:
        errors.append(options.get("max_message") or f"Must be no more than {maximum}")
    return _collect(errors)


@skip_empty
def validate_pattern(value: Any, options: dict[str, Any]) -> ValidationResult:
    flags = 0
    for flag in options.get("flags") or "":
        flags |= REGEX_FLAGS.get(flag, 0)
    try:
        regex = re.compile(options.get("pattern") or "", flags)
    except re.error as e:
        logger.warning(f"Invalid validation pattern {options.get('pattern')!r}: {e}")
        return _fail(f"Invalid validation pattern: {e}")
    if not regex.search(str(value)):
        return _fail(options.get("message") or "Invalid format")
    return ValidationResult()


@skip_empty
def validate_date(value: Any, options: dict[str, Any]) -> ValidationResult:
    parsed = parse_date(value)
    if parsed is None:
        return _fail(options.get("message") or "Please enter a valid date")

    now = datetime.now(UTC).replace(tzinfo=None)
    errors = []
    if options.get("future") and not parsed > now:
        errors.append(options.get("future_message") or "Date must be in the future")
    if options.get("past") and not parsed < now:
        errors.append(options.get("past_message") or "Date must be in the past")

    minimum = parse_date(options["min"]) if options.get("min") is not None else None
    maximum = parse_date(options["max"]) if options.get("max") is not None else None
    if minimum is not None and parsed < minimum:
        errors.append(options.get("min_message") or f"Date must be on or after {options['min']}")
    if maximum is not None and parsed > maximum:
        errors.append(options.get("max_message") or f"Date must be on or before {options['max']}")
    return _collect(errors)


@skip_empty
def validate_number(value: Any, options: dict[str, Any]) -> ValidationResult:
    number = to_number(value)
    if number is None:
        return _fail(options.get("message") or "Please enter a valid number")
    errors = []
    if options.get("integer") and not number.is_integer():
        errors.append(options.get("integer_message") or "Must be a whole number")
    if options.get("positive") and not number > 0:
        errors.append(options.get("positive_message") or "Must be a positive number")
    if options.get("negative") and not number < 0:
        errors.append(options.get("negative_message") or "Must be a negative number")
    return _collect(errors)


@skip_empty
def validate_choice(value: Any, options: dict[str, Any]) -> ValidationResult:
    choices = [
        choice.get("value") if isinstance(choice, dict) else choice
        for choice in options.get("choices") or []
    ]
    values = value if isinstance(value, (list, tuple)) else [value]
    if not all(item in choices for item in values):
        return _fail(options.get("message") or "Please select a valid option")
    return ValidationResult()


@skip_empty
def validate_custom(value: Any, options: dict[str, Any]) -> ValidationResult:
    validator = options.get("validator")
    message = options.get("message") or "Validation failed"
    if not callable(validator):
        return _fail(message)
    try:
        outcome = validator(value)
    except Exception as e:
        logger.warning(f"Custom validator raised: {e}")
        return _fail(message)

    if isinstance(outcome, ValidationResult):
        return outcome
    if isinstance(outcome, dict) and "is_valid" in outcome:
        return ValidationResult.model_validate(outcome)
    return ValidationResult() if outcome else _fail(message)


def sanitize(
    value: Any,
    trim: bool = True,
    strip_html: bool = False,
    escape_html: bool = False,
    collapse_whitespace: bool = False,
    lowercase: bool = False,
    uppercase: bool = False,
) -> Any:
    """
    Clean a string value. Non-string values are returned unchanged.

    Args:
        value: Raw input
        trim: Strip leading and trailing whitespace
        strip_html: Remove HTML tags
        escape_html: Escape &, <, >, " and '
        collapse_whitespace: Replace whitespace runs with a single space
        lowercase: Lower-case the result
        uppercase: Upper-case the result

    Returns:
        Sanitized value
    """
    if not isinstance(value, str):
        return value

    if strip_html:
        value = re.sub(r"<[^>]*>", "", value)
    if escape_html:
        value = html.escape(value, quote=True)
    if collapse_whitespace:
        value = re.sub(r"\s+", " ", value)
    if trim:
        value = value.strip()
    if lowercase:
        value = value.lower()
    elif uppercase:
        value = value.upper()
    return value

"""
Template mini-language: conditionals, loops, variables and function calls.
"""

from .engine import PREVIEW_PLACEHOLDER, TemplateEngine, resolve_path, stringify
from .functions import FunctionRegistry, build_default_functions, locale_aware

__all__ = [
    "PREVIEW_PLACEHOLDER",
    "TemplateEngine",
    "resolve_path",
    "stringify",
    "FunctionRegistry",
    "build_default_functions",
    "locale_aware",
]

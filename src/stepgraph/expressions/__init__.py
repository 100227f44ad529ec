"""
Expression Resolver - {{ expr }} templates over a dry-run context.
"""

from .context import ExpressionContext, utc_now_iso
from .evaluator import ExpressionError, ExpressionEvaluator
from .resolver import (
    evaluate,
    has_placeholder,
    resolve_config,
    resolve_template,
    to_display_string,
)

__all__ = [
    "ExpressionContext",
    "utc_now_iso",
    "ExpressionError",
    "ExpressionEvaluator",
    "evaluate",
    "has_placeholder",
    "resolve_config",
    "resolve_template",
    "to_display_string",
]

"""
Template resolution.

A template is any string with zero or more {{ expr }} placeholders.
Resolution never raises: an expression that fails to evaluate counts as
undefined and renders as an empty string.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Optional

from .context import ExpressionContext
from .evaluator import ExpressionError, ExpressionEvaluator


logger = logging.getLogger(__name__)


# The whole string is one placeholder (surrounding whitespace allowed)
SINGLE_PLACEHOLDER = re.compile(r"^\s*\{\{\s*((?:(?!\}\}).)+?)\s*\}\}\s*$", re.DOTALL)
PLACEHOLDER = re.compile(r"\{\{\s*(.+?)\s*\}\}", re.DOTALL)

_evaluator = ExpressionEvaluator()


def has_placeholder(value: Any) -> bool:
    return isinstance(value, str) and PLACEHOLDER.search(value) is not None


def to_display_string(value: Any) -> str:
    """
    String form of a resolved value, following JavaScript's String():
    None is "", booleans are true/false, whole floats drop ".0".
    Lists and objects render as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def evaluate(expression: str, ctx: ExpressionContext) -> Optional[Any]:
    """Evaluate one bare expression; failures are logged and give None."""
    try:
        return _evaluator.evaluate(expression, ctx.to_scope())
    except ExpressionError as e:
        logger.debug("Expression %r resolved to undefined: %s", expression, e)
        return None


def resolve_template(template: str, ctx: ExpressionContext) -> Any:
    """
    Resolve a template string.

    A string that is exactly one placeholder yields the raw value (a
    number stays a number); None becomes "". Otherwise every placeholder
    is replaced by the string form of its value.
    """
    single = SINGLE_PLACEHOLDER.match(template)
    if single:
        value = evaluate(single.group(1), ctx)
        return "" if value is None else value
    if "{{" not in template:
        return template
    return PLACEHOLDER.sub(lambda m: to_display_string(evaluate(m.group(1), ctx)), template)


def resolve_config(value: Any, ctx: ExpressionContext) -> Any:
    """Apply resolve_template to every string leaf of a nested structure."""
    if isinstance(value, str):
        return resolve_template(value, ctx)
    if isinstance(value, dict):
        return {k: resolve_config(v, ctx) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_config(v, ctx) for v in value]
    return value


__all__ = [
    "has_placeholder",
    "to_display_string",
    "evaluate",
    "resolve_template",
    "resolve_config",
]

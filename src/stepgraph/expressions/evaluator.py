"""
Restricted expression evaluator for {{ ... }} placeholders.

Expressions are parsed with Python's ast module and walked by a small
interpreter that only understands property access, indexing and
literals. Nothing is compiled or executed: there are no calls, no
operators besides unary +/- and no access to Python attributes.
"""

import ast
import keyword
import math
import re
from typing import Any, Dict


class ExpressionError(Exception):
    """Expression evaluation error"""
    def __init__(self, message: str, expression: str = ""):
        super().__init__(message)
        self.expression = expression


# $name -> safe Python identifier
_VARIABLE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_VARIABLE_PREFIX = "_var_"

# .attr where attr is a Python keyword, e.g. $item.from
_ATTRIBUTE = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)")

# Quoted string literals; the rewrites above never apply inside them
_STRING = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")

# JavaScript literals written as bare names
_LITERALS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}


class ExpressionEvaluator:
    """
    Evaluate one expression against a scope of `$`-prefixed variables.

    Supported:
    - variables: $trigger, $steps, $item, ... (whatever the scope holds)
    - property access: a.b, including .length on lists and strings
    - indexing: a[0], a["key"], a[$index]
    - literals: strings, numbers (negative too), true/false/null/undefined,
      lists and objects

    Missing properties evaluate to None. Anything outside the grammar
    raises ExpressionError.
    """

    def evaluate(self, expression: str, scope: Dict[str, Any]) -> Any:
        """Evaluate an expression safely"""
        source = self._preprocess(expression)
        names = {
            _VARIABLE_PREFIX + key[1:]: value
            for key, value in scope.items()
            if key.startswith("$")
        }
        try:
            tree = ast.parse(source.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Syntax error in expression: {e.msg}", expression)
        except (RecursionError, MemoryError):
            raise ExpressionError("Expression is nested too deeply", expression)
        try:
            return self._eval_node(tree.body, names)
        except ExpressionError as e:
            e.expression = expression
            raise
        except (RecursionError, MemoryError):
            raise ExpressionError("Expression is nested too deeply", expression)
        except (TypeError, ValueError, OverflowError) as e:
            raise ExpressionError(f"Expression evaluation failed: {e}", expression)

    def _preprocess(self, expression: str) -> str:
        def _fix_reserved_attr(m: re.Match) -> str:
            name = m.group(1)
            return f"['{name}']" if keyword.iskeyword(name) else f".{name}"

        # odd parts are string literals and pass through untouched
        parts = _STRING.split(expression)
        for i in range(0, len(parts), 2):
            code = _VARIABLE.sub(lambda m: _VARIABLE_PREFIX + m.group(1), parts[i])
            parts[i] = _ATTRIBUTE.sub(_fix_reserved_attr, code)
        return "".join(parts)

    def _eval_node(self, node: ast.AST, names: Dict[str, Any]) -> Any:
        """Recursively evaluate AST nodes"""

        if isinstance(node, ast.Constant):
            if isinstance(node.value, (str, int, float)) or node.value is None:
                return node.value
            raise ExpressionError(f"Unsupported literal: {node.value!r}")

        elif isinstance(node, ast.Name):
            if node.id in names:
                return names[node.id]
            if node.id in _LITERALS:
                return _LITERALS[node.id]
            if node.id.startswith(_VARIABLE_PREFIX):
                raise ExpressionError(f"${node.id[len(_VARIABLE_PREFIX):]} is not defined")
            raise ExpressionError(f"'{node.id}' is not defined")

        elif isinstance(node, ast.Attribute):
            return self._member(self._eval_node(node.value, names), node.attr)

        elif isinstance(node, ast.Subscript):
            obj = self._eval_node(node.value, names)
            key = self._eval_node(node.slice, names)
            return self._member(obj, key)

        elif isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
            operand = self._eval_node(node.operand, names)
            if isinstance(operand, bool) or not isinstance(operand, (int, float)):
                raise ExpressionError("Unary +/- needs a number")
            return -operand if isinstance(node.op, ast.USub) else operand

        elif isinstance(node, ast.List):
            return [self._eval_node(item, names) for item in node.elts]

        elif isinstance(node, ast.Dict):
            if any(k is None for k in node.keys):
                raise ExpressionError("Spread in object literals is not supported")
            return {
                self._key(self._eval_node(k, names)): self._eval_node(v, names)
                for k, v in zip(node.keys, node.values)
            }

        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")

    @staticmethod
    def _key(value: Any) -> Any:
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return value
        raise ExpressionError("Object keys must be strings or numbers")

    @staticmethod
    def _member(obj: Any, key: Any) -> Any:
        """
        Property lookup with JavaScript leniency: a missing key or an
        out-of-range index is None rather than an error.
        """
        if obj is None:
            return None

        if isinstance(obj, dict):
            if key in obj:
                return obj[key]
            # "1" and 1 address the same entry, as object keys do in JS
            if isinstance(key, str) and key.lstrip("-").isdigit():
                return obj.get(int(key))
            if isinstance(key, (int, float)) and not isinstance(key, bool):
                if isinstance(key, float) and not key.is_integer():
                    return obj.get(str(key))
                return obj.get(str(int(key)))
            return None

        if isinstance(obj, (list, str)):
            if key == "length":
                return len(obj)
            if isinstance(key, str) and key.isdigit():
                key = int(key)
            if isinstance(key, float) and not math.isnan(key) and key.is_integer():
                key = int(key)
            if isinstance(key, int) and not isinstance(key, bool):
                return obj[key] if 0 <= key < len(obj) else None
            return None

        return None


__all__ = ["ExpressionError", "ExpressionEvaluator"]

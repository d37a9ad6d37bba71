from typing import Any, Dict, Optional
import ast
import logging
import operator
import re

from flowstudio.graph import normalize_branch

logger = logging.getLogger(__name__)

_MISSING = object()

MAX_EXPRESSION_LENGTH = 500
MAX_NUMBER = 10 ** 15

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_FUNCTIONS = {
    "int": int,
    "float": float,
    "str": str,
    "len": len,
    "abs": abs,
}


def lookup_field(context: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path like ``order.qty`` against the run context."""
    current: Any = context
    for part in str(path).split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


class ConditionEvaluator:
    """
    Evaluates the configuration of a condition node against the run context.

    The outcome is a branch key: ``"true"``/``"false"`` for boolean condition
    types, or the looked-up value for ``switch`` conditions. Edges are matched
    against it through normalize_branch.
    """

    def evaluate(self, config: Dict[str, Any], context: Dict[str, Any]) -> str:
        condition_type = config.get("conditionType", "comparison")

        if condition_type == "switch":
            value = lookup_field(context, config.get("field", ""))
            if value is _MISSING:
                value = config.get("default", "")
            return normalize_branch(str(value)) or ""

        if condition_type == "exists":
            result = self._exists(config, context)
        elif condition_type == "regex":
            result = self._regex(config, context)
        elif condition_type == "custom":
            result = self._evaluate_expression(config.get("expression", ""), context)
        else:
            result = self._compare(config, context)
        return "true" if result else "false"

    def _exists(self, config: Dict[str, Any], context: Dict[str, Any]) -> bool:
        value = lookup_field(context, config.get("field", ""))
        return value is not _MISSING and value is not None

    def _regex(self, config: Dict[str, Any], context: Dict[str, Any]) -> bool:
        value = lookup_field(context, config.get("field", ""))
        if value is _MISSING:
            return False
        try:
            return re.search(str(config.get("pattern", "")), str(value)) is not None
        except re.error as e:
            logger.warning(f"Invalid regex '{config.get('pattern')}': {e}")
            return False

    def _compare(self, config: Dict[str, Any], context: Dict[str, Any]) -> bool:
        field = config.get("field")
        if not field:
            # Placeholder condition with nothing to compare; let it pass
            return True

        actual = lookup_field(context, field)
        if actual is _MISSING:
            return False

        operator = config.get("operator", "equals")
        expected = config.get("value")

        if operator == "contains":
            if isinstance(actual, (list, tuple, set)):
                return expected in actual or str(expected) in [str(a) for a in actual]
            return str(expected) in str(actual)

        left, right = _as_number(actual), _as_number(expected)
        numeric = left is not None and right is not None

        if operator == "equals":
            return left == right if numeric else str(actual) == str(expected)
        if operator == "not_equals":
            return left != right if numeric else str(actual) != str(expected)
        if operator == "greater_than":
            return numeric and left > right
        if operator == "less_than":
            return numeric and left < right

        logger.warning(f"Unknown condition operator '{operator}'")
        return False

    def _evaluate_expression(self, expression: str, context: Dict[str, Any]) -> bool:
        """
        Evaluate a custom expression such as ``inventory < 10 and forecast > 50``.

        The expression is parsed and walked node by node; only comparisons,
        boolean logic, bounded arithmetic, context names, ``order.qty`` style
        lookups and a few conversion functions are understood. Anything else,
        and any evaluation failure, counts as False.
        """
        if not expression:
            return False
        try:
            if len(expression) > MAX_EXPRESSION_LENGTH:
                raise UnsupportedExpression(f"longer than {MAX_EXPRESSION_LENGTH} characters")
            tree = ast.parse(expression, mode="eval")
            return bool(_ExpressionWalker(context).visit(tree.body))
        except (UnsupportedExpression, SyntaxError, ValueError, TypeError,
                KeyError, ZeroDivisionError, RecursionError) as e:
            logger.warning(f"Failed to evaluate condition '{expression}': {e}")
            return False


class UnsupportedExpression(ValueError):
    pass


class _ExpressionWalker:
    """Evaluates the whitelisted subset of Python expression syntax."""

    def __init__(self, context: Dict[str, Any]):
        self.context = context

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise UnsupportedExpression(f"'{type(node).__name__}' is not allowed")
        return method(node)

    def visit_Constant(self, node: ast.Constant) -> Any:
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            _check_bounds(node.value)
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in ("True", "False", "None"):
            return {"True": True, "False": False, "None": None}[node.id]
        if node.id not in self.context:
            raise KeyError(node.id)
        return self.context[node.id]

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        value = self.visit(node.value)
        if node.attr.startswith("_") or not isinstance(value, dict):
            raise UnsupportedExpression(f"attribute '{node.attr}' is not allowed")
        return value[node.attr]

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            result = True
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = self.visit(value)
            if result:
                return result
        return result

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, (ast.USub, ast.UAdd)):
            _require_number(operand)
            return -operand if isinstance(node.op, ast.USub) else operand
        raise UnsupportedExpression(f"'{type(node.op).__name__}' is not allowed")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise UnsupportedExpression(f"'{type(node.op).__name__}' is not allowed")
        left, right = self.visit(node.left), self.visit(node.right)
        if isinstance(node.op, ast.Add) and isinstance(left, str) and isinstance(right, str):
            return left + right
        _require_number(left)
        _require_number(right)
        return _check_bounds(op(left, right))

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise UnsupportedExpression(f"'{type(op_node).__name__}' is not allowed")
            right = self.visit(comparator)
            if not op(left, right):
                return False
            left = right
        return True

    def visit_Call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS or node.keywords:
            raise UnsupportedExpression("only int, float, str, len and abs can be called")
        return _FUNCTIONS[node.func.id](*(self.visit(arg) for arg in node.args))


def _require_number(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"arithmetic needs numbers, got {type(value).__name__}")
    _check_bounds(value)


def _check_bounds(value: Any) -> Any:
    if isinstance(value, (int, float)) and abs(value) > MAX_NUMBER:
        raise UnsupportedExpression(f"number out of range: {value}")
    return value


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None

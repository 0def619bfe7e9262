"""Safe guard-expression evaluator.

Parses the expression with ``ast`` and walks a whitelist of node types;
names resolve against the process data. Anything outside the whitelist
(calls, attribute access, lambdas, comprehensions) is rejected.
"""
from __future__ import annotations

import ast
import logging
import operator as ops
from typing import Any, Callable

from process_engine.domain.collaborators import ExpressionEvaluator
from process_engine.domain.errors import DomainError

logger = logging.getLogger("process_engine.expression")


class ExpressionError(DomainError):
    def __init__(self, expression: str, reason: str):
        super().__init__(code="EXPRESSION_ERROR", message=f"Cannot evaluate '{expression}': {reason}")
        self.expression = expression
        self.reason = reason


_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: ops.add,
    ast.Sub: ops.sub,
    ast.Mult: ops.mul,
    ast.Div: ops.truediv,
    ast.FloorDiv: ops.floordiv,
    ast.Mod: ops.mod,
    ast.Pow: ops.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.Not: ops.not_,
    ast.USub: ops.neg,
    ast.UAdd: ops.pos,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: ops.eq,
    ast.NotEq: ops.ne,
    ast.Lt: ops.lt,
    ast.LtE: ops.le,
    ast.Gt: ops.gt,
    ast.GtE: ops.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: ops.is_,
    ast.IsNot: ops.is_not,
}


class AstExpressionEvaluator(ExpressionEvaluator):
    """Evaluates guard expressions such as ``amount > 100 and approved``."""

    def __init__(self, max_length: int = 1000):
        self.max_length = max_length

    def evaluate(self, expression: str, process_data: dict[str, Any]) -> Any:
        if len(expression) > self.max_length:
            raise ExpressionError(expression, f"longer than {self.max_length} characters")
        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(expression, f"syntax error: {e.msg}") from e

        try:
            return self._eval(tree.body, process_data)
        except ExpressionError:
            raise
        except (ArithmeticError, TypeError, ValueError, KeyError, IndexError) as e:
            logger.debug("expression failed: %s (%s)", expression, e)
            raise ExpressionError(expression, str(e)) from e

    def _eval(self, node: ast.AST, data: dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in data:
                return data[node.id]
            raise ExpressionError(ast.unparse(node), f"name '{node.id}' is not defined")
        if isinstance(node, ast.BoolOp):
            # Short-circuit like Python itself
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self._eval(value, data)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, data)
                if result:
                    return result
            return result
        if isinstance(node, ast.UnaryOp):
            return self._operator(_UNARY_OPS, node.op, node)(self._eval(node.operand, data))
        if isinstance(node, ast.BinOp):
            op = self._operator(_BIN_OPS, node.op, node)
            return op(self._eval(node.left, data), self._eval(node.right, data))
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, data)
            for op_node, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, data)
                if not self._operator(_COMPARE_OPS, op_node, node)(left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            branch = node.body if self._eval(node.test, data) else node.orelse
            return self._eval(branch, data)
        if isinstance(node, ast.Subscript):
            return self._eval(node.value, data)[self._eval(node.slice, data)]
        if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
            items = [self._eval(elt, data) for elt in node.elts]
            if isinstance(node, ast.Tuple):
                return tuple(items)
            return set(items) if isinstance(node, ast.Set) else items
        raise ExpressionError(ast.unparse(node), f"unsupported syntax {type(node).__name__}")

    @staticmethod
    def _operator(table: dict[type, Callable], op: ast.AST, node: ast.AST) -> Callable:
        func = table.get(type(op))
        if func is None:
            raise ExpressionError(ast.unparse(node), f"unsupported operator {type(op).__name__}")
        return func

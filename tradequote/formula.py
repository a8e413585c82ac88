"""
Safe arithmetic formulas for job templates.

Template quantities are written as small expressions over named job
parameters, e.g. "steps * 2" or "ceil(length / 2.4) + 1". A formula is
parsed once into a validated expression tree and then evaluated against
a parameter map. Only numbers, parameter names, arithmetic operators and
a short list of math functions are accepted — nothing is ever exec'd.
"""

import ast
import logging
import math
import operator
from functools import lru_cache

from .quote_calculator import round2

logger = logging.getLogger(__name__)


class FormulaError(ValueError):
    """Formula is malformed, uses something outside the whitelist, or can't be evaluated."""


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

FUNCTIONS = {
    "ceil": math.ceil,
    "floor": math.floor,
    "round": round,
    "min": min,
    "max": max,
    "abs": abs,
    "sqrt": math.sqrt,
}

MAX_EXPONENT = 10

# Math.ceil(x) style calls are accepted too
_NAMESPACE = "Math"


class Formula:
    """A parsed, validated formula. Evaluate as many times as needed."""

    def __init__(self, source: str):
        self.source = str(source).strip()
        if not self.source:
            raise FormulaError("Empty formula")
        try:
            tree = ast.parse(self.source, mode="eval")
        except SyntaxError as e:
            raise FormulaError("Invalid formula %r: %s" % (self.source, e.msg))
        self._root = tree.body
        self.variables = frozenset(self._validate(self._root))

    def __repr__(self):
        return "Formula(%r)" % self.source

    def _validate(self, node) -> set:
        """Walk the tree once, reject anything outside the whitelist, collect variable names."""
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise FormulaError("Only numeric constants allowed: %r" % (node.value,))
            return set()
        if isinstance(node, ast.Name):
            if node.id in FUNCTIONS or node.id == _NAMESPACE:
                raise FormulaError("%r is a function, not a value" % node.id)
            return {node.id}
        if isinstance(node, ast.BinOp):
            if type(node.op) not in _BINARY_OPS:
                raise FormulaError("Operator not allowed: %s" % type(node.op).__name__)
            return self._validate(node.left) | self._validate(node.right)
        if isinstance(node, ast.UnaryOp):
            if type(node.op) not in _UNARY_OPS:
                raise FormulaError("Operator not allowed: %s" % type(node.op).__name__)
            return self._validate(node.operand)
        if isinstance(node, ast.Call):
            self._function_name(node.func)
            if node.keywords:
                raise FormulaError("Keyword arguments not allowed")
            if not node.args:
                raise FormulaError("Function call needs arguments")
            names = set()
            for arg in node.args:
                names |= self._validate(arg)
            return names
        raise FormulaError("Unsupported expression: %s" % type(node).__name__)

    @staticmethod
    def _function_name(func) -> str:
        if isinstance(func, ast.Name) and func.id in FUNCTIONS:
            return func.id
        if (isinstance(func, ast.Attribute)
                and isinstance(func.value, ast.Name)
                and func.value.id == _NAMESPACE
                and func.attr in FUNCTIONS):
            return func.attr
        raise FormulaError("Function not allowed: %s" % ast.dump(func))

    def evaluate(self, params: dict) -> float:
        missing = self.variables - set(params)
        if missing:
            raise FormulaError("Missing parameter(s): %s" % ", ".join(sorted(missing)))
        try:
            values = {name: float(params[name]) for name in self.variables}
            return float(self._eval(self._root, values))
        except (ZeroDivisionError, OverflowError, TypeError, ValueError) as e:
            raise FormulaError("Could not evaluate %r: %s" % (self.source, e))

    def _eval(self, node, params):
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return params[node.id]
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, params)
            right = self._eval(node.right, params)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise FormulaError("Exponent too large: %s" % right)
            return _BINARY_OPS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, params))
        # ast.Call, already validated
        func = FUNCTIONS[self._function_name(node.func)]
        return func(*[self._eval(arg, params) for arg in node.args])


@lru_cache(maxsize=256)
def compile_formula(source: str) -> Formula:
    return Formula(source)


def evaluate_formula(source: str, params: dict) -> float:
    """
    Evaluate a template formula, rounded to 2 decimal places.

    Returns 0 (and logs a warning) for any malformed or unevaluable formula,
    so a bad template never blocks quoting.
    """
    try:
        value = compile_formula(str(source)).evaluate(params or {})
    except FormulaError as e:
        logger.warning("Formula evaluation failed: %s", e)
        return 0.0
    if not math.isfinite(value):
        logger.warning("Formula %r produced a non-finite value", source)
        return 0.0
    return round2(value)

"""
Math operators for building expressions.

Every function accepts symbols, expressions, strings naming symbols, or
plain numbers and returns an Expr node. Numeric evaluation is left to the
compiler, so no shortcut is taken for numeric-only inputs.
"""

from __future__ import annotations

from typing import Any

from beartype import beartype

from symindex.expr import Expr, ExprKind, as_expr


def _unary(kind: ExprKind, x: Any) -> Expr:
    return Expr(kind, (as_expr(x),))


def _binary(kind: ExprKind, x: Any, y: Any) -> Expr:
    return Expr(kind, (as_expr(x), as_expr(y)))


@beartype
def sin(x: Any) -> Expr:
    return _unary(ExprKind.SIN, x)


@beartype
def cos(x: Any) -> Expr:
    return _unary(ExprKind.COS, x)


@beartype
def tan(x: Any) -> Expr:
    return _unary(ExprKind.TAN, x)


@beartype
def asin(x: Any) -> Expr:
    return _unary(ExprKind.ASIN, x)


@beartype
def acos(x: Any) -> Expr:
    return _unary(ExprKind.ACOS, x)


@beartype
def atan(x: Any) -> Expr:
    return _unary(ExprKind.ATAN, x)


@beartype
def atan2(y: Any, x: Any) -> Expr:
    """Four-quadrant arctangent of y/x."""
    return _binary(ExprKind.ATAN2, y, x)


@beartype
def sqrt(x: Any) -> Expr:
    return _unary(ExprKind.SQRT, x)


@beartype
def exp(x: Any) -> Expr:
    return _unary(ExprKind.EXP, x)


@beartype
def log(x: Any) -> Expr:
    """Natural logarithm."""
    return _unary(ExprKind.LOG, x)


@beartype
def log10(x: Any) -> Expr:
    return _unary(ExprKind.LOG10, x)


@beartype
def abs(x: Any) -> Expr:
    return _unary(ExprKind.ABS, x)


@beartype
def sign(x: Any) -> Expr:
    """Sign function (-1, 0 or 1)."""
    return _unary(ExprKind.SIGN, x)


@beartype
def floor(x: Any) -> Expr:
    return _unary(ExprKind.FLOOR, x)


@beartype
def ceil(x: Any) -> Expr:
    return _unary(ExprKind.CEIL, x)


@beartype
def sinh(x: Any) -> Expr:
    return _unary(ExprKind.SINH, x)


@beartype
def cosh(x: Any) -> Expr:
    return _unary(ExprKind.COSH, x)


@beartype
def tanh(x: Any) -> Expr:
    return _unary(ExprKind.TANH, x)


@beartype
def min(x: Any, y: Any) -> Expr:
    """Element-wise minimum of two values."""
    return _binary(ExprKind.MIN, x, y)


@beartype
def max(x: Any, y: Any) -> Expr:
    """Element-wise maximum of two values."""
    return _binary(ExprKind.MAX, x, y)


@beartype
def mod(x: Any, y: Any) -> Expr:
    return _binary(ExprKind.MOD, x, y)


@beartype
def logical_and(x: Any, y: Any) -> Expr:
    return _binary(ExprKind.AND, x, y)


@beartype
def logical_or(x: Any, y: Any) -> Expr:
    return _binary(ExprKind.OR, x, y)


@beartype
def logical_not(x: Any) -> Expr:
    return _unary(ExprKind.NOT, x)


@beartype
def if_then_else(cond: Any, true_expr: Any, false_expr: Any) -> Expr:
    """Conditional expression: only the selected branch is evaluated."""
    return Expr(ExprKind.IF_THEN_ELSE, (as_expr(cond), as_expr(true_expr), as_expr(false_expr)))


# =============================================================================
# Array aggregates
# =============================================================================


@beartype
def sum(x: Any) -> Expr:
    """Sum of all elements of an array expression."""
    return _unary(ExprKind.SUM, x)


@beartype
def prod(x: Any) -> Expr:
    """Product of all elements of an array expression."""
    return _unary(ExprKind.PROD, x)


@beartype
def norm(x: Any) -> Expr:
    """Euclidean (Frobenius for matrices) norm of an array expression."""
    return _unary(ExprKind.NORM, x)


@beartype
def dot(x: Any, y: Any) -> Expr:
    """Inner product of two array expressions of the same size."""
    return _binary(ExprKind.DOT, x, y)

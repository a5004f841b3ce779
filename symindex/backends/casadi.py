"""
CasADi backend for compiled expressions.

Lowers a bound expression tree (see symindex.compiler) to a single
casadi.Function whose input is the vector of bound leaf values. At call
time the leaves are gathered from raw storage exactly as the NumPy
interpreter reads them, then the function is evaluated.

================================================================================
CasADi SX
================================================================================

Leaves are SX scalars, so array symbols are assembled element by element
(row-major) into SX matrices. Arrays of rank > 2 are lowered to a flat
column vector; aggregates (sum, prod, norm, dot) are unaffected by that.

================================================================================
"""

from __future__ import annotations

import functools
import warnings
from typing import Any, Dict, Hashable, List, Optional

import casadi as ca
import numpy as np

from symindex.compiler import Binding, Evaluator
from symindex.expr import Expr, ExprKind, iter_indices
from symindex.types import SymbolKind


def _prod(x: ca.SX) -> ca.SX:
    elements = [x[i] for i in range(x.numel())]
    return functools.reduce(lambda a, b: a * b, elements, ca.SX(1))


def _make_expr_handlers():
    """Create dispatch table for expression conversion."""
    unary = {
        ExprKind.NEG: lambda c, e: -c(e.children[0]),
        ExprKind.NOT: lambda c, e: ca.logic_not(c(e.children[0])),
        ExprKind.SIN: lambda c, e: ca.sin(c(e.children[0])),
        ExprKind.COS: lambda c, e: ca.cos(c(e.children[0])),
        ExprKind.TAN: lambda c, e: ca.tan(c(e.children[0])),
        ExprKind.ASIN: lambda c, e: ca.asin(c(e.children[0])),
        ExprKind.ACOS: lambda c, e: ca.acos(c(e.children[0])),
        ExprKind.ATAN: lambda c, e: ca.atan(c(e.children[0])),
        ExprKind.SQRT: lambda c, e: ca.sqrt(c(e.children[0])),
        ExprKind.EXP: lambda c, e: ca.exp(c(e.children[0])),
        ExprKind.LOG: lambda c, e: ca.log(c(e.children[0])),
        ExprKind.LOG10: lambda c, e: ca.log10(c(e.children[0])),
        ExprKind.ABS: lambda c, e: ca.fabs(c(e.children[0])),
        ExprKind.SIGN: lambda c, e: ca.sign(c(e.children[0])),
        ExprKind.FLOOR: lambda c, e: ca.floor(c(e.children[0])),
        ExprKind.CEIL: lambda c, e: ca.ceil(c(e.children[0])),
        ExprKind.SINH: lambda c, e: ca.sinh(c(e.children[0])),
        ExprKind.COSH: lambda c, e: ca.cosh(c(e.children[0])),
        ExprKind.TANH: lambda c, e: ca.tanh(c(e.children[0])),
        ExprKind.SUM: lambda c, e: ca.sum1(ca.sum2(c(e.children[0]))),
        ExprKind.PROD: lambda c, e: _prod(c(e.children[0])),
        ExprKind.NORM: lambda c, e: ca.norm_fro(c(e.children[0])),
    }

    binary = {
        ExprKind.ADD: lambda c, e: c(e.children[0]) + c(e.children[1]),
        ExprKind.SUB: lambda c, e: c(e.children[0]) - c(e.children[1]),
        ExprKind.MUL: lambda c, e: c(e.children[0]) * c(e.children[1]),
        ExprKind.DIV: lambda c, e: c(e.children[0]) / c(e.children[1]),
        ExprKind.POW: lambda c, e: c(e.children[0]) ** c(e.children[1]),
        ExprKind.ATAN2: lambda c, e: ca.atan2(c(e.children[0]), c(e.children[1])),
        ExprKind.MIN: lambda c, e: ca.fmin(c(e.children[0]), c(e.children[1])),
        ExprKind.MAX: lambda c, e: ca.fmax(c(e.children[0]), c(e.children[1])),
        ExprKind.MOD: lambda c, e: ca.fmod(c(e.children[0]), c(e.children[1])),
        ExprKind.AND: lambda c, e: ca.logic_and(c(e.children[0]), c(e.children[1])),
        ExprKind.OR: lambda c, e: ca.logic_or(c(e.children[0]), c(e.children[1])),
        ExprKind.DOT: lambda c, e: ca.dot(ca.vec(c(e.children[0])), ca.vec(c(e.children[1]))),
    }

    relational = {
        ExprKind.LT: lambda c, e: c(e.children[0]) < c(e.children[1]),
        ExprKind.LE: lambda c, e: c(e.children[0]) <= c(e.children[1]),
        ExprKind.GT: lambda c, e: c(e.children[0]) > c(e.children[1]),
        ExprKind.GE: lambda c, e: c(e.children[0]) >= c(e.children[1]),
        ExprKind.EQ: lambda c, e: c(e.children[0]) == c(e.children[1]),
        ExprKind.NE: lambda c, e: c(e.children[0]) != c(e.children[1]),
    }

    ternary = {
        ExprKind.IF_THEN_ELSE: lambda c, e: ca.if_else(c(e.children[0]), c(e.children[1]), c(e.children[2])),
    }

    return {**unary, **binary, **relational, **ternary}


# Global dispatch table
_EXPR_HANDLERS = _make_expr_handlers()


class _Lowering:
    """Converts one bound tree to SX, given SX symbols for the bound leaves."""

    def __init__(self, leaf_syms: Dict[Expr, ca.SX], inlined: Dict[Expr, Expr]):
        self.leaf_syms = leaf_syms
        self.inlined = inlined
        self._memo: Dict[Expr, ca.SX] = {}

    def __call__(self, expr: Expr) -> ca.SX:
        if expr.kind == ExprKind.CONSTANT:
            return ca.SX(expr.value)
        if expr.kind == ExprKind.SYMBOL:
            if expr in self.leaf_syms:
                return self.leaf_syms[expr]
            if expr not in self._memo:
                self._memo[expr] = self(self.inlined[expr])
            return self._memo[expr]
        if expr.kind == ExprKind.ARRAY:
            return self._array(expr)
        handler = _EXPR_HANDLERS.get(expr.kind)
        if handler:
            return handler(self, expr)
        raise ValueError(f"Unsupported expression kind: {expr.kind}")

    def _array(self, expr: Expr) -> ca.SX:
        if len(expr.shape) == 2:
            rows, cols = expr.shape
            return ca.vertcat(*[ca.horzcat(*[self(expr[i, j]) for j in range(cols)]) for i in range(rows)])
        return ca.vertcat(*[self(expr[idx]) for idx in iter_indices(expr.shape)])


def _to_numpy(out: ca.DM) -> Any:
    if out.numel() == 1:
        return float(out)
    arr = np.array(out)
    if arr.ndim == 2 and arr.shape[1] == 1:
        return arr[:, 0]
    return arr


class CasadiEvaluator(Evaluator):
    """
    Evaluator backed by a casadi.Function.

    The function takes the column vector of bound leaf values, in the
    order of ``self.inputs``.
    """

    def __init__(
        self,
        expr: Expr,
        bindings: Dict[Expr, Binding],
        inlined: Dict[Expr, Expr],
        time_dependent: bool,
        version: Optional[Hashable] = None,
    ):
        super().__init__(expr, bindings, inlined, time_dependent, version)
        self.inputs: List[Expr] = list(bindings)
        if any(b.kind == SymbolKind.OBSERVED for b in bindings.values()):
            warnings.warn(
                f"Observed leaves of {expr!r} come from the system's provider; "
                "they are evaluated numerically and passed to CasADi as inputs."
            )
        x = ca.SX.sym("x", len(self.inputs))
        leaf_syms = {leaf: x[i] for i, leaf in enumerate(self.inputs)}
        out = _Lowering(leaf_syms, inlined)(expr)
        self.function = ca.Function("evaluator", [x], [out], ["x"], ["out"])
        self._fast = None

    def _evaluate(self, u: Any, p: Any, t: Any) -> Any:
        values = [float(self.read_leaf(leaf, u, p, t)) for leaf in self.inputs]
        return _to_numpy(self.function(ca.DM(values) if values else ca.DM(0, 1)))

    def __repr__(self) -> str:
        return f"CasadiEvaluator({self.expr!r})"

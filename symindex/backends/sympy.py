"""
SymPy interoperability.

Importing this module registers SymPy types with the default classifier
and the Expr converter registry, so SymPy symbols and expressions can be
used wherever symindex accepts a symbol or an expression:

- sympy.Symbol is a named scalar symbol.
- sympy.MatrixSymbol is an array symbol of shape (rows, cols); its
  elements A[i, j] are named 'A[i,j]' like symindex array elements.
- Any other sympy expression is an unnamed scalar expression, converted
  to an Expr tree when compiled.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, Tuple

import sympy
from beartype import beartype
from sympy.matrices.expressions.matexpr import MatrixElement

from symindex.classify import SymbolicTraits, register_symbolic_type
from symindex.expr import Expr, ExprKind, format_indices, iter_indices, register_expr_converter
from symindex.types import SymbolicType

_FUNCTIONS: Dict[Any, ExprKind] = {
    sympy.sin: ExprKind.SIN,
    sympy.cos: ExprKind.COS,
    sympy.tan: ExprKind.TAN,
    sympy.asin: ExprKind.ASIN,
    sympy.acos: ExprKind.ACOS,
    sympy.atan: ExprKind.ATAN,
    sympy.exp: ExprKind.EXP,
    sympy.log: ExprKind.LOG,
    sympy.Abs: ExprKind.ABS,
    sympy.sign: ExprKind.SIGN,
    sympy.floor: ExprKind.FLOOR,
    sympy.ceiling: ExprKind.CEIL,
    sympy.sinh: ExprKind.SINH,
    sympy.cosh: ExprKind.COSH,
    sympy.tanh: ExprKind.TANH,
    sympy.Not: ExprKind.NOT,
}

_BINARY_FUNCTIONS: Dict[Any, ExprKind] = {
    sympy.atan2: ExprKind.ATAN2,
    sympy.Mod: ExprKind.MOD,
}

# n-ary operators folded left to right
_FOLDS: Dict[Any, ExprKind] = {
    sympy.Add: ExprKind.ADD,
    sympy.Mul: ExprKind.MUL,
    sympy.Min: ExprKind.MIN,
    sympy.Max: ExprKind.MAX,
    sympy.And: ExprKind.AND,
    sympy.Or: ExprKind.OR,
}

_RELATIONAL: Dict[Any, ExprKind] = {
    sympy.StrictLessThan: ExprKind.LT,
    sympy.LessThan: ExprKind.LE,
    sympy.StrictGreaterThan: ExprKind.GT,
    sympy.GreaterThan: ExprKind.GE,
    sympy.Equality: ExprKind.EQ,
    sympy.Unequality: ExprKind.NE,
}


def _element_indices(e: MatrixElement) -> Tuple[int, int]:
    return int(e.i), int(e.j)


def _element_name(e: MatrixElement) -> str:
    return f"{e.parent.name}{format_indices(_element_indices(e))}"


def _matrix_expand(m: sympy.MatrixSymbol) -> Tuple[Any, ...]:
    return tuple(m[i, j] for i, j in iter_indices(_matrix_shape(m)))


def _matrix_shape(m: sympy.MatrixSymbol) -> Tuple[int, int]:
    return int(m.shape[0]), int(m.shape[1])


def _fold(kind: ExprKind, args: Tuple[Expr, ...]) -> Expr:
    return functools.reduce(lambda a, b: Expr(kind, (a, b)), args)


def _piecewise(args: Tuple[Any, ...], prs: Callable[[Any], Expr]) -> Expr:
    (value, cond), rest = args[0], args[1:]
    if cond == sympy.true:
        return prs(value)
    if not rest:
        raise NotImplementedError("Piecewise without a default branch")
    return Expr(ExprKind.IF_THEN_ELSE, (prs(cond), prs(value), _piecewise(rest, prs)))


@beartype
def from_sympy(f: Any) -> Expr:
    """
    Convert a SymPy expression to an Expr tree.

    Raises NotImplementedError for SymPy node types without an Expr
    counterpart.
    """
    prs = from_sympy
    if isinstance(f, sympy.MatrixSymbol):
        return Expr(ExprKind.ARRAY, name=f.name, shape=_matrix_shape(f))
    if isinstance(f, MatrixElement):
        return Expr(ExprKind.SYMBOL, name=f.parent.name, indices=_element_indices(f))
    if isinstance(f, sympy.Symbol):
        return Expr(ExprKind.SYMBOL, name=f.name)
    if f == sympy.true:
        return Expr(ExprKind.CONSTANT, value=1.0)
    if f == sympy.false:
        return Expr(ExprKind.CONSTANT, value=0.0)
    if isinstance(f, sympy.Number):
        return Expr(ExprKind.CONSTANT, value=float(f))
    if isinstance(f, sympy.NumberSymbol):
        return Expr(ExprKind.CONSTANT, value=float(f.evalf()))
    f_type = type(f)
    if f_type in _FOLDS:
        return _fold(_FOLDS[f_type], tuple(prs(a) for a in f.args))
    if f_type in _RELATIONAL:
        return Expr(_RELATIONAL[f_type], (prs(f.lhs), prs(f.rhs)))
    if isinstance(f, sympy.Pow):
        base, power = f.args
        if power == sympy.S.Half:
            return Expr(ExprKind.SQRT, (prs(base),))
        return Expr(ExprKind.POW, (prs(base), prs(power)))
    if isinstance(f, sympy.Piecewise):
        return _piecewise(f.args, prs)
    if f.func in _FUNCTIONS and len(f.args) == 1:
        return Expr(_FUNCTIONS[f.func], (prs(f.args[0]),))
    if f.func in _BINARY_FUNCTIONS:
        return Expr(_BINARY_FUNCTIONS[f.func], (prs(f.args[0]), prs(f.args[1])))
    raise NotImplementedError(f"Unhandled SymPy type {f_type.__name__}: {f}")


def _basic_type(f: Any) -> SymbolicType:
    return SymbolicType.SCALAR_SYMBOLIC


register_symbolic_type(
    sympy.Symbol,
    SymbolicTraits(symbolic_type=_basic_type, name=lambda s: s.name),
)
register_symbolic_type(
    MatrixElement,
    SymbolicTraits(symbolic_type=_basic_type, name=_element_name),
)
register_symbolic_type(
    sympy.MatrixSymbol,
    SymbolicTraits(
        symbolic_type=lambda m: SymbolicType.ARRAY_SYMBOLIC,
        name=lambda m: m.name,
        expand=_matrix_expand,
        shape=_matrix_shape,
    ),
)
register_symbolic_type(sympy.Basic, SymbolicTraits(symbolic_type=_basic_type))

register_expr_converter(sympy.Basic, from_sympy)

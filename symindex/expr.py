"""
Expression tree representation.

This module contains the core Expr class and ExprKind enum that form
the abstract syntax tree for expressions over symbols.

The tree is backend-agnostic: the compiler interprets it directly
against numeric storage, and the CasADi backend lowers it to a
casadi.Function. Leaves are symbols (scalar or array) and constants.

Expr nodes are immutable and hashable. Structural equality (==) is kept
so expressions can be used as dictionary keys; use eq()/ne() to build
comparison nodes.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Generator, Optional, Tuple, Union

import numpy as np
from beartype import beartype

from symindex.types import Indices, Shape


class ExprKind(Enum):
    """Kinds of expression nodes."""

    # Leaf nodes
    SYMBOL = auto()  # Scalar symbol, optionally an element x[i,j] of an array
    ARRAY = auto()  # Array symbol with a declared shape
    CONSTANT = auto()  # Numeric constant

    # Unary operations
    NEG = auto()  # -x
    NOT = auto()  # not x

    # Binary arithmetic operations
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    POW = auto()

    # Relational operations
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    EQ = auto()
    NE = auto()

    # Boolean operations
    AND = auto()
    OR = auto()

    # Conditional expression
    IF_THEN_ELSE = auto()

    # Math functions
    SIN = auto()
    COS = auto()
    TAN = auto()
    ASIN = auto()
    ACOS = auto()
    ATAN = auto()
    ATAN2 = auto()
    SQRT = auto()
    EXP = auto()
    LOG = auto()
    LOG10 = auto()
    ABS = auto()
    SIGN = auto()
    FLOOR = auto()
    CEIL = auto()
    SINH = auto()
    COSH = auto()
    TANH = auto()
    MIN = auto()
    MAX = auto()
    MOD = auto()

    # Array aggregates (operand is an ARRAY leaf or an array-valued subtree)
    SUM = auto()
    PROD = auto()
    NORM = auto()
    DOT = auto()


_INFIX = {
    ExprKind.ADD: "+",
    ExprKind.SUB: "-",
    ExprKind.MUL: "*",
    ExprKind.DIV: "/",
    ExprKind.POW: "**",
    ExprKind.LT: "<",
    ExprKind.LE: "<=",
    ExprKind.GT: ">",
    ExprKind.GE: ">=",
    ExprKind.EQ: "==",
    ExprKind.NE: "!=",
    ExprKind.AND: "and",
    ExprKind.OR: "or",
}


@dataclass(frozen=True)
class Expr:
    """
    Immutable expression tree node.

    For array elements, use SYMBOL kind with indices set; the ARRAY kind
    stands for the whole array and carries its shape.
    """

    kind: ExprKind
    children: Tuple["Expr", ...] = ()
    name: Optional[str] = None  # For SYMBOL, ARRAY
    value: Optional[float] = None  # For CONSTANT
    indices: Indices = ()  # For array element SYMBOL: (i,), (i,j), etc.
    shape: Shape = ()  # For ARRAY

    def __repr__(self) -> str:
        if self.kind == ExprKind.SYMBOL:
            return self.indexed_name
        elif self.kind == ExprKind.ARRAY:
            dims = "x".join(str(d) for d in self.shape)
            return f"{self.name}[{dims}]"
        elif self.kind == ExprKind.CONSTANT:
            return f"{self.value}"
        elif self.kind == ExprKind.NEG:
            return f"(-{self.children[0]})"
        elif self.kind == ExprKind.NOT:
            return f"(not {self.children[0]})"
        elif self.kind in _INFIX:
            return f"({self.children[0]} {_INFIX[self.kind]} {self.children[1]})"
        elif self.kind == ExprKind.IF_THEN_ELSE:
            return f"(if {self.children[0]} then {self.children[1]} else {self.children[2]})"
        args = ", ".join(repr(c) for c in self.children)
        return f"{self.kind.name.lower()}({args})"

    @property
    def indexed_name(self) -> str:
        """Get the full name including indices: 'x' or 'x[0,1]'."""
        return (self.name or "") + format_indices(self.indices)

    def __getitem__(self, index: Union[int, Indices]) -> "Expr":
        """Index an array symbol down to one scalar element symbol (0-based)."""
        if self.kind != ExprKind.ARRAY:
            raise TypeError(f"Only array symbols can be indexed, not {self!r}")
        idx = (index,) if isinstance(index, int) else index
        if len(idx) != len(self.shape):
            raise TypeError(f"'{self.name}' needs {len(self.shape)} indices, got {len(idx)}")
        for i, (k, dim) in enumerate(zip(idx, self.shape)):
            if k < 0 or k >= dim:
                raise IndexError(f"Index {k} out of bounds for dimension {i} of '{self.name}' with size {dim}")
        return Expr(ExprKind.SYMBOL, name=self.name, indices=idx)

    def __len__(self) -> int:
        if self.kind != ExprKind.ARRAY:
            raise TypeError(f"Scalar expression {self!r} has no length")
        return self.shape[0]

    # Arithmetic operators - return new Expr nodes
    def __add__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (self, as_expr(other)))

    def __radd__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (as_expr(other), self))

    def __sub__(self, other: Any) -> "Expr":
        return Expr(ExprKind.SUB, (self, as_expr(other)))

    def __rsub__(self, other: Any) -> "Expr":
        return Expr(ExprKind.SUB, (as_expr(other), self))

    def __mul__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (self, as_expr(other)))

    def __rmul__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (as_expr(other), self))

    def __truediv__(self, other: Any) -> "Expr":
        return Expr(ExprKind.DIV, (self, as_expr(other)))

    def __rtruediv__(self, other: Any) -> "Expr":
        return Expr(ExprKind.DIV, (as_expr(other), self))

    def __pow__(self, other: Any) -> "Expr":
        return Expr(ExprKind.POW, (self, as_expr(other)))

    def __rpow__(self, other: Any) -> "Expr":
        return Expr(ExprKind.POW, (as_expr(other), self))

    def __neg__(self) -> "Expr":
        return Expr(ExprKind.NEG, (self,))

    def __pos__(self) -> "Expr":
        return self

    # Relational operators - return Boolean Expr
    def __lt__(self, other: Any) -> "Expr":
        return Expr(ExprKind.LT, (self, as_expr(other)))

    def __le__(self, other: Any) -> "Expr":
        return Expr(ExprKind.LE, (self, as_expr(other)))

    def __gt__(self, other: Any) -> "Expr":
        return Expr(ExprKind.GT, (self, as_expr(other)))

    def __ge__(self, other: Any) -> "Expr":
        return Expr(ExprKind.GE, (self, as_expr(other)))

    def eq(self, other: Any) -> "Expr":
        """Equality comparison node (== itself is structural equality)."""
        return Expr(ExprKind.EQ, (self, as_expr(other)))

    def ne(self, other: Any) -> "Expr":
        """Not-equal comparison node."""
        return Expr(ExprKind.NE, (self, as_expr(other)))


# Converters for foreign symbolic types, registered by the backends
_CONVERTERS: Dict[type, Callable[[Any], Expr]] = {}


@beartype
def register_expr_converter(cls: type, converter: Callable[[Any], Expr]) -> None:
    """Register a function lifting instances of ``cls`` (and subclasses) to Expr."""
    _CONVERTERS[cls] = converter


def as_expr(x: Any) -> Expr:
    """Convert various types to Expr.

    Strings become scalar symbols, numbers become constants. Types with a
    registered converter (see register_expr_converter) are lifted by it.
    """
    if isinstance(x, Expr):
        return x
    if isinstance(x, str):
        base, indices = parse_indices(x)
        return Expr(ExprKind.SYMBOL, name=base, indices=indices)
    if isinstance(x, (bool, int, float, np.integer, np.floating, np.bool_)):
        return Expr(ExprKind.CONSTANT, value=float(x))
    if isinstance(x, np.ndarray) and x.size == 1:
        return Expr(ExprKind.CONSTANT, value=float(x.flat[0]))
    for cls in type(x).__mro__:
        if cls in _CONVERTERS:
            return _CONVERTERS[cls](x)
    raise TypeError(f"Cannot convert {type(x)} to Expr")


@beartype
def sym(name: str, shape: Shape = ()) -> Expr:
    """Create a scalar symbol, or an array symbol when a shape is given."""
    if not shape:
        return Expr(ExprKind.SYMBOL, name=name)
    if any(dim < 0 for dim in shape):
        raise ValueError(f"Negative dimension in shape {shape} of '{name}'")
    return Expr(ExprKind.ARRAY, name=name, shape=shape)


@beartype
def const(value: Union[int, float]) -> Expr:
    """Create a constant node."""
    return Expr(ExprKind.CONSTANT, value=float(value))


def free_symbols(expr: Expr) -> Tuple[Expr, ...]:
    """
    Collect the leaf symbols (SYMBOL and ARRAY nodes) of an expression.

    Duplicates are removed; order is first appearance in a depth-first,
    left-to-right walk.
    """
    seen: Dict[Expr, None] = {}
    stack = [expr]
    while stack:
        node = stack.pop()
        if node.kind in (ExprKind.SYMBOL, ExprKind.ARRAY):
            seen.setdefault(node, None)
        else:
            stack.extend(reversed(node.children))
    return tuple(seen)


def substitute(expr: Expr, mapping: Dict[Expr, Expr]) -> Expr:
    """Return a copy of expr with every leaf found in mapping replaced."""
    if expr in mapping:
        return mapping[expr]
    if not expr.children:
        return expr
    children = tuple(substitute(c, mapping) for c in expr.children)
    if children == expr.children:
        return expr
    return Expr(
        kind=expr.kind,
        children=children,
        name=expr.name,
        value=expr.value,
        indices=expr.indices,
        shape=expr.shape,
    )


# =============================================================================
# Helper functions for symbol names and indices
# =============================================================================


@beartype
def parse_indices(name: str) -> Tuple[str, Indices]:
    """Parse indexed name: 'pos[0,1]' -> ('pos', (0, 1))."""
    if "[" not in name or not name.endswith("]"):
        return name, ()
    base = name.split("[")[0]
    idx_str = name[len(base) + 1 : -1]
    try:
        indices = tuple(int(i) for i in idx_str.split(","))
    except ValueError:
        return name, ()
    return base, indices


@beartype
def format_indices(indices: Indices) -> str:
    """Format indices as string: (0, 1) -> '[0,1]'."""
    if not indices:
        return ""
    return "[" + ",".join(str(i) for i in indices) + "]"


@beartype
def iter_indices(shape: Shape) -> Generator[Indices, None, None]:
    """Iterate over all valid index tuples for a given shape, row-major."""
    if not shape:
        yield ()
        return
    for idx in itertools.product(*(range(dim) for dim in shape)):
        yield idx

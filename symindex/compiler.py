"""
Expression compilation.

Turns an expression over a system's symbols into an Evaluator, a
reusable function of raw storage:

    evaluator(u, p)        for time-independent systems
    evaluator(u, p, t)     for time-dependent systems

Compilation resolves every leaf symbol once and records a binding
(state slot, parameter slot, time, or observed provider). Observed
symbols that have a defining expression are compiled recursively and
inlined. Evaluation then walks the tree without touching the system.

The default backend is a NumPy interpreter. The "casadi" backend
(symindex.backends.casadi) lowers the same bound tree to a
casadi.Function.

Evaluators compiled against a non-constant-structure system are tied to
the StructureVersion they were compiled for and must be recompiled when
it changes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional, Tuple

import numpy as np

from symindex.errors import UnknownSymbol
from symindex.expr import Expr, ExprKind, as_expr, iter_indices
from symindex.resolver import BoundResolver, scalar_leaves
from symindex.system import symbolic_container
from symindex.types import Capability, SymbolKind

BACKENDS = ("numpy", "casadi")


@dataclass(frozen=True)
class Binding:
    """Where the value of one scalar leaf comes from."""

    kind: SymbolKind
    index: Optional[int] = None
    # Evaluator returned by the system's observed() provider
    provider: Optional[Callable] = None


def _logical_and(l, r):
    return np.logical_and(l, r)


def _logical_or(l, r):
    return np.logical_or(l, r)


_UNARY = {
    ExprKind.NEG: lambda x: -x,
    ExprKind.NOT: np.logical_not,
    ExprKind.SIN: np.sin,
    ExprKind.COS: np.cos,
    ExprKind.TAN: np.tan,
    ExprKind.ASIN: np.arcsin,
    ExprKind.ACOS: np.arccos,
    ExprKind.ATAN: np.arctan,
    ExprKind.SQRT: np.sqrt,
    ExprKind.EXP: np.exp,
    ExprKind.LOG: np.log,
    ExprKind.LOG10: np.log10,
    ExprKind.ABS: np.abs,
    ExprKind.SIGN: np.sign,
    ExprKind.FLOOR: np.floor,
    ExprKind.CEIL: np.ceil,
    ExprKind.SINH: np.sinh,
    ExprKind.COSH: np.cosh,
    ExprKind.TANH: np.tanh,
    ExprKind.SUM: np.sum,
    ExprKind.PROD: np.prod,
    ExprKind.NORM: np.linalg.norm,
}

_BINARY = {
    ExprKind.ADD: lambda l, r: l + r,
    ExprKind.SUB: lambda l, r: l - r,
    ExprKind.MUL: lambda l, r: l * r,
    ExprKind.DIV: lambda l, r: l / r,
    ExprKind.POW: lambda l, r: l**r,
    ExprKind.LT: lambda l, r: l < r,
    ExprKind.LE: lambda l, r: l <= r,
    ExprKind.GT: lambda l, r: l > r,
    ExprKind.GE: lambda l, r: l >= r,
    ExprKind.EQ: lambda l, r: l == r,
    ExprKind.NE: lambda l, r: l != r,
    ExprKind.AND: _logical_and,
    ExprKind.OR: _logical_or,
    ExprKind.ATAN2: np.arctan2,
    ExprKind.MIN: np.minimum,
    ExprKind.MAX: np.maximum,
    ExprKind.MOD: np.mod,
    ExprKind.DOT: lambda l, r: np.dot(np.ravel(l), np.ravel(r)),
}


class Evaluator:
    """
    A compiled expression: a pure function of (u, p[, t]).

    Holds only the expression, the binding table fixed at compile time and
    the StructureVersion it was compiled for.

    Attributes
    ----------
    expr : Expr
        The compiled expression.
    bindings : dict
        Scalar leaf -> Binding.
    inlined : dict
        Observed leaf -> its defining expression (evaluated in place).
    time_dependent : bool
        Whether the system has an independent variable; if so the
        evaluator accepts ``t``.
    version : hashable or None
        StructureVersion for non-constant-structure systems.
    """

    def __init__(
        self,
        expr: Expr,
        bindings: Dict[Expr, Binding],
        inlined: Dict[Expr, Expr],
        time_dependent: bool,
        version: Optional[Hashable] = None,
    ):
        self.expr = expr
        self.bindings = bindings
        self.inlined = inlined
        self.time_dependent = time_dependent
        self.version = version

        kinds = {b.kind for b in bindings.values()}
        has_provider = SymbolKind.OBSERVED in kinds
        self.uses_states = SymbolKind.VARIABLE in kinds or has_provider
        self.uses_parameters = SymbolKind.PARAMETER in kinds or has_provider
        self.uses_time = SymbolKind.INDEPENDENT in kinds or (has_provider and time_dependent)

        # Bare state or parameter reads skip the tree walk
        self._fast = None
        binding = bindings.get(expr)
        if binding is not None and binding.kind == SymbolKind.VARIABLE:
            i = binding.index
            self._fast = lambda u, p, t: u[i]
        elif binding is not None and binding.kind == SymbolKind.PARAMETER:
            i = binding.index
            self._fast = lambda u, p, t: p[i]

    def __call__(self, u: Any, p: Any, t: Any = None) -> Any:
        if t is not None and not self.time_dependent:
            raise TypeError("Evaluator of a time-independent system takes (u, p) only")
        if t is None and self.uses_time:
            raise ValueError(f"Evaluating {self.expr!r} requires a time value")
        if self._fast is not None:
            return self._fast(u, p, t)
        return self._evaluate(u, p, t)

    def __repr__(self) -> str:
        return f"Evaluator({self.expr!r})"

    def read_leaf(self, leaf: Expr, u: Any, p: Any, t: Any) -> Any:
        """Value of one bound scalar leaf."""
        binding = self.bindings[leaf]
        if binding.kind == SymbolKind.VARIABLE:
            return u[binding.index]
        if binding.kind == SymbolKind.PARAMETER:
            return p[binding.index]
        if binding.kind == SymbolKind.INDEPENDENT:
            return t
        if self.time_dependent:
            return binding.provider(u, p, t)
        return binding.provider(u, p)

    def _evaluate(self, u: Any, p: Any, t: Any) -> Any:
        return self._eval(self.expr, u, p, t)

    def _eval(self, expr: Expr, u: Any, p: Any, t: Any) -> Any:
        kind = expr.kind
        if kind == ExprKind.CONSTANT:
            return expr.value
        if kind == ExprKind.SYMBOL:
            if expr in self.bindings:
                return self.read_leaf(expr, u, p, t)
            return self._eval(self.inlined[expr], u, p, t)
        if kind == ExprKind.ARRAY:
            values = [self._eval(expr[idx], u, p, t) for idx in iter_indices(expr.shape)]
            return np.array(values).reshape(expr.shape)
        if kind == ExprKind.IF_THEN_ELSE:
            if self._eval(expr.children[0], u, p, t):
                return self._eval(expr.children[1], u, p, t)
            return self._eval(expr.children[2], u, p, t)
        if kind in _UNARY:
            return _UNARY[kind](self._eval(expr.children[0], u, p, t))
        if kind in _BINARY:
            left = self._eval(expr.children[0], u, p, t)
            right = self._eval(expr.children[1], u, p, t)
            return _BINARY[kind](left, right)
        raise ValueError(f"Unknown expression kind: {kind}")


def observed_provider(sys: Any, leaf: Any, resolver: BoundResolver) -> Optional[Callable]:
    """The system's own evaluator for an observed leaf, if it offers one."""
    for obj in (sys, symbolic_container(sys)):
        provider = getattr(obj, Capability.OBSERVED.value, None)
        if callable(provider):
            if resolver.versioned:
                return provider(leaf, resolver.version)
            return provider(leaf)
    return None


class ExpressionCompiler:
    """
    Compiles expressions against a system.

    Parameters
    ----------
    backend : str
        "numpy" (interpreter, default) or "casadi".
    """

    def __init__(self, backend: str = "numpy"):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}', expected one of {BACKENDS}")
        self.backend = backend

    def bind(self, sys: Any, expr: Expr, resolver: BoundResolver) -> Tuple[Dict[Expr, Binding], Dict[Expr, Expr]]:
        """
        Resolve every leaf of ``expr`` once.

        Returns the binding table and the table of inlined observed
        definitions. Raises UnknownSymbol for leaves the system does not
        know, including the independent variable of a time-independent
        system.
        """
        time_dependent = resolver.is_time_dependent()
        bindings: Dict[Expr, Binding] = {}
        inlined: Dict[Expr, Expr] = {}

        def bind_tree(node: Expr, active: frozenset) -> None:
            for leaf in scalar_leaves(node):
                if leaf in bindings or leaf in inlined:
                    continue
                kind = resolver.classify_symbol(leaf)
                if kind in (SymbolKind.VARIABLE, SymbolKind.PARAMETER):
                    bindings[leaf] = Binding(kind, resolver.locate(leaf))
                elif kind == SymbolKind.INDEPENDENT:
                    if not time_dependent:
                        raise UnknownSymbol(leaf, "system is not time dependent")
                    bindings[leaf] = Binding(kind)
                elif kind == SymbolKind.OBSERVED:
                    definition = resolver.defining_expression(leaf)
                    if definition is not None:
                        if leaf in active:
                            raise ValueError(f"Cyclic observed definition through '{leaf!r}'")
                        bind_tree(definition, active | {leaf})
                        inlined[leaf] = definition
                        continue
                    provider = observed_provider(sys, leaf, resolver)
                    if provider is None:
                        raise UnknownSymbol(leaf, "observed symbol has no definition or provider")
                    bindings[leaf] = Binding(kind, provider=provider)
                else:
                    raise UnknownSymbol(leaf)

        bind_tree(expr, frozenset())
        return bindings, inlined

    def compile(self, sys: Any, expr: Any, version: Optional[Hashable] = None) -> Evaluator:
        """
        Compile ``expr`` into an Evaluator over the storage of ``sys``.

        Parameters
        ----------
        sys : object
            System (or storage holder with a symbolic container).
        expr : Expr, str, number or registered foreign expression
            Expression to compile.
        version : hashable, optional
            StructureVersion; only meaningful for non-constant-structure
            systems, which default to their current version.
        """
        resolver = BoundResolver(sys, version)
        root = as_expr(expr)
        bindings, inlined = self.bind(sys, root, resolver)
        args = (root, bindings, inlined, resolver.is_time_dependent(), resolver.version)
        if self.backend == "casadi":
            from symindex.backends.casadi import CasadiEvaluator

            return CasadiEvaluator(*args)
        return Evaluator(*args)


def compile_expression(
    sys: Any, expr: Any, version: Optional[Hashable] = None, backend: str = "numpy"
) -> Evaluator:
    """Compile ``expr`` against ``sys`` (see ExpressionCompiler.compile)."""
    return ExpressionCompiler(backend).compile(sys, expr, version)


def observed(sys: Any, sym_or_expr: Any, version: Optional[Hashable] = None, backend: str = "numpy") -> Evaluator:
    """
    Evaluator for an observed symbol or any expression of the system.

    Example
    -------
    >>> sc = SymbolCache(["x", "y"], ["a"], observed={"e": "x"})  # doctest: +SKIP
    >>> observed(sc, sym("e") * sym("a"))([1.0, 2.0], [3.0])  # doctest: +SKIP
    3.0
    """
    return compile_expression(sys, sym_or_expr, version, backend)

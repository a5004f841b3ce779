"""
Symbolic type classification.

Classifies any value as NOT_SYMBOLIC, SCALAR_SYMBOLIC or ARRAY_SYMBOLIC
and expands array symbols into their ordered scalar leaves.

Classification is driven by per-type registration: each registered type
supplies a SymbolicTraits record. Values of unregistered types are
NOT_SYMBOLIC. Lookup walks the value's MRO, so registering a base class
covers its subclasses.

Expansion order is row-major (the last index varies fastest), the same
order as iter_indices().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from beartype import beartype

from symindex.expr import Expr, ExprKind, iter_indices
from symindex.types import Shape, SymbolicType


@dataclass(frozen=True)
class SymbolicTraits:
    """
    How the classifier treats one registered type.

    Attributes
    ----------
    symbolic_type : callable
        value -> SymbolicType
    name : callable, optional
        value -> str or None. None means the value has no name (compound
        expression or wrapped literal).
    expand : callable, optional
        value -> tuple of scalar leaves. Required for types that can be
        ARRAY_SYMBOLIC.
    shape : callable, optional
        value -> declared shape of an array symbol.
    """

    symbolic_type: Callable[[Any], SymbolicType]
    name: Optional[Callable[[Any], Optional[str]]] = None
    expand: Optional[Callable[[Any], Tuple[Any, ...]]] = None
    shape: Optional[Callable[[Any], Shape]] = None


class SymbolicTypeClassifier:
    """Registry-backed classifier for symbolic values."""

    def __init__(self) -> None:
        self._registry: Dict[type, SymbolicTraits] = {}

    @beartype
    def register(self, cls: type, traits: SymbolicTraits) -> None:
        """Register (or replace) the traits for ``cls`` and its subclasses."""
        self._registry[cls] = traits

    def traits(self, value: Any) -> Optional[SymbolicTraits]:
        for cls in type(value).__mro__:
            traits = self._registry.get(cls)
            if traits is not None:
                return traits
        return None

    def classify(self, value: Any) -> SymbolicType:
        traits = self.traits(value)
        if traits is None:
            return SymbolicType.NOT_SYMBOLIC
        return traits.symbolic_type(value)

    def is_symbolic(self, value: Any) -> bool:
        return self.classify(value) != SymbolicType.NOT_SYMBOLIC

    def has_name(self, value: Any) -> bool:
        if self.classify(value) == SymbolicType.NOT_SYMBOLIC:
            return False
        traits = self.traits(value)
        return traits.name is not None and traits.name(value) is not None

    def name_of(self, value: Any) -> str:
        """Name of a symbolic value. Raises TypeError if it has none."""
        if not self.has_name(value):
            raise TypeError(f"{value!r} has no symbolic name")
        return self.traits(value).name(value)

    def shape_of(self, value: Any) -> Shape:
        """Declared shape of an array symbol, () for scalars."""
        kind = self.classify(value)
        if kind == SymbolicType.NOT_SYMBOLIC:
            raise TypeError(f"{value!r} is not symbolic")
        if kind == SymbolicType.SCALAR_SYMBOLIC:
            return ()
        traits = self.traits(value)
        if traits.shape is None:
            return (len(self.expand(value)),)
        return traits.shape(value)

    def expand(self, value: Any) -> Tuple[Any, ...]:
        """
        Expand a symbolic value into its ordered scalar leaves.

        A scalar expands to itself as a singleton, so expanding twice
        gives the same result.
        """
        kind = self.classify(value)
        if kind == SymbolicType.NOT_SYMBOLIC:
            raise TypeError(f"Cannot expand non-symbolic value {value!r}")
        if kind == SymbolicType.SCALAR_SYMBOLIC:
            return (value,)
        traits = self.traits(value)
        if traits.expand is None:
            raise TypeError(f"No expansion registered for array symbol type {type(value).__name__}")
        return tuple(traits.expand(value))


# =============================================================================
# Built-in registrations
# =============================================================================


def _expr_type(e: Expr) -> SymbolicType:
    if e.kind == ExprKind.ARRAY:
        return SymbolicType.ARRAY_SYMBOLIC
    return SymbolicType.SCALAR_SYMBOLIC


def _expr_name(e: Expr) -> Optional[str]:
    if e.kind == ExprKind.SYMBOL:
        return e.indexed_name
    if e.kind == ExprKind.ARRAY:
        return e.name
    return None


def _expr_expand(e: Expr) -> Tuple[Expr, ...]:
    return tuple(e[idx] for idx in iter_indices(e.shape))


EXPR_TRAITS = SymbolicTraits(
    symbolic_type=_expr_type,
    name=_expr_name,
    expand=_expr_expand,
    shape=lambda e: e.shape,
)

# A bare string is a scalar symbol named by itself
STR_TRAITS = SymbolicTraits(
    symbolic_type=lambda s: SymbolicType.SCALAR_SYMBOLIC,
    name=lambda s: s,
)

default_classifier = SymbolicTypeClassifier()
default_classifier.register(Expr, EXPR_TRAITS)
default_classifier.register(str, STR_TRAITS)


def symbolic_type(value: Any) -> SymbolicType:
    """Classify ``value`` with the default classifier."""
    return default_classifier.classify(value)


def hasname(value: Any) -> bool:
    return default_classifier.has_name(value)


def getname(value: Any) -> str:
    return default_classifier.name_of(value)


def expand(value: Any) -> Tuple[Any, ...]:
    """Expand ``value`` into scalar leaves with the default classifier."""
    return default_classifier.expand(value)


collect = expand


@beartype
def register_symbolic_type(cls: type, traits: SymbolicTraits) -> None:
    """Register ``cls`` with the default classifier."""
    default_classifier.register(cls, traits)

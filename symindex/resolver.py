"""
Symbol resolution.

Classifies a symbol against a system (variable, parameter, independent
variable, observed, unknown), locates its storage index and enumerates
the system's symbols.

Two configurations exist, picked by the system's constant_structure()
flag (see resolver_for):

- ConstantStructureResolver: methods take (sys, sym) / (sys, kind).
- VersionedResolver: every method takes a trailing StructureVersion.

Neither keeps any state, so an index is never reused across versions.
BoundResolver fixes a system and a version so the compiler and the
accessor factory can use one call shape for both.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, List, Optional, Tuple

from symindex.classify import default_classifier
from symindex.errors import AmbiguousSymbol, StructureVersionMismatch, UnknownSymbol
from symindex.expr import Expr, ExprKind, as_expr, free_symbols, iter_indices
from symindex.system import current_version, has_capability, is_constant_structure, symbol_key, symbolic_container
from symindex.types import Capability, SymbolicType, SymbolKind

_PREDICATES = (
    (SymbolKind.VARIABLE, "is_variable"),
    (SymbolKind.PARAMETER, "is_parameter"),
    (SymbolKind.INDEPENDENT, "is_independent_variable"),
    (SymbolKind.OBSERVED, "is_observed"),
)

_ENUMERATIONS = {
    SymbolKind.VARIABLE: "variable_symbols",
    SymbolKind.PARAMETER: "parameter_symbols",
    SymbolKind.INDEPENDENT: "independent_variable_symbols",
    SymbolKind.OBSERVED: "observed_symbols",
}


def _disjoint_union(groups: List[Tuple[SymbolKind, Tuple[Any, ...]]]) -> Tuple[Any, ...]:
    """
    Concatenate per-kind enumerations.

    A repeat within one kind is dropped. A symbol enumerated under two
    kinds raises AmbiguousSymbol.
    """
    seen: Dict[Any, SymbolKind] = {}
    result = []
    for kind, symbols in groups:
        for s in symbols:
            key = symbol_key(s)
            if key is None:
                key = ("__unnamed__", id(s))
            if key in seen:
                if seen[key] != kind:
                    raise AmbiguousSymbol(s, (seen[key], kind))
                continue
            seen[key] = kind
            result.append(s)
    return tuple(result)


def scalar_leaves(expr: Expr) -> Tuple[Expr, ...]:
    """Leaf symbols of ``expr`` with array symbols expanded to their elements."""
    leaves: List[Expr] = []
    for leaf in free_symbols(expr):
        if leaf.kind == ExprKind.ARRAY:
            leaves.extend(leaf[idx] for idx in iter_indices(leaf.shape))
        else:
            leaves.append(leaf)
    return tuple(dict.fromkeys(leaves))


class _ResolverBase:
    """Shared resolution logic; ``extra`` is () or (version,)."""

    def _classify(self, sys: Any, sym: Any, extra: tuple) -> SymbolKind:
        kind = default_classifier.classify(sym)
        if kind == SymbolicType.NOT_SYMBOLIC:
            return SymbolKind.UNKNOWN
        if kind == SymbolicType.ARRAY_SYMBOLIC:
            raise TypeError(f"Array symbol {sym!r} must be expanded before classification")
        container = symbolic_container(sys)
        matches = []
        for tag, method in _PREDICATES:
            predicate = getattr(container, method, None)
            if callable(predicate) and predicate(sym, *extra):
                matches.append(tag)
        if len(matches) > 1:
            raise AmbiguousSymbol(sym, tuple(matches))
        return matches[0] if matches else SymbolKind.UNKNOWN

    def _locate(self, sys: Any, sym: Any, extra: tuple) -> int:
        kind = self._classify(sys, sym, extra)
        container = symbolic_container(sys)
        if kind == SymbolKind.VARIABLE:
            method = getattr(container, "variable_index", None)
        elif kind == SymbolKind.PARAMETER:
            method = getattr(container, "parameter_index", None)
        elif kind == SymbolKind.UNKNOWN:
            raise UnknownSymbol(sym)
        else:
            raise UnknownSymbol(sym, f"{kind.name.lower()} symbols have no storage index")
        index = method(sym, *extra) if callable(method) else None
        if index is None:
            raise UnknownSymbol(sym, "system returned no index")
        return index

    def _enumerate(self, sys: Any, kind: SymbolKind, extra: tuple) -> Tuple[Any, ...]:
        if kind not in _ENUMERATIONS:
            raise ValueError(f"Cannot enumerate symbols of kind {kind.name}")
        method = getattr(symbolic_container(sys), _ENUMERATIONS[kind], None)
        if not callable(method):
            return ()
        return tuple(method(*extra))

    def _groups(self, sys: Any, kinds: Tuple[SymbolKind, ...], extra: tuple) -> List[Tuple[SymbolKind, Tuple[Any, ...]]]:
        return [(kind, self._enumerate(sys, kind, extra)) for kind in kinds]

    def _all_solvable_symbols(self, sys: Any, extra: tuple) -> Tuple[Any, ...]:
        return _disjoint_union(self._groups(sys, (SymbolKind.VARIABLE, SymbolKind.OBSERVED), extra))

    def _all_symbols(self, sys: Any, extra: tuple) -> Tuple[Any, ...]:
        kinds = (SymbolKind.VARIABLE, SymbolKind.OBSERVED, SymbolKind.PARAMETER, SymbolKind.INDEPENDENT)
        return _disjoint_union(self._groups(sys, kinds, extra))

    def _is_time_dependent(self, sys: Any, extra: tuple) -> bool:
        count = len(self._enumerate(sys, SymbolKind.INDEPENDENT, extra))
        if count > 1:
            raise ValueError(f"At most one independent variable is supported, system reports {count}")
        return count == 1

    def _defining_expression(self, sys: Any, sym: Any, extra: tuple) -> Optional[Expr]:
        container = symbolic_container(sys)
        if not has_capability(container, Capability.OBSERVED_EXPRESSION):
            return None
        definition = container.observed_expression(sym, *extra)
        return None if definition is None else as_expr(definition)

    def _observed_index(self, sys: Any, sym: Any, extra: tuple) -> Optional[int]:
        key = symbol_key(sym)
        for i, s in enumerate(self._enumerate(sys, SymbolKind.OBSERVED, extra)):
            if symbol_key(s) == key:
                return i
        return None

    def _state_dependencies(self, sys: Any, sym: Any, extra: tuple) -> Tuple[Any, ...]:
        found: Dict[int, Any] = {}
        visiting: set = set()

        def visit(s: Any) -> None:
            kind = self._classify(sys, s, extra)
            if kind == SymbolKind.VARIABLE:
                found[self._locate(sys, s, extra)] = s
            elif kind == SymbolKind.OBSERVED:
                key = symbol_key(s)
                if key in visiting:
                    raise ValueError(f"Cyclic observed definition through '{key}'")
                visiting.add(key)
                definition = self._defining_expression(sys, s, extra)
                if definition is not None:
                    for leaf in scalar_leaves(definition):
                        visit(leaf)
                visiting.discard(key)

        for leaf in default_classifier.expand(sym):
            visit(leaf)
        return tuple(found[i] for i in sorted(found))


class ConstantStructureResolver(_ResolverBase):
    """Resolver for systems whose symbol -> index mapping never changes."""

    versioned = False

    def classify_symbol(self, sys: Any, sym: Any) -> SymbolKind:
        """
        Classify ``sym`` against ``sys``.

        Raises AmbiguousSymbol if more than one predicate claims it.
        """
        return self._classify(sys, sym, ())

    def locate(self, sys: Any, sym: Any) -> int:
        """Storage index of a variable or parameter. Raises UnknownSymbol otherwise."""
        return self._locate(sys, sym, ())

    def enumerate(self, sys: Any, kind: SymbolKind) -> Tuple[Any, ...]:
        """Symbols of one kind in declaration order."""
        return self._enumerate(sys, kind, ())

    def all_solvable_symbols(self, sys: Any) -> Tuple[Any, ...]:
        return self._all_solvable_symbols(sys, ())

    def all_symbols(self, sys: Any) -> Tuple[Any, ...]:
        return self._all_symbols(sys, ())

    def is_time_dependent(self, sys: Any) -> bool:
        return self._is_time_dependent(sys, ())

    def defining_expression(self, sys: Any, sym: Any) -> Optional[Expr]:
        return self._defining_expression(sys, sym, ())

    def observed_index(self, sys: Any, sym: Any) -> Optional[int]:
        return self._observed_index(sys, sym, ())

    def state_dependencies(self, sys: Any, sym: Any) -> Tuple[Any, ...]:
        return self._state_dependencies(sys, sym, ())


class VersionedResolver(_ResolverBase):
    """Resolver for systems whose indices are keyed by a StructureVersion."""

    versioned = True

    def classify_symbol(self, sys: Any, sym: Any, version: Hashable) -> SymbolKind:
        return self._classify(sys, sym, (version,))

    def locate(self, sys: Any, sym: Any, version: Hashable) -> int:
        return self._locate(sys, sym, (version,))

    def enumerate(self, sys: Any, kind: SymbolKind, version: Hashable) -> Tuple[Any, ...]:
        return self._enumerate(sys, kind, (version,))

    def all_solvable_symbols(self, sys: Any, version: Hashable) -> Tuple[Any, ...]:
        return self._all_solvable_symbols(sys, (version,))

    def all_symbols(self, sys: Any, version: Hashable) -> Tuple[Any, ...]:
        return self._all_symbols(sys, (version,))

    def is_time_dependent(self, sys: Any, version: Hashable) -> bool:
        return self._is_time_dependent(sys, (version,))

    def defining_expression(self, sys: Any, sym: Any, version: Hashable) -> Optional[Expr]:
        return self._defining_expression(sys, sym, (version,))

    def observed_index(self, sys: Any, sym: Any, version: Hashable) -> Optional[int]:
        return self._observed_index(sys, sym, (version,))

    def state_dependencies(self, sys: Any, sym: Any, version: Hashable) -> Tuple[Any, ...]:
        return self._state_dependencies(sys, sym, (version,))


CONSTANT_RESOLVER = ConstantStructureResolver()
VERSIONED_RESOLVER = VersionedResolver()


def resolver_for(sys: Any) -> _ResolverBase:
    """Pick the resolver configuration matching the system's structure flag."""
    if is_constant_structure(sys):
        return CONSTANT_RESOLVER
    return VERSIONED_RESOLVER


class BoundResolver:
    """
    A resolver fixed to one system and (for versioned systems) one version.

    For a versioned system without an explicit version, the system's
    current version is used; if it reports none, StructureVersionMismatch
    is raised. For constant-structure systems ``version`` is always None.
    """

    def __init__(self, sys: Any, version: Optional[Hashable] = None):
        self.sys = sys
        self.resolver = resolver_for(sys)
        if self.resolver.versioned:
            if version is None:
                version = current_version(sys)
            if version is None:
                raise StructureVersionMismatch(None, None)
            self.version = version
            self._extra = (version,)
        else:
            self.version = None
            self._extra = ()

    @property
    def versioned(self) -> bool:
        return self.resolver.versioned

    def classify_symbol(self, sym: Any) -> SymbolKind:
        return self.resolver._classify(self.sys, sym, self._extra)

    def locate(self, sym: Any) -> int:
        return self.resolver._locate(self.sys, sym, self._extra)

    def enumerate(self, kind: SymbolKind) -> Tuple[Any, ...]:
        return self.resolver._enumerate(self.sys, kind, self._extra)

    def all_symbols(self) -> Tuple[Any, ...]:
        return self.resolver._all_symbols(self.sys, self._extra)

    def is_time_dependent(self) -> bool:
        return self.resolver._is_time_dependent(self.sys, self._extra)

    def defining_expression(self, sym: Any) -> Optional[Expr]:
        return self.resolver._defining_expression(self.sys, sym, self._extra)


# =============================================================================
# Convenience functions (version may be omitted for versioned systems that
# report a current version)
# =============================================================================


def classify_symbol(sys: Any, sym: Any, version: Optional[Hashable] = None) -> SymbolKind:
    return BoundResolver(sys, version).classify_symbol(sym)


def locate(sys: Any, sym: Any, version: Optional[Hashable] = None) -> int:
    return BoundResolver(sys, version).locate(sym)


def all_solvable_symbols(sys: Any, version: Optional[Hashable] = None) -> Tuple[Any, ...]:
    bound = BoundResolver(sys, version)
    return bound.resolver._all_solvable_symbols(sys, bound._extra)


def all_symbols(sys: Any, version: Optional[Hashable] = None) -> Tuple[Any, ...]:
    return BoundResolver(sys, version).all_symbols()


def is_time_dependent(sys: Any, version: Optional[Hashable] = None) -> bool:
    return BoundResolver(sys, version).is_time_dependent()


def observed_index(sys: Any, sym: Any, version: Optional[Hashable] = None) -> Optional[int]:
    """Position of ``sym`` in the system's observed table, None if absent."""
    bound = BoundResolver(sys, version)
    return bound.resolver._observed_index(sys, sym, bound._extra)


def get_state_dependencies(sys: Any, sym: Any, version: Optional[Hashable] = None) -> Tuple[Any, ...]:
    """
    State variables ``sym`` depends on, in storage order.

    Observed symbols are followed through their defining expressions,
    transitively. A variable depends on itself; parameters and the
    independent variable depend on no state.
    """
    bound = BoundResolver(sys, version)
    return bound.resolver._state_dependencies(sys, sym, bound._extra)


def observed_symbols(sys: Any, version: Optional[Hashable] = None) -> Tuple[Any, ...]:
    return BoundResolver(sys, version).enumerate(SymbolKind.OBSERVED)


def defining_expression(sys: Any, sym: Any, version: Optional[Hashable] = None) -> Optional[Expr]:
    """Defining expression of an observed symbol, None if the system offers none."""
    return BoundResolver(sys, version).defining_expression(sym)

"""
Systems: the host objects symbols are resolved against.

A system is any object implementing some subset of the capability
methods below. Nothing here requires inheritance; capabilities are
checked by attribute presence.

Resolution capabilities (queried on the symbolic container):
    is_variable(sym), variable_index(sym), variable_symbols()
    is_parameter(sym), parameter_index(sym), parameter_symbols()
    is_independent_variable(sym), independent_variable_symbols()
    is_observed(sym), observed_symbols(), observed_expression(sym)
    constant_structure()

Non-constant-structure systems take a trailing StructureVersion argument
on every resolution method above (constant_structure() excepted).

Storage capabilities (queried on the object accessors are called with):
    state_values(), parameter_values(), current_time(), has_current_time()
    observed(sym_or_expr) -> Evaluator
    current_version()

A system may also implement symbolic_container() to hand resolution
over to another object while keeping storage itself. ProblemState
works that way.

This module also provides the reference implementations SymbolCache
(constant structure), VersionedSymbolCache (non-constant structure)
and ProblemState (storage holder).
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from symindex.classify import default_classifier
from symindex.errors import CapabilityMissing, StructureVersionMismatch
from symindex.expr import Expr, as_expr
from symindex.types import Capability, SymbolicType


# =============================================================================
# Capability helpers
# =============================================================================


def symbolic_container(sys: Any) -> Any:
    """Object that answers resolution queries for ``sys`` (``sys`` itself by default)."""
    getter = getattr(sys, "symbolic_container", None)
    if callable(getter):
        return getter()
    return sys


def has_capability(sys: Any, capability: Capability) -> bool:
    """
    True if ``sys`` provides ``capability``.

    A system whose current_time method exists but has no value to return
    reports that through has_current_time().
    """
    if not callable(getattr(sys, capability.value, None)):
        return False
    if capability == Capability.CURRENT_TIME:
        probe = getattr(sys, "has_current_time", None)
        if callable(probe):
            return bool(probe())
    return True


def require_capability(sys: Any, capability: Capability) -> None:
    """Raise CapabilityMissing unless ``sys`` provides ``capability``."""
    if not has_capability(sys, capability):
        raise CapabilityMissing(capability, sys)


def is_constant_structure(sys: Any) -> bool:
    """True unless the symbolic container reports constant_structure() == False."""
    container = symbolic_container(sys)
    flag = getattr(container, "constant_structure", None)
    if flag is None:
        return True
    return bool(flag() if callable(flag) else flag)


def current_version(sys: Any) -> Optional[Hashable]:
    """Current StructureVersion of ``sys`` or its container, None if unreported."""
    for obj in (sys, symbolic_container(sys)):
        if has_capability(obj, Capability.CURRENT_VERSION):
            return obj.current_version()
    return None


def symbol_key(sym: Any) -> Optional[str]:
    """Name used to look a symbol up in the reference systems."""
    if default_classifier.classify(sym) != SymbolicType.SCALAR_SYMBOLIC:
        return None
    if not default_classifier.has_name(sym):
        return None
    return default_classifier.name_of(sym)


# =============================================================================
# Reference systems
# =============================================================================


class _SymbolTable:
    """Ordered name -> index table. Array symbols are expanded on insertion."""

    def __init__(self, symbols: Iterable[Any], role: str):
        self.symbols: List[Any] = []
        self.index: Dict[str, int] = {}
        for s in symbols:
            for leaf in default_classifier.expand(s):
                key = symbol_key(leaf)
                if key is None:
                    raise TypeError(f"{role} {leaf!r} is not a named scalar symbol")
                if key in self.index:
                    raise ValueError(f"Duplicate {role} '{key}'")
                self.index[key] = len(self.symbols)
                self.symbols.append(leaf)

    def __contains__(self, sym: Any) -> bool:
        return symbol_key(sym) in self.index

    def get(self, sym: Any) -> Optional[int]:
        key = symbol_key(sym)
        if key is None:
            return None
        return self.index.get(key)

    def __len__(self) -> int:
        return len(self.symbols)


def _as_symbol_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _independent_table(independent_variables: Any) -> _SymbolTable:
    table = _SymbolTable(_as_symbol_list(independent_variables), "independent variable")
    if len(table) > 1:
        raise ValueError(f"At most one independent variable is supported, got {table.symbols}")
    return table


class _ObservedTable:
    """Ordered name -> (symbol, defining Expr) table."""

    def __init__(self, observed: Optional[Dict[Any, Any]]):
        self.symbols: List[Any] = []
        self.definitions: Dict[str, Expr] = {}
        for s, definition in (observed or {}).items():
            key = symbol_key(s)
            if key is None:
                raise TypeError(f"Observed {s!r} is not a named scalar symbol")
            if key in self.definitions:
                raise ValueError(f"Duplicate observed '{key}'")
            self.symbols.append(s)
            self.definitions[key] = as_expr(definition)

    def __contains__(self, sym: Any) -> bool:
        return symbol_key(sym) in self.definitions

    def get(self, sym: Any) -> Optional[Expr]:
        key = symbol_key(sym)
        if key is None:
            return None
        return self.definitions.get(key)


class SymbolCache:
    """
    Constant-structure system built from plain symbol lists.

    Indices follow declaration order. It holds no storage; wrap it in a
    ProblemState to read and write values.

    Parameters
    ----------
    variables : sequence, optional
        State symbols. Array symbols are expanded (row-major).
    parameters : sequence, optional
        Parameter symbols. Array symbols are expanded (row-major).
    independent_variables : symbol or sequence, optional
        At most one independent variable.
    observed : dict, optional
        Observed symbol -> defining expression.

    Example
    -------
    >>> sc = SymbolCache(["x", "y"], ["a"], "t", observed={"e": "x + a"})  # doctest: +SKIP
    >>> sc.variable_index("y")  # doctest: +SKIP
    1
    """

    def __init__(
        self,
        variables: Any = None,
        parameters: Any = None,
        independent_variables: Any = None,
        observed: Optional[Dict[Any, Any]] = None,
    ):
        self._variables = _SymbolTable(_as_symbol_list(variables), "variable")
        self._parameters = _SymbolTable(_as_symbol_list(parameters), "parameter")
        self._independent = _independent_table(independent_variables)
        self._observed = _ObservedTable(observed)

    def constant_structure(self) -> bool:
        return True

    def is_variable(self, sym: Any) -> bool:
        return sym in self._variables

    def variable_index(self, sym: Any) -> Optional[int]:
        return self._variables.get(sym)

    def variable_symbols(self) -> List[Any]:
        return list(self._variables.symbols)

    def is_parameter(self, sym: Any) -> bool:
        return sym in self._parameters

    def parameter_index(self, sym: Any) -> Optional[int]:
        return self._parameters.get(sym)

    def parameter_symbols(self) -> List[Any]:
        return list(self._parameters.symbols)

    def is_independent_variable(self, sym: Any) -> bool:
        return sym in self._independent

    def independent_variable_symbols(self) -> List[Any]:
        return list(self._independent.symbols)

    def is_observed(self, sym: Any) -> bool:
        return sym in self._observed

    def observed_symbols(self) -> List[Any]:
        return list(self._observed.symbols)

    def observed_expression(self, sym: Any) -> Optional[Expr]:
        return self._observed.get(sym)

    def __repr__(self) -> str:
        return (
            f"SymbolCache(variables={self._variables.symbols}, parameters={self._parameters.symbols}, "
            f"independent_variables={self._independent.symbols}, observed={self._observed.symbols})"
        )


class VersionedSymbolCache:
    """
    Non-constant-structure system: variable and parameter tables per version.

    The independent variable and the observed table are shared by all
    versions. Every resolution method takes the StructureVersion as its
    last argument and raises StructureVersionMismatch for versions that
    were never added.

    Example
    -------
    >>> vc = VersionedSymbolCache(independent_variables="t")  # doctest: +SKIP
    >>> vc.add_version(0, variables=["x"], parameters=["a"])  # doctest: +SKIP
    >>> vc.add_version(1, variables=["x", "y"], parameters=["a"])  # doctest: +SKIP
    >>> vc.variable_index("y", 1)  # doctest: +SKIP
    1
    """

    def __init__(
        self,
        independent_variables: Any = None,
        observed: Optional[Dict[Any, Any]] = None,
    ):
        self._versions: Dict[Hashable, Tuple[_SymbolTable, _SymbolTable]] = {}
        self._independent = _independent_table(independent_variables)
        self._observed = _ObservedTable(observed)
        self._current: Optional[Hashable] = None

    def add_version(self, version: Hashable, variables: Any = None, parameters: Any = None) -> None:
        """Declare the tables of a new version and make it current."""
        if version in self._versions:
            raise ValueError(f"Structure version {version!r} already exists")
        self._versions[version] = (
            _SymbolTable(_as_symbol_list(variables), "variable"),
            _SymbolTable(_as_symbol_list(parameters), "parameter"),
        )
        self._current = version

    def set_current_version(self, version: Hashable) -> None:
        self._tables(version)
        self._current = version

    def current_version(self) -> Optional[Hashable]:
        return self._current

    def versions(self) -> List[Hashable]:
        return list(self._versions)

    def _tables(self, version: Hashable) -> Tuple[_SymbolTable, _SymbolTable]:
        try:
            return self._versions[version]
        except KeyError:
            raise StructureVersionMismatch(version, self._current) from None

    def constant_structure(self) -> bool:
        return False

    def is_variable(self, sym: Any, version: Hashable) -> bool:
        return sym in self._tables(version)[0]

    def variable_index(self, sym: Any, version: Hashable) -> Optional[int]:
        return self._tables(version)[0].get(sym)

    def variable_symbols(self, version: Hashable) -> List[Any]:
        return list(self._tables(version)[0].symbols)

    def is_parameter(self, sym: Any, version: Hashable) -> bool:
        return sym in self._tables(version)[1]

    def parameter_index(self, sym: Any, version: Hashable) -> Optional[int]:
        return self._tables(version)[1].get(sym)

    def parameter_symbols(self, version: Hashable) -> List[Any]:
        return list(self._tables(version)[1].symbols)

    def is_independent_variable(self, sym: Any, version: Hashable) -> bool:
        self._tables(version)
        return sym in self._independent

    def independent_variable_symbols(self, version: Hashable) -> List[Any]:
        self._tables(version)
        return list(self._independent.symbols)

    def is_observed(self, sym: Any, version: Hashable) -> bool:
        self._tables(version)
        return sym in self._observed

    def observed_symbols(self, version: Hashable) -> List[Any]:
        self._tables(version)
        return list(self._observed.symbols)

    def observed_expression(self, sym: Any, version: Hashable) -> Optional[Expr]:
        self._tables(version)
        return self._observed.get(sym)


class ProblemState:
    """
    Numeric storage bound to a symbolic container.

    Resolution is delegated to ``system``; accessors read and write ``u``
    and ``p`` in place. For versioned systems ``version`` pins the
    structure the storage is laid out for (defaults to the container's
    current version).

    Parameters
    ----------
    system : object
        Symbolic container (SymbolCache, VersionedSymbolCache, ...).
    u : mutable sequence
        State storage.
    p : mutable sequence
        Parameter storage.
    t : number, optional
        Current value of the independent variable.
    version : hashable, optional
        StructureVersion of the storage layout.
    """

    def __init__(self, system: Any, u: Any, p: Any, t: Any = None, version: Optional[Hashable] = None):
        self.system = system
        self.u = u
        self.p = p
        self.t = t
        self.version = version

    def symbolic_container(self) -> Any:
        return self.system

    def state_values(self) -> Any:
        return self.u

    def parameter_values(self) -> Any:
        return self.p

    def has_current_time(self) -> bool:
        return self.t is not None

    def current_time(self) -> Any:
        if self.t is None:
            raise CapabilityMissing(Capability.CURRENT_TIME, self)
        return self.t

    def current_version(self) -> Optional[Hashable]:
        if self.version is not None:
            return self.version
        if has_capability(self.system, Capability.CURRENT_VERSION):
            return self.system.current_version()
        return None

    def __repr__(self) -> str:
        return f"ProblemState(u={self.u!r}, p={self.p!r}, t={self.t!r})"

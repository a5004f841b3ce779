"""
Accessor factory: getters and setters over a system's storage.

A request is one of:
- a single symbol (scalar, or array symbol expanded to its elements),
- a list/tuple of requests (positional, duplicates kept),
- an expression (anything symbolic without a name).

Getters are called with the object holding the storage:

    getter(obj)            -> value
    setter(obj, value)     -> None, writes in place

Requests are normalized (array symbols expanded) and resolved once at
build time. Missing capabilities are reported at build time. Built
accessors hold only indices, compiled evaluators and, for
non-constant-structure systems, the StructureVersion they belong to.

Usage
-----
>>> factory = AccessorFactory()  # doctest: +SKIP
>>> get_xy = factory.getu(prob, [sym("x"), sym("y")])  # doctest: +SKIP
>>> get_xy(prob)  # doctest: +SKIP
[1.0, 2.0]
>>> factory.setp(prob, "a")(prob, 4.0)  # doctest: +SKIP
"""

from __future__ import annotations

import math
import warnings
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Hashable, Optional, Tuple, Union

import numpy as np

from symindex.classify import SymbolicTypeClassifier, default_classifier
from symindex.compiler import Evaluator, ExpressionCompiler, observed_provider
from symindex.errors import NotSettable, StructureVersionMismatch, UnknownSymbol
from symindex.expr import Expr, as_expr
from symindex.resolver import BoundResolver
from symindex.system import current_version, require_capability
from symindex.types import Capability, Shape, SymbolicType, SymbolKind

_ALL_KINDS = frozenset(
    {SymbolKind.VARIABLE, SymbolKind.PARAMETER, SymbolKind.INDEPENDENT, SymbolKind.OBSERVED}
)


# =============================================================================
# Normalized requests (also the cache keys)
# =============================================================================


@dataclass(frozen=True)
class SymbolRequest:
    """A single named scalar symbol."""

    name: str
    symbol: Any = field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class ArrayRequest:
    """An array of requests, assembled back to ``shape`` (row-major)."""

    shape: Shape
    elements: Tuple[Any, ...]


@dataclass(frozen=True)
class SequenceRequest:
    """An ordered list or tuple of requests."""

    items: Tuple[Any, ...]
    as_tuple: bool = False


@dataclass(frozen=True)
class ExpressionRequest:
    """An expression to compile."""

    expr: Expr


Request = Union[SymbolRequest, ArrayRequest, SequenceRequest, ExpressionRequest]


def normalize_request(value: Any, classifier: SymbolicTypeClassifier = default_classifier) -> Request:
    """
    Normalize a caller request.

    Array symbols are expanded to their scalar leaves; lists, tuples and
    NumPy arrays become sequence/array requests element by element.
    """
    kind = classifier.classify(value)
    if kind == SymbolicType.ARRAY_SYMBOLIC:
        leaves = classifier.expand(value)
        return ArrayRequest(
            classifier.shape_of(value),
            tuple(normalize_request(leaf, classifier) for leaf in leaves),
        )
    if kind == SymbolicType.SCALAR_SYMBOLIC:
        if classifier.has_name(value):
            return SymbolRequest(classifier.name_of(value), value)
        return ExpressionRequest(as_expr(value))
    if isinstance(value, np.ndarray):
        return ArrayRequest(value.shape, tuple(normalize_request(v, classifier) for v in value.flat))
    if isinstance(value, (list, tuple)):
        return SequenceRequest(
            tuple(normalize_request(v, classifier) for v in value),
            as_tuple=isinstance(value, tuple),
        )
    raise TypeError(f"Cannot build an accessor for non-symbolic value {value!r}")


# =============================================================================
# Readers and writers (pure functions of bound indices)
# =============================================================================


@dataclass(frozen=True)
class StateRead:
    index: int

    def read(self, obj: Any) -> Any:
        return obj.state_values()[self.index]


@dataclass(frozen=True)
class ParameterRead:
    index: int

    def read(self, obj: Any) -> Any:
        return obj.parameter_values()[self.index]


@dataclass(frozen=True)
class TimeRead:
    def read(self, obj: Any) -> Any:
        return obj.current_time()


@dataclass(frozen=True)
class GatherRead:
    """Several slots of one storage, read with a single storage lookup."""

    parameters: bool
    indices: Tuple[int, ...]

    def read(self, obj: Any) -> list:
        storage = obj.parameter_values() if self.parameters else obj.state_values()
        return [storage[i] for i in self.indices]


@dataclass(frozen=True)
class ObservedRead:
    """Value from the system's own observed provider."""

    provider: Callable
    time_dependent: bool

    def read(self, obj: Any) -> Any:
        if self.time_dependent:
            return self.provider(obj.state_values(), obj.parameter_values(), obj.current_time())
        return self.provider(obj.state_values(), obj.parameter_values())


@dataclass(frozen=True)
class ExpressionRead:
    evaluator: Evaluator

    def read(self, obj: Any) -> Any:
        ev = self.evaluator
        u = obj.state_values() if ev.uses_states else None
        p = obj.parameter_values() if ev.uses_parameters else None
        t = obj.current_time() if ev.uses_time else None
        return ev(u, p, t)


@dataclass(frozen=True)
class VectorRead:
    items: Tuple[Any, ...]

    def read(self, obj: Any) -> list:
        return [r.read(obj) for r in self.items]


@dataclass(frozen=True)
class SequenceRead:
    inner: Any
    as_tuple: bool

    def read(self, obj: Any) -> Union[list, tuple]:
        values = self.inner.read(obj)
        return tuple(values) if self.as_tuple else list(values)


@dataclass(frozen=True)
class ArrayRead:
    inner: Any
    shape: Shape

    def read(self, obj: Any) -> np.ndarray:
        return np.array(self.inner.read(obj)).reshape(self.shape)


@dataclass(frozen=True)
class StateWrite:
    index: int

    def write(self, obj: Any, value: Any) -> None:
        obj.state_values()[self.index] = value


@dataclass(frozen=True)
class ParameterWrite:
    index: int

    def write(self, obj: Any, value: Any) -> None:
        obj.parameter_values()[self.index] = value


@dataclass(frozen=True)
class VectorWrite:
    items: Tuple[Any, ...]

    def write(self, obj: Any, values: Any) -> None:
        values = list(values)
        if len(values) != len(self.items):
            raise ValueError(f"Expected {len(self.items)} values, got {len(values)}")
        for writer, value in zip(self.items, values):
            writer.write(obj, value)


@dataclass(frozen=True)
class ArrayWrite:
    inner: VectorWrite
    shape: Shape

    def write(self, obj: Any, values: Any) -> None:
        arr = np.asarray(values)
        if arr.shape != tuple(self.shape) and arr.size != math.prod(self.shape):
            raise ValueError(f"Expected values of shape {self.shape}, got {arr.shape}")
        self.inner.write(obj, list(arr.reshape(-1)))


# =============================================================================
# Public accessors
# =============================================================================


def _check_version(expected: Optional[Hashable], obj: Any) -> None:
    if expected is None:
        return
    actual = current_version(obj)
    if actual is not None and actual != expected:
        raise StructureVersionMismatch(expected, actual)


@dataclass(frozen=True)
class Getter:
    """
    Compiled getter. Call with the object holding the storage.

    For non-constant-structure systems, calling it against storage at a
    different StructureVersion raises StructureVersionMismatch.
    """

    reader: Any
    request: Any
    version: Optional[Hashable] = None

    def __call__(self, obj: Any) -> Any:
        _check_version(self.version, obj)
        return self.reader.read(obj)


@dataclass(frozen=True)
class Setter:
    """Compiled setter. Call with the object holding the storage and the value(s)."""

    writer: Any
    request: Any
    version: Optional[Hashable] = None

    def __call__(self, obj: Any, value: Any) -> None:
        _check_version(self.version, obj)
        self.writer.write(obj, value)


@dataclass(frozen=True)
class AccessorOptions:
    """
    Factory configuration.

    Attributes
    ----------
    backend : str
        Expression backend: "numpy" (interpreter) or "casadi".
    cache : bool
        Memoize built accessors per (system, request, version).
    """

    backend: str = "numpy"
    cache: bool = True


@dataclass
class _CacheEntry:
    owner: Callable[[], Any]
    accessor: Any


def _owner_ref(sys: Any, factory: "AccessorFactory") -> Callable[[], Any]:
    """
    Reference to the system a cache entry was built for.

    When the system is collected its entries are dropped from ``factory``.
    Systems that cannot be weakly referenced are held strongly.
    """
    sys_id = id(sys)
    factory_ref = weakref.ref(factory)

    def drop(_ref: Any) -> None:
        owner = factory_ref()
        if owner is not None:
            owner._drop_system(sys_id)

    try:
        return weakref.ref(sys, drop)
    except TypeError:
        return lambda: sys


_KIND_LABEL = {
    SymbolKind.VARIABLE: "a state variable",
    SymbolKind.PARAMETER: "a parameter",
}


class AccessorFactory:
    """
    Builds and caches getters and setters.

    The cache belongs to the factory. Reads are plain dictionary lookups;
    a miss builds the accessor and publishes it with setdefault, so two
    threads racing on the same key end up sharing one entry. For
    non-constant-structure systems that report a current version, entries
    of other versions are dropped on the next build against that system.
    Entries of a system are dropped once the system is garbage collected.

    Parameters
    ----------
    options : AccessorOptions, optional
        Backend and caching configuration.
    classifier : SymbolicTypeClassifier, optional
        Classifier used to normalize requests.
    """

    def __init__(
        self,
        options: Optional[AccessorOptions] = None,
        classifier: Optional[SymbolicTypeClassifier] = None,
    ):
        self.options = options or AccessorOptions()
        self.classifier = classifier or default_classifier
        self.compiler = ExpressionCompiler(self.options.backend)
        self._cache: Dict[tuple, _CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def build_getter(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
        """
        Getter for a symbol, a sequence of symbols or an expression.

        Raises UnknownSymbol, AmbiguousSymbol or CapabilityMissing at
        build time.
        """
        return self._build(sys, request, version, "get", _ALL_KINDS)

    def build_setter(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
        """
        Setter for a state/parameter symbol or a sequence of them.

        Raises NotSettable for expressions, observed symbols and the
        independent variable.
        """
        return self._build(sys, request, version, "set", _ALL_KINDS)

    def getu(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
        """Getter over states, observed quantities, time and expressions of them."""
        return self._build(sys, request, version, "get", _ALL_KINDS)

    def setu(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
        """Setter over state variables only."""
        return self._build(sys, request, version, "set", frozenset({SymbolKind.VARIABLE}))

    def getp(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
        """Getter over parameters and expressions of parameters only."""
        return self._build(sys, request, version, "get", frozenset({SymbolKind.PARAMETER}))

    def setp(self, sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
        """Setter over parameters only."""
        return self._build(sys, request, version, "set", frozenset({SymbolKind.PARAMETER}))

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _build(self, sys: Any, request: Any, version: Optional[Hashable], op: str, allowed: FrozenSet[SymbolKind]):
        normalized = normalize_request(request, self.classifier)
        resolver = BoundResolver(sys, version)
        if resolver.versioned:
            self._note_version(sys, resolver.version)

        key = (id(sys), op, allowed, normalized, resolver.version)
        if self.options.cache:
            entry = self._cache.get(key)
            if entry is not None and entry.owner() is sys:
                return entry.accessor

        if op == "get":
            accessor = Getter(self._reader(sys, normalized, resolver, allowed), normalized, resolver.version)
        else:
            accessor = Setter(self._writer(sys, normalized, resolver, allowed), normalized, resolver.version)

        if self.options.cache:
            entry = _CacheEntry(_owner_ref(sys, self), accessor)
            published = self._cache.setdefault(key, entry)
            if published.owner() is not sys:
                self._cache[key] = entry
                published = entry
            return published.accessor
        return accessor

    def _note_version(self, sys: Any, version: Hashable) -> None:
        current = current_version(sys)
        if current is None:
            return
        if version != current:
            warnings.warn(f"Building accessor for structure version {version!r}; system is at {current!r}")
        sys_id = id(sys)
        for key in list(self._cache):
            if key[0] == sys_id and key[4] != current:
                self._cache.pop(key, None)

    def _drop_system(self, sys_id: int) -> None:
        for key in list(self._cache):
            if key[0] == sys_id:
                self._cache.pop(key, None)

    def _check_allowed(self, symbol: Any, kind: SymbolKind, allowed: FrozenSet[SymbolKind]) -> None:
        if kind not in allowed:
            wanted = " or ".join(sorted(_KIND_LABEL.get(k, k.name.lower()) for k in allowed))
            raise UnknownSymbol(symbol, f"not {wanted} of the system")

    def _reader(self, sys: Any, req: Request, resolver: BoundResolver, allowed: FrozenSet[SymbolKind]) -> Any:
        if isinstance(req, SymbolRequest):
            return self._symbol_reader(sys, req, resolver, allowed)
        if isinstance(req, ExpressionRequest):
            evaluator = self.compiler.compile(sys, req.expr, resolver.version)
            self._check_expression_allowed(req.expr, evaluator, allowed)
            return self._expression_reader(sys, evaluator)
        if isinstance(req, SequenceRequest):
            return SequenceRead(self._vector_reader(sys, req.items, resolver, allowed), req.as_tuple)
        return ArrayRead(self._vector_reader(sys, req.elements, resolver, allowed), req.shape)

    def _vector_reader(self, sys: Any, items: Tuple[Any, ...], resolver: BoundResolver, allowed) -> Any:
        readers = tuple(self._reader(sys, item, resolver, allowed) for item in items)
        if readers and all(isinstance(r, StateRead) for r in readers):
            return GatherRead(False, tuple(r.index for r in readers))
        if readers and all(isinstance(r, ParameterRead) for r in readers):
            return GatherRead(True, tuple(r.index for r in readers))
        return VectorRead(readers)

    def _symbol_reader(self, sys: Any, req: SymbolRequest, resolver: BoundResolver, allowed) -> Any:
        symbol = req.symbol
        kind = resolver.classify_symbol(symbol)
        if kind == SymbolKind.UNKNOWN:
            raise UnknownSymbol(symbol)
        self._check_allowed(symbol, kind, allowed)
        if kind == SymbolKind.VARIABLE:
            require_capability(sys, Capability.STATE_VALUES)
            return StateRead(resolver.locate(symbol))
        if kind == SymbolKind.PARAMETER:
            require_capability(sys, Capability.PARAMETER_VALUES)
            return ParameterRead(resolver.locate(symbol))
        if kind == SymbolKind.INDEPENDENT:
            require_capability(sys, Capability.CURRENT_TIME)
            return TimeRead()

        provider = observed_provider(sys, symbol, resolver)
        if provider is not None:
            time_dependent = resolver.is_time_dependent()
            require_capability(sys, Capability.STATE_VALUES)
            require_capability(sys, Capability.PARAMETER_VALUES)
            if time_dependent:
                require_capability(sys, Capability.CURRENT_TIME)
            return ObservedRead(provider, time_dependent)
        if resolver.defining_expression(symbol) is None:
            raise UnknownSymbol(symbol, "observed symbol has no definition or provider")
        evaluator = self.compiler.compile(sys, as_expr(symbol), resolver.version)
        return self._expression_reader(sys, evaluator)

    def _expression_reader(self, sys: Any, evaluator: Evaluator) -> ExpressionRead:
        if evaluator.uses_states:
            require_capability(sys, Capability.STATE_VALUES)
        if evaluator.uses_parameters:
            require_capability(sys, Capability.PARAMETER_VALUES)
        if evaluator.uses_time:
            require_capability(sys, Capability.CURRENT_TIME)
        return ExpressionRead(evaluator)

    def _check_expression_allowed(self, expr: Expr, evaluator: Evaluator, allowed: FrozenSet[SymbolKind]) -> None:
        if allowed == _ALL_KINDS:
            return
        for binding in evaluator.bindings.values():
            self._check_allowed(expr, binding.kind, allowed)
        if evaluator.inlined and SymbolKind.OBSERVED not in allowed:
            self._check_allowed(expr, SymbolKind.OBSERVED, allowed)

    def _writer(self, sys: Any, req: Request, resolver: BoundResolver, allowed: FrozenSet[SymbolKind]) -> Any:
        if isinstance(req, ExpressionRequest):
            raise NotSettable(req.expr, "expressions have no storage slot")
        if isinstance(req, SequenceRequest):
            return VectorWrite(tuple(self._writer(sys, item, resolver, allowed) for item in req.items))
        if isinstance(req, ArrayRequest):
            inner = VectorWrite(tuple(self._writer(sys, el, resolver, allowed) for el in req.elements))
            return ArrayWrite(inner, req.shape)

        symbol = req.symbol
        kind = resolver.classify_symbol(symbol)
        if kind == SymbolKind.UNKNOWN:
            raise UnknownSymbol(symbol)
        if kind in (SymbolKind.OBSERVED, SymbolKind.INDEPENDENT):
            raise NotSettable(symbol, f"{kind.name.lower()} symbols have no storage slot")
        self._check_allowed(symbol, kind, allowed)
        if kind == SymbolKind.VARIABLE:
            require_capability(sys, Capability.STATE_VALUES)
            return StateWrite(resolver.locate(symbol))
        require_capability(sys, Capability.PARAMETER_VALUES)
        return ParameterWrite(resolver.locate(symbol))


# Module-level operations build fresh accessors every call; own an
# AccessorFactory to cache them.
_UNCACHED = AccessorFactory(AccessorOptions(cache=False))


def build_getter(sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
    return _UNCACHED.build_getter(sys, request, version)


def build_setter(sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
    return _UNCACHED.build_setter(sys, request, version)


def getu(sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
    return _UNCACHED.getu(sys, request, version)


def setu(sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
    return _UNCACHED.setu(sys, request, version)


def getp(sys: Any, request: Any, version: Optional[Hashable] = None) -> Getter:
    return _UNCACHED.getp(sys, request, version)


def setp(sys: Any, request: Any, version: Optional[Hashable] = None) -> Setter:
    return _UNCACHED.setp(sys, request, version)

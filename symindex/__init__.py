"""
symindex - Symbolic Indexing for Numerical Systems

Resolve symbolic names (states, parameters, the independent variable,
observed quantities) against a system, and build fast getters and setters
over its numeric storage.
"""

from beartype.claw import beartype_package

beartype_package(__name__)

__version__ = "0.1.0"

from symindex import operators
from symindex.accessors import (
    AccessorFactory,
    AccessorOptions,
    Getter,
    Setter,
    build_getter,
    build_setter,
    getp,
    getu,
    normalize_request,
    setp,
    setu,
)
from symindex.classify import (
    SymbolicTraits,
    SymbolicTypeClassifier,
    collect,
    default_classifier,
    expand,
    getname,
    hasname,
    register_symbolic_type,
    symbolic_type,
)
from symindex.compiler import Evaluator, ExpressionCompiler, compile_expression, observed
from symindex.errors import (
    AmbiguousSymbol,
    CapabilityMissing,
    NotSettable,
    StructureVersionMismatch,
    SymbolIndexError,
    UnknownSymbol,
)
from symindex.expr import Expr, ExprKind, as_expr, const, free_symbols, substitute, sym
from symindex.resolver import (
    BoundResolver,
    ConstantStructureResolver,
    VersionedResolver,
    all_solvable_symbols,
    all_symbols,
    classify_symbol,
    defining_expression,
    get_state_dependencies,
    is_time_dependent,
    locate,
    observed_index,
    observed_symbols,
    resolver_for,
)
from symindex.system import ProblemState, SymbolCache, VersionedSymbolCache, symbolic_container
from symindex.types import Capability, SymbolicType, SymbolKind

from symindex import backends

__all__ = [
    "__version__",
    "operators",
    "backends",
    # expressions
    "Expr",
    "ExprKind",
    "sym",
    "const",
    "as_expr",
    "free_symbols",
    "substitute",
    # classification
    "SymbolicType",
    "SymbolicTraits",
    "SymbolicTypeClassifier",
    "default_classifier",
    "register_symbolic_type",
    "symbolic_type",
    "hasname",
    "getname",
    "expand",
    "collect",
    # systems
    "Capability",
    "SymbolKind",
    "SymbolCache",
    "VersionedSymbolCache",
    "ProblemState",
    "symbolic_container",
    # resolution
    "BoundResolver",
    "ConstantStructureResolver",
    "VersionedResolver",
    "resolver_for",
    "classify_symbol",
    "locate",
    "all_solvable_symbols",
    "all_symbols",
    "is_time_dependent",
    "observed_index",
    "observed_symbols",
    "defining_expression",
    "get_state_dependencies",
    # compilation
    "Evaluator",
    "ExpressionCompiler",
    "compile_expression",
    "observed",
    # accessors
    "AccessorFactory",
    "AccessorOptions",
    "Getter",
    "Setter",
    "normalize_request",
    "build_getter",
    "build_setter",
    "getu",
    "setu",
    "getp",
    "setp",
    # errors
    "SymbolIndexError",
    "UnknownSymbol",
    "AmbiguousSymbol",
    "CapabilityMissing",
    "NotSettable",
    "StructureVersionMismatch",
]

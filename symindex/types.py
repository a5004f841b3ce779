"""
Type definitions shared across symindex.
"""

from enum import Enum, auto
from typing import Tuple

# Shape type: () for scalar, (n,) for vector, (n,m) for matrix, etc.
Shape = Tuple[int, ...]

# Indices type: position of a scalar element inside an array symbol
Indices = Tuple[int, ...]


class SymbolicType(Enum):
    """Classification of an arbitrary value."""

    NOT_SYMBOLIC = auto()  # Plain data, never resolved
    SCALAR_SYMBOLIC = auto()  # Single symbol or scalar expression
    ARRAY_SYMBOLIC = auto()  # Array of symbols, expands to scalar leaves


class SymbolKind(Enum):
    """Role a symbol plays in a system."""

    VARIABLE = auto()  # Stored in the state vector
    PARAMETER = auto()  # Stored in the parameter vector
    INDEPENDENT = auto()  # The independent variable (usually time)
    OBSERVED = auto()  # Derived from other symbols, not stored
    UNKNOWN = auto()  # Not part of the system


class Capability(Enum):
    """Optional methods a system may provide, by attribute name."""

    STATE_VALUES = "state_values"
    PARAMETER_VALUES = "parameter_values"
    CURRENT_TIME = "current_time"
    OBSERVED = "observed"
    OBSERVED_EXPRESSION = "observed_expression"
    CURRENT_VERSION = "current_version"

"""
Errors raised while resolving symbols and building accessors.

All of these report caller contract violations. Nothing here is retried.
"""

from typing import Any


class SymbolIndexError(Exception):
    """Base class for all symindex errors."""

    pass


class UnknownSymbol(SymbolIndexError, LookupError):
    """The symbol matches no category of the system."""

    def __init__(self, symbol: Any, reason: str = ""):
        self.symbol = symbol
        message = f"Unknown symbol: {symbol!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class AmbiguousSymbol(SymbolIndexError):
    """The symbol matches more than one category of the system."""

    def __init__(self, symbol: Any, kinds: tuple):
        self.symbol = symbol
        self.kinds = kinds
        names = ", ".join(k.name.lower() for k in kinds)
        super().__init__(f"Ambiguous symbol {symbol!r}: claimed as {names}")


class CapabilityMissing(SymbolIndexError):
    """The system lacks an accessor needed by the requested operation."""

    def __init__(self, capability: Any, system: Any = None):
        self.capability = capability
        name = getattr(capability, "value", capability)
        owner = f" on {type(system).__name__}" if system is not None else ""
        super().__init__(f"Missing capability '{name}'{owner}")


class NotSettable(SymbolIndexError, TypeError):
    """A setter was requested over something that has no storage slot."""

    def __init__(self, request: Any, reason: str = ""):
        self.request = request
        message = f"Cannot build a setter for {request!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StructureVersionMismatch(SymbolIndexError):
    """An index or accessor was used against a different structure version."""

    def __init__(self, expected: Any, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Structure version mismatch: built for {expected!r}, system is at {actual!r}")

"""
Shared builders for the symindex tests.
"""

import numpy as np

from symindex import ProblemState, SymbolCache, VersionedSymbolCache, sym

EPS = 1e-9

x, y, z = sym("x"), sym("y"), sym("z")
a, b = sym("a"), sym("b")
t = sym("t")


def allclose(actual, expected):
    """Compare numeric results within EPS."""
    return bool(np.allclose(np.asarray(actual, dtype=float), np.asarray(expected, dtype=float), atol=EPS))


def example_cache(observed=None):
    """States x, y, z; parameters a, b; independent variable t."""
    return SymbolCache([x, y, z], [a, b], t, observed=observed)


def example_state(observed=None, t_value=6.0):
    """ProblemState over example_cache with u=[1, 2, 3], p=[4, 5], t=6."""
    return ProblemState(example_cache(observed), [1.0, 2.0, 3.0], [4.0, 5.0], t_value)


def versioned_cache():
    """Version 0: states [x], version 1: states [x, y]; parameters [a] in both."""
    vc = VersionedSymbolCache(independent_variables=t)
    vc.add_version(0, variables=[x], parameters=[a])
    vc.add_version(1, variables=[y, x], parameters=[a])
    return vc


class ProviderSystem:
    """
    Hand-written system exposing only capability methods.

    States u, v; parameter k; observed 'energy' computed by its own
    provider instead of a defining expression.
    """

    def __init__(self, u=None, p=None):
        self.u = [3.0, 4.0] if u is None else u
        self.p = [0.5] if p is None else p
        self.provider_calls = 0

    def is_variable(self, s):
        return str(s) in ("u", "v")

    def variable_index(self, s):
        return {"u": 0, "v": 1}.get(str(s))

    def variable_symbols(self):
        return [sym("u"), sym("v")]

    def is_parameter(self, s):
        return str(s) == "k"

    def parameter_index(self, s):
        return 0 if str(s) == "k" else None

    def parameter_symbols(self):
        return [sym("k")]

    def is_observed(self, s):
        return str(s) == "energy"

    def observed_symbols(self):
        return [sym("energy")]

    def observed(self, s):
        self.provider_calls += 1
        return lambda u, p: p[0] * (u[0] ** 2 + u[1] ** 2)

    def state_values(self):
        return self.u

    def parameter_values(self):
        return self.p


class SymbolsOnly:
    """Resolution capabilities without any storage."""

    def is_variable(self, s):
        return str(s) == "x"

    def variable_index(self, s):
        return 0 if str(s) == "x" else None

    def variable_symbols(self):
        return [x]

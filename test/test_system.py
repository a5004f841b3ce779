"""
Tests for the reference systems and capability helpers.
"""

import pytest

from symindex import (
    Capability,
    CapabilityMissing,
    ProblemState,
    StructureVersionMismatch,
    SymbolCache,
    sym,
    symbolic_container,
)
from symindex.system import current_version, has_capability, is_constant_structure, require_capability

from common import SymbolsOnly, a, example_cache, t, versioned_cache, x, y, z


class TestSymbolCache:
    """Test the constant-structure reference system."""

    def test_indices_follow_declaration_order(self):
        sc = example_cache()
        assert [sc.variable_index(s) for s in (x, y, z)] == [0, 1, 2]
        assert sc.parameter_index(a) == 0
        assert sc.variable_index(a) is None

    def test_lookup_by_name(self):
        """Strings and symbols with the same name are the same key."""
        sc = example_cache()
        assert sc.is_variable("y")
        assert sc.variable_index("z") == 2
        assert sc.is_independent_variable("t")

    def test_array_symbols_expanded(self):
        """Array variables occupy one slot per element, row-major."""
        A = sym("A", (2, 2))
        sc = SymbolCache([x, A])
        assert sc.variable_symbols() == [x, A[0, 0], A[0, 1], A[1, 0], A[1, 1]]
        assert sc.variable_index(A[1, 0]) == 3
        assert sc.variable_index("A[0,1]") == 2

    def test_duplicate_rejected(self):
        with pytest.raises(ValueError):
            SymbolCache([x, "x"])

    def test_unnamed_rejected(self):
        with pytest.raises(TypeError):
            SymbolCache([x + 1])

    def test_single_independent_variable(self):
        with pytest.raises(ValueError):
            SymbolCache([x], independent_variables=[t, sym("s")])

    def test_observed_table(self):
        sc = example_cache(observed={"e": x + a})
        assert sc.is_observed(sym("e"))
        assert sc.observed_symbols() == ["e"]
        assert sc.observed_expression("e") == x + a
        assert sc.observed_expression("x") is None

    def test_constant_structure(self):
        assert example_cache().constant_structure()
        assert is_constant_structure(example_cache())


class TestVersionedSymbolCache:
    """Test the non-constant-structure reference system."""

    def test_per_version_indices(self):
        vc = versioned_cache()
        assert vc.variable_index(x, 0) == 0
        assert vc.variable_index(x, 1) == 1
        assert vc.variable_symbols(0) == [x]

    def test_current_version(self):
        vc = versioned_cache()
        assert vc.current_version() == 1
        vc.set_current_version(0)
        assert vc.current_version() == 0
        assert vc.versions() == [0, 1]

    def test_unknown_version(self):
        vc = versioned_cache()
        with pytest.raises(StructureVersionMismatch):
            vc.is_variable(x, 7)
        with pytest.raises(StructureVersionMismatch):
            vc.set_current_version(7)

    def test_duplicate_version(self):
        vc = versioned_cache()
        with pytest.raises(ValueError):
            vc.add_version(0, variables=[x])

    def test_not_constant_structure(self):
        assert not is_constant_structure(versioned_cache())


class TestProblemState:
    """Test the storage holder."""

    def test_delegates_resolution(self):
        sc = example_cache()
        ps = ProblemState(sc, [1.0, 2.0, 3.0], [4.0, 5.0], 6.0)
        assert symbolic_container(ps) is sc
        assert symbolic_container(sc) is sc

    def test_storage(self):
        ps = ProblemState(example_cache(), [1.0], [2.0], 3.0)
        assert ps.state_values() == [1.0]
        assert ps.parameter_values() == [2.0]
        assert ps.current_time() == 3.0

    def test_missing_time(self):
        """current_time fails when the state carries no time."""
        ps = ProblemState(example_cache(), [1.0], [2.0])
        with pytest.raises(CapabilityMissing):
            ps.current_time()

    def test_version_pin(self):
        vc = versioned_cache()
        assert current_version(ProblemState(vc, [], [])) == 1
        assert current_version(ProblemState(vc, [], [], version=0)) == 0
        assert current_version(example_cache()) is None


class TestCapabilities:
    """Test capability probing."""

    def test_has_capability(self):
        assert has_capability(ProblemState(example_cache(), [], []), Capability.STATE_VALUES)
        assert not has_capability(SymbolsOnly(), Capability.STATE_VALUES)

    def test_time_capability_follows_value(self):
        """A ProblemState without a time value lacks the time capability."""
        assert has_capability(ProblemState(example_cache(), [], [], 0.0), Capability.CURRENT_TIME)
        assert not has_capability(ProblemState(example_cache(), [], []), Capability.CURRENT_TIME)

    def test_require_capability(self):
        with pytest.raises(CapabilityMissing) as info:
            require_capability(SymbolsOnly(), Capability.PARAMETER_VALUES)
        assert info.value.capability == Capability.PARAMETER_VALUES

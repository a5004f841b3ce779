"""
Tests for the accessor factory.
"""

import gc
import warnings

import numpy as np
import pytest

from symindex import (
    AccessorFactory,
    AccessorOptions,
    AmbiguousSymbol,
    CapabilityMissing,
    NotSettable,
    ProblemState,
    StructureVersionMismatch,
    SymbolCache,
    UnknownSymbol,
    build_getter,
    build_setter,
    getp,
    getu,
    normalize_request,
    setp,
    setu,
    sym,
)
from symindex import operators as ops
from symindex.types import Capability
from symindex.accessors import ArrayRequest, ExpressionRequest, SequenceRequest, SymbolRequest

from common import ProviderSystem, SymbolsOnly, a, allclose, b, example_state, t, versioned_cache, x, y, z


class TestNormalizeRequest:
    """Test request normalization."""

    def test_symbol(self):
        assert normalize_request(x) == SymbolRequest("x")
        assert normalize_request("x") == SymbolRequest("x")

    def test_array_expanded(self):
        req = normalize_request(sym("A", (2, 2)))
        assert isinstance(req, ArrayRequest)
        assert req.shape == (2, 2)
        assert [e.name for e in req.elements] == ["A[0,0]", "A[0,1]", "A[1,0]", "A[1,1]"]

    def test_sequence(self):
        req = normalize_request((x, x + 1))
        assert isinstance(req, SequenceRequest)
        assert req.as_tuple
        assert isinstance(req.items[1], ExpressionRequest)

    def test_not_symbolic(self):
        with pytest.raises(TypeError):
            normalize_request(3.0)


class TestGetters:
    """Test getters over the example system."""

    def test_state(self):
        prob = example_state()
        assert build_getter(prob, x)(prob) == 1.0

    def test_parameter_and_time(self):
        prob = example_state()
        assert build_getter(prob, b)(prob) == 5.0
        assert build_getter(prob, t)(prob) == 6.0

    def test_expression(self):
        prob = example_state()
        assert build_getter(prob, x + y + t)(prob) == 9.0
        assert build_getter(prob, y + t)(prob) == 8.0

    def test_getter_matches_storage(self):
        """A variable getter reads state_values()[locate(s)]."""
        prob = example_state()
        for s, i in ((x, 0), (y, 1), (z, 2)):
            assert build_getter(prob, s)(prob) == prob.state_values()[i]

    def test_reads_current_storage(self):
        prob = example_state()
        get_x = getu(prob, x)
        prob.u[0] = 42.0
        assert get_x(prob) == 42.0

    def test_vector_order_and_duplicates(self):
        """Sequences keep order and duplicates, and their container type."""
        prob = example_state()
        assert getu(prob, [z, x, z])(prob) == [3.0, 1.0, 3.0]
        assert getu(prob, (y, a))(prob) == (2.0, 4.0)

    def test_mixed_sequence(self):
        prob = example_state()
        assert getu(prob, [x, a, t, x * a])(prob) == [1.0, 4.0, 6.0, 4.0]

    def test_nested_sequence(self):
        prob = example_state()
        assert getu(prob, [x, (a, b)])(prob) == [1.0, (4.0, 5.0)]

    def test_array_symbol(self):
        """Array requests come back with their declared shape."""
        A = sym("A", (2, 2))
        prob = ProblemState(SymbolCache([x, A]), [0.0, 1.0, 2.0, 3.0, 4.0], [])
        result = getu(prob, A)(prob)
        assert isinstance(result, np.ndarray)
        assert allclose(result, [[1.0, 2.0], [3.0, 4.0]])

    def test_observed_definition(self):
        prob = example_state(observed={"e": x + a, "g": sym("e") * t})
        assert getu(prob, "g")(prob) == 30.0

    def test_observed_provider(self):
        system = ProviderSystem()
        assert getu(system, "energy")(system) == 12.5

    def test_observed_in_expression_with_provider(self):
        system = ProviderSystem()
        assert getu(system, sym("energy") + sym("k"))(system) == 13.0


class TestParameterGetters:
    """Test getp restrictions."""

    def test_getp(self):
        prob = example_state()
        assert getp(prob, [a, b])(prob) == [4.0, 5.0]
        assert getp(prob, a * b)(prob) == 20.0

    def test_getp_rejects_states(self):
        prob = example_state()
        with pytest.raises(UnknownSymbol):
            getp(prob, x)
        with pytest.raises(UnknownSymbol):
            getp(prob, a + x)


class TestSetters:
    """Test setters."""

    def test_round_trip(self):
        prob = example_state()
        setu(prob, y)(prob, 0.0)
        assert getu(prob, y)(prob) == 0.0
        assert prob.u == [1.0, 0.0, 3.0]

    def test_parameter(self):
        prob = example_state()
        setp(prob, b)(prob, 9.0)
        assert prob.p == [4.0, 9.0]

    def test_vector(self):
        prob = example_state()
        build_setter(prob, [z, a])(prob, [30.0, 40.0])
        assert prob.u[2] == 30.0
        assert prob.p[0] == 40.0

    def test_vector_length_mismatch(self):
        prob = example_state()
        with pytest.raises(ValueError):
            setu(prob, [x, y])(prob, [1.0])

    def test_array(self):
        A = sym("A", (2, 2))
        prob = ProblemState(SymbolCache([A]), [0.0] * 4, [])
        setu(prob, A)(prob, np.array([[1.0, 2.0], [3.0, 4.0]]))
        assert prob.u == [1.0, 2.0, 3.0, 4.0]

    def test_array_shape_mismatch(self):
        A = sym("A", (2, 2))
        prob = ProblemState(SymbolCache([A]), [0.0] * 4, [])
        with pytest.raises(ValueError):
            setu(prob, A)(prob, [1.0, 2.0, 3.0])

    def test_expression_not_settable(self):
        prob = example_state()
        with pytest.raises(NotSettable):
            build_setter(prob, x + y)

    def test_observed_not_settable(self):
        prob = example_state(observed={"e": x + a})
        with pytest.raises(NotSettable):
            build_setter(prob, "e")

    def test_time_not_settable(self):
        with pytest.raises(NotSettable):
            build_setter(example_state(), t)

    def test_setu_rejects_parameters(self):
        prob = example_state()
        with pytest.raises(UnknownSymbol):
            setu(prob, a)
        with pytest.raises(UnknownSymbol):
            setp(prob, x)


class TestErrors:
    """Test build-time failures."""

    def test_unknown(self):
        prob = example_state()
        with pytest.raises(UnknownSymbol):
            getu(prob, sym("w"))
        with pytest.raises(UnknownSymbol):
            getu(prob, [x, sym("w")])

    def test_ambiguous(self):
        prob = ProblemState(SymbolCache([x], [x]), [1.0], [2.0])
        with pytest.raises(AmbiguousSymbol):
            getu(prob, x)

    def test_missing_storage_capability(self):
        """Capabilities are checked when building, not when calling."""
        with pytest.raises(CapabilityMissing):
            getu(SymbolsOnly(), x)
        with pytest.raises(CapabilityMissing):
            setu(SymbolsOnly(), [x])

    def test_missing_parameter_capability(self):
        class StatesOnly(ProviderSystem):
            parameter_values = None

        system = StatesOnly()
        assert getu(system, sym("u"))(system) == 3.0
        with pytest.raises(CapabilityMissing):
            getu(system, sym("k"))
        with pytest.raises(CapabilityMissing):
            getu(system, sym("u") * sym("k"))

    def test_time_without_value(self):
        """A state without time cannot build accessors that read the time."""
        prob = example_state(t_value=None)
        with pytest.raises(CapabilityMissing) as info:
            build_getter(prob, x + t)
        assert info.value.capability == Capability.CURRENT_TIME
        with pytest.raises(CapabilityMissing):
            getu(prob, t)
        assert getu(prob, x + a)(prob) == 5.0


class TestCache:
    """Test accessor caching."""

    def test_cache_hit(self):
        factory = AccessorFactory()
        prob = example_state()
        first = factory.getu(prob, [x, y])
        assert factory.getu(prob, [x, y]) is first
        assert len(factory) == 1

    def test_hit_after_array_expansion(self):
        """Requests are keyed after normalization."""
        factory = AccessorFactory()
        A = sym("A", (2,))
        prob = ProblemState(SymbolCache([A]), [1.0, 2.0], [])
        assert factory.getu(prob, A) is factory.getu(prob, sym("A", (2,)))

    def test_idempotent_outputs(self):
        factory = AccessorFactory()
        prob = example_state()
        assert factory.getu(prob, x * a)(prob) == factory.getu(prob, x * a)(prob)

    def test_distinct_operations(self):
        factory = AccessorFactory()
        prob = example_state()
        factory.getu(prob, a)
        factory.getp(prob, a)
        factory.setp(prob, a)
        assert len(factory) == 3

    def test_per_system(self):
        factory = AccessorFactory()
        p1, p2 = example_state(), example_state()
        assert factory.getu(p1, x) is not factory.getu(p2, x)

    def test_disabled(self):
        factory = AccessorFactory(AccessorOptions(cache=False))
        prob = example_state()
        assert factory.getu(prob, x) is not factory.getu(prob, x)
        assert len(factory) == 0

    def test_clear(self):
        factory = AccessorFactory()
        prob = example_state()
        factory.getu(prob, x)
        factory.clear_cache()
        assert len(factory) == 0

    def test_entries_dropped_with_system(self):
        """Entries do not outlive the systems they were built for."""
        factory = AccessorFactory()
        for _ in range(200):
            prob = example_state()
            factory.getu(prob, x)
            gc.collect()
            assert len(factory) <= 1
        del prob
        gc.collect()
        assert len(factory) == 0

    def test_invalid_backend(self):
        with pytest.raises(ValueError):
            AccessorFactory(AccessorOptions(backend="fortran"))


class TestVersions:
    """Test accessors over a non-constant-structure system."""

    def test_index_of_current_version(self):
        vc = versioned_cache()
        prob = ProblemState(vc, [1.0, 2.0], [3.0], 0.0)
        assert getu(prob, x)(prob) == 2.0

    def test_pinned_version(self):
        vc = versioned_cache()
        prob = ProblemState(vc, [1.0], [3.0], 0.0, version=0)
        assert getu(prob, x)(prob) == 1.0

    def test_mismatch_after_structure_change(self):
        vc = versioned_cache()
        vc.set_current_version(0)
        prob = ProblemState(vc, [1.0], [3.0], 0.0)
        get_x = getu(prob, x)
        assert get_x(prob) == 1.0
        vc.set_current_version(1)
        with pytest.raises(StructureVersionMismatch):
            get_x(prob)

    def test_cache_invalidated_on_version_change(self):
        factory = AccessorFactory()
        vc = versioned_cache()
        vc.set_current_version(0)
        prob = ProblemState(vc, [1.0, 2.0], [3.0], 0.0)
        old = factory.getu(prob, x)
        vc.set_current_version(1)
        new = factory.getu(prob, x)
        assert new is not old
        assert len(factory) == 1
        assert new(prob) == 2.0

    def test_warns_for_stale_version(self):
        vc = versioned_cache()
        prob = ProblemState(vc, [1.0], [3.0], 0.0)
        with pytest.warns(UserWarning):
            build_getter(prob, x, version=0)

    def test_no_warning_for_current_version(self):
        vc = versioned_cache()
        prob = ProblemState(vc, [1.0, 2.0], [3.0], 0.0)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            build_getter(prob, x, version=1)
        assert not [w for w in caught if "structure version" in str(w.message)]

    def test_expression(self):
        vc = versioned_cache()
        prob = ProblemState(vc, [1.0, 2.0], [3.0], 5.0)
        assert getu(prob, ops.if_then_else(t > 1, x * a, y))(prob) == 6.0

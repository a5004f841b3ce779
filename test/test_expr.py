"""
Tests for the expression tree.
"""

import pytest

from symindex import Expr, ExprKind, as_expr, const, free_symbols, substitute, sym
from symindex import operators as ops
from symindex.expr import format_indices, iter_indices, parse_indices


class TestConstruction:
    """Test building expression nodes."""

    def test_scalar_symbol(self):
        """sym(name) is a SYMBOL leaf."""
        x = sym("x")
        assert x.kind == ExprKind.SYMBOL
        assert x.name == "x"

    def test_array_symbol(self):
        """sym(name, shape) is an ARRAY leaf carrying its shape."""
        A = sym("A", (2, 3))
        assert A.kind == ExprKind.ARRAY
        assert A.shape == (2, 3)
        assert len(A) == 2

    def test_negative_dimension_rejected(self):
        """Shapes must be non-negative."""
        with pytest.raises(ValueError):
            sym("A", (2, -1))

    def test_operators_build_nodes(self):
        """Python operators build new nodes."""
        x, y = sym("x"), sym("y")
        e = (x + 1) * y - x / 2
        assert e.kind == ExprKind.SUB
        assert e.children[0].kind == ExprKind.MUL
        assert e.children[0].children[0].children[1] == const(1)

    def test_reflected_operators(self):
        """Numbers on the left are lifted to constants."""
        x = sym("x")
        e = 2 - x
        assert e.kind == ExprKind.SUB
        assert e.children[0] == const(2.0)
        assert e.children[1] == x

    def test_structural_equality(self):
        """== compares structure so expressions work as dict keys."""
        assert sym("x") + 1 == sym("x") + 1
        assert sym("x") != sym("y")
        assert {sym("x"): 1}[sym("x")] == 1

    def test_comparison_nodes(self):
        """eq()/ne() and relational operators build comparison nodes."""
        x = sym("x")
        assert x.eq(1).kind == ExprKind.EQ
        assert x.ne(1).kind == ExprKind.NE
        assert (x < 1).kind == ExprKind.LT
        assert (x >= 1).kind == ExprKind.GE

    def test_repr(self):
        """repr reads like the expression."""
        x, y = sym("x"), sym("y")
        assert repr(x + y) == "(x + y)"
        assert repr(sym("A", (2, 3))) == "A[2x3]"
        assert repr(ops.sin(x)) == "sin(x)"


class TestIndexing:
    """Test array element access."""

    def test_element_name(self):
        """Elements are named name[i,j], 0-based."""
        A = sym("A", (2, 3))
        assert A[1, 2].kind == ExprKind.SYMBOL
        assert A[1, 2].indexed_name == "A[1,2]"

    def test_vector_int_index(self):
        """A plain int indexes a vector."""
        v = sym("v", (3,))
        assert v[0].indexed_name == "v[0]"

    def test_out_of_bounds(self):
        """Indices outside the declared shape raise IndexError."""
        A = sym("A", (2, 3))
        with pytest.raises(IndexError):
            A[2, 0]

    def test_partial_index(self):
        """A partial index is rejected."""
        with pytest.raises(TypeError):
            sym("A", (2, 3))[0]

    def test_scalar_not_indexable(self):
        """Only array symbols can be indexed."""
        with pytest.raises(TypeError):
            sym("x")[0]


class TestConversion:
    """Test as_expr lifting."""

    def test_string(self):
        """Strings become symbols, indexed names become elements."""
        assert as_expr("x") == sym("x")
        assert as_expr("A[0,1]") == sym("A", (2, 2))[0, 1]

    def test_numbers(self):
        """Numbers become float constants."""
        assert as_expr(3) == const(3.0)
        assert as_expr(True).value == 1.0

    def test_unsupported(self):
        """Unknown types raise TypeError."""
        with pytest.raises(TypeError):
            as_expr(object())


class TestTreeHelpers:
    """Test free_symbols and substitute."""

    def test_free_symbols_order(self):
        """Leaves are deduplicated in first-appearance order."""
        x, y, z = sym("x"), sym("y"), sym("z")
        e = ops.sin(y) + x * y + z
        assert free_symbols(e) == (y, x, z)

    def test_free_symbols_skips_constants(self):
        """Constants are not symbols."""
        assert free_symbols(sym("x") + 2) == (sym("x"),)

    def test_free_symbols_array(self):
        """Array symbols are reported whole."""
        A = sym("A", (2,))
        assert free_symbols(ops.sum(A)) == (A,)

    def test_substitute(self):
        """Leaves are replaced, the rest of the tree is kept."""
        x, y = sym("x"), sym("y")
        e = substitute(x + x * 2, {x: y})
        assert e == y + y * 2

    def test_substitute_unchanged(self):
        """An untouched tree is returned as is."""
        e = sym("x") + 1
        assert substitute(e, {sym("y"): sym("z")}) is e


class TestNames:
    """Test name helpers."""

    def test_parse_indices(self):
        assert parse_indices("pos[0,1]") == ("pos", (0, 1))
        assert parse_indices("pos") == ("pos", ())
        assert parse_indices("f[a]") == ("f[a]", ())

    def test_format_indices(self):
        assert format_indices((0, 1)) == "[0,1]"
        assert format_indices(()) == ""

    def test_iter_indices_row_major(self):
        """The last index varies fastest."""
        assert list(iter_indices((2, 2))) == [(0, 0), (0, 1), (1, 0), (1, 1)]
        assert list(iter_indices(())) == [()]


class TestOperators:
    """Test operator functions."""

    def test_math_functions(self):
        x = sym("x")
        assert ops.sqrt(x).kind == ExprKind.SQRT
        assert ops.atan2(x, 1).children[1] == const(1.0)
        assert ops.max(x, 0).kind == ExprKind.MAX

    def test_if_then_else(self):
        x = sym("x")
        e = ops.if_then_else(x > 0, x, -x)
        assert e.kind == ExprKind.IF_THEN_ELSE
        assert len(e.children) == 3

    def test_aggregates(self):
        v = sym("v", (3,))
        assert ops.dot(v, v).kind == ExprKind.DOT
        assert ops.norm(v).children == (v,)

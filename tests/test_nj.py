"""
tests/test_nj.py
================
Neighbor joining: the three pair-search strategies must agree with each other
and recover additive trees exactly.

Reference matrix
----------------
  ((A:1,B:2):3,C:4,D:5)

        A   B   C   D
    A   0   3   8   9
    B   3   0   9  10
    C   8   9   0   9
    D   9  10   9   0

Q(A,B) and Q(C,D) tie at -36; the smaller slot pair (A,B) is joined first.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from bindashtree._config import TreeConfig
from bindashtree._exceptions import TreeConstructionError
from bindashtree._matrix import DistanceMatrix
from bindashtree._nj import (
    HybridSelector,
    _JoinState,
    NeighborJoiningEngine,
    RapidSelector,
    neighbor_joining,
)
from synthetic import random_additive_matrix

METHODS = ["naive", "rapidnj", "hybrid"]

_REFERENCE_NEWICK = "((A:1.000000,B:2.000000):3.000000,C:4.000000,D:5.000000);"


@pytest.fixture
def reference():
    square = np.array(
        [[0, 3, 8, 9], [3, 0, 9, 10], [8, 9, 0, 9], [9, 10, 9, 0]], dtype=float
    )
    return DistanceMatrix.from_square(["A", "B", "C", "D"], square)


def _random_matrix(rng, n):
    """Symmetric, non-additive distances in [0.1, 1.0)."""
    square = rng.uniform(0.1, 1.0, size=(n, n))
    square = np.triu(square, 1)
    square = square + square.T
    return DistanceMatrix.from_square([f"t{i}" for i in range(n)], square)


@pytest.mark.parametrize("method", METHODS)
class TestSmallTrees:
    def test_reference_newick(self, method, reference):
        tree = neighbor_joining(reference, method=method)
        assert tree.to_newick() == _REFERENCE_NEWICK
        assert tree.is_valid()

    def test_three_taxa(self, method):
        dm = DistanceMatrix(["X", "Y", "Z"], [2.0, 3.0, 4.0])
        tree = neighbor_joining(dm, method=method)
        # l_X = (2 + 3 - 4) / 2, l_Y = (2 + 4 - 3) / 2, l_Z = (3 + 4 - 2) / 2
        assert tree.to_newick(precision=1) == "(X:0.5,Y:1.5,Z:2.5);"

    def test_equal_distances(self, method):
        n = 6
        dm = DistanceMatrix([f"g{i}" for i in range(n)], np.ones(n * (n - 1) // 2))
        tree = neighbor_joining(dm, method=method)
        assert tree.is_valid()
        assert tree.to_newick() == neighbor_joining(dm, method="naive").to_newick()

    def test_negative_lengths_clamped(self, method):
        # A-B violates the triangle inequality; joining A and C gives l_C < 0
        square = np.array(
            [[0, 10, 1, 1], [10, 0, 1, 1], [1, 1, 0, 1], [1, 1, 1, 0]], dtype=float
        )
        dm = DistanceMatrix.from_square(list("ABCD"), square)
        tree = neighbor_joining(dm, method=method)
        assert tree.is_valid()
        assert np.all(tree.distance[:-1] >= 0.0)

    def test_zero_distances(self, method):
        dm = DistanceMatrix(list("ABCDE"), np.zeros(10))
        tree = neighbor_joining(dm, method=method)
        assert tree.is_valid()
        assert np.all(tree.distance[:-1] == 0.0)


@pytest.mark.parametrize("method", METHODS)
class TestAdditiveRecovery:
    @pytest.mark.parametrize("n", [5, 12, 40])
    def test_patristic_matches_input(self, method, n, rng):
        names, square = random_additive_matrix(n, rng)
        dm = DistanceMatrix.from_square(names, square)
        tree = neighbor_joining(dm, method=method, chunk_size=4, naive_percentage=50)
        assert tree.is_valid()
        assert tree.leaf_names == names
        np.testing.assert_allclose(tree.patristic_matrix(), square, atol=1e-9)


class TestStrategyAgreement:
    @pytest.mark.parametrize("n", [7, 25, 60])
    def test_identical_trees(self, n, rng):
        dm = _random_matrix(rng, n)
        naive = neighbor_joining(dm, method="naive")
        for method in ("rapidnj", "hybrid"):
            other = neighbor_joining(dm, method=method)
            assert other.splits() == naive.splits()
            assert other.to_newick() == naive.to_newick()

    @pytest.mark.parametrize("chunk_size", [1, 2, 7, 1000])
    def test_chunk_size_irrelevant(self, chunk_size, rng):
        dm = _random_matrix(rng, 30)
        expected = neighbor_joining(dm, method="naive").to_newick()
        assert neighbor_joining(dm, method="rapidnj", chunk_size=chunk_size).to_newick() == expected

    @pytest.mark.parametrize("pct", [0, 1, 33, 90, 100])
    def test_hybrid_switch_point(self, pct, rng):
        dm = _random_matrix(rng, 20)
        expected = neighbor_joining(dm, method="naive").to_newick()
        tree = neighbor_joining(dm, method="hybrid", chunk_size=3, naive_percentage=pct)
        assert tree.to_newick() == expected

    def test_additive_ties_with_integer_lengths(self):
        # caterpillar with unit branch lengths: many exactly tied Q values
        n = 8
        pos = np.arange(n)
        square = np.abs(pos[:, None] - pos[None, :]).astype(float) + 2.0
        np.fill_diagonal(square, 0.0)
        dm = DistanceMatrix.from_square([f"c{i}" for i in range(n)], square)
        newicks = {neighbor_joining(dm, method=m, chunk_size=2).to_newick() for m in METHODS}
        assert len(newicks) == 1


class TestSelectorBookkeeping:
    def test_hybrid_step_count(self, rng):
        selector = NeighborJoiningEngine(
            TreeConfig(method="hybrid", naive_percentage=50)
        )._make_selector()
        assert isinstance(selector, HybridSelector)
        selector.start(_JoinState(_random_matrix(rng, 20)))
        assert selector.naive_steps == 10

    def test_hybrid_full_naive_never_switches(self, rng):
        dm = _random_matrix(rng, 10)
        state = _JoinState(dm)
        selector = HybridSelector(chunk_size=5, naive_percentage=100)
        selector.start(state)
        while state.n_active > 3:
            a, b = selector.select(state)
            removed = (int(state.slot_node[a]), int(state.slot_node[b]))
            new = state.join(a, b)
            selector.joined(state, removed, new)
        assert selector.n_steps == 7
        assert selector.n_scanned == 0

    def test_rapid_rows_track_live_clusters(self, rng):
        dm = _random_matrix(rng, 12)
        state = _JoinState(dm)
        selector = RapidSelector(chunk_size=2)
        selector.start(state)
        for _ in range(5):
            a, b = selector.select(state)
            removed = (int(state.slot_node[a]), int(state.slot_node[b]))
            new = state.join(a, b)
            selector.joined(state, removed, new)
            live = {int(state.slot_node[s]) for s in state.active_slots()}
            assert set(selector.rows) == live
            # the newest row lists every other live cluster, nearest first
            row = selector.rows[new]
            assert set(row.ids.tolist()) == live - {new}
            assert np.all(np.diff(row.dists) >= 0.0)
        assert selector.n_scanned > 0


class TestValidation:
    def test_too_few_taxa(self):
        dm = DistanceMatrix(["A", "B"], [0.5])
        with pytest.raises(TreeConstructionError, match="at least 3"):
            neighbor_joining(dm)

    @pytest.mark.parametrize("bad", [np.nan, np.inf, -0.5])
    def test_bad_values(self, bad):
        dm = DistanceMatrix(list("ABCD"), [0.1, 0.2, bad, 0.3, 0.4, 0.5])
        with pytest.raises(TreeConstructionError):
            neighbor_joining(dm, method="naive")

    def test_unknown_method(self, reference):
        with pytest.raises(ValueError):
            neighbor_joining(reference, method="upgma")

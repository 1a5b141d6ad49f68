"""
tests/test_tree.py
==================
Pytest test suite for the Tree class.

Tree fixtures
-------------
  four_leaf
      ((A:1,B:2):3,C:4,D:5);

      Node IDs: A=0  B=1  C=2  D=3  AB=4  base=5

      root_distance: A=4 B=5 C=4 D=5 AB=3 base=0

  three_leaf
      (X:0.5,Y:1.5,Z:2.5);

      Node IDs: X=0  Y=1  Z=2  base=3
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from bindashtree._tree import Tree


def _four_leaf(names=("A", "B", "C", "D"), distance=None):
    parent = [4, 4, 5, 5, 5, -1]
    if distance is None:
        distance = [1.0, 2.0, 4.0, 5.0, 3.0, -1.0]
    children = [[-1, -1, -1]] * 4 + [[0, 1, -1], [4, 2, 3]]
    return Tree(list(names), parent, distance, children)


@pytest.fixture
def four_leaf():
    return _four_leaf()


@pytest.fixture
def three_leaf():
    return Tree(
        ["X", "Y", "Z"],
        [3, 3, 3, -1],
        [0.5, 1.5, 2.5, -1.0],
        [[-1, -1, -1]] * 3 + [[0, 1, 2]],
    )


class TestStructure:
    def test_counts(self, four_leaf):
        assert four_leaf.n_leaves == 4
        assert four_leaf.n_nodes == 6
        assert four_leaf.root == 5
        assert four_leaf.n_children.tolist() == [0, 0, 0, 0, 2, 3]

    def test_names(self, four_leaf):
        assert four_leaf.leaf_names == ["A", "B", "C", "D"]
        assert four_leaf.names[4:] == ["", ""]

    def test_depths(self, four_leaf):
        assert four_leaf.depth.tolist() == [2, 2, 1, 1, 1, 0]
        np.testing.assert_allclose(four_leaf.root_distance, [4, 5, 4, 5, 3, 0])

    def test_array_shapes_checked(self):
        with pytest.raises(ValueError):
            Tree(["A", "B", "C"], [3, 3, 3, -1], [1.0, 1.0, 1.0], [[-1, -1, -1]] * 4)


class TestNewick:
    def test_four_leaf(self, four_leaf):
        assert four_leaf.to_newick() == (
            "((A:1.000000,B:2.000000):3.000000,C:4.000000,D:5.000000);"
        )

    def test_three_leaf(self, three_leaf):
        assert three_leaf.to_newick(precision=1) == "(X:0.5,Y:1.5,Z:2.5);"

    def test_precision(self, four_leaf):
        assert four_leaf.to_newick(precision=2).startswith("((A:1.00,B:2.00):3.00")

    def test_labels_quoted(self):
        tree = _four_leaf(names=("genome 1.fa", "it's", "x:y", "plain_name.fa"))
        newick = tree.to_newick(precision=0)
        assert newick == "(('genome 1.fa':1,'it''s':2):3,'x:y':4,plain_name.fa:5);"


class TestDistances:
    def test_lca(self, four_leaf):
        assert four_leaf.lca("A", "B") == 4
        assert four_leaf.lca("A", "C") == 5
        assert four_leaf.lca(2, 2) == 2

    @pytest.mark.parametrize(
        "u,v,expected",
        [("A", "B", 3.0), ("A", "C", 8.0), ("A", "D", 9.0), ("B", "D", 10.0), ("C", "D", 9.0)],
    )
    def test_patristic(self, four_leaf, u, v, expected):
        assert four_leaf.patristic_distance(u, v) == pytest.approx(expected)
        assert four_leaf.patristic_distance(v, u) == pytest.approx(expected)

    def test_patristic_matrix(self, four_leaf):
        expected = np.array(
            [[0, 3, 8, 9], [3, 0, 9, 10], [8, 9, 0, 9], [9, 10, 9, 0]], dtype=float
        )
        np.testing.assert_allclose(four_leaf.patristic_matrix(), expected)

    def test_unknown_name(self, four_leaf):
        with pytest.raises(KeyError):
            four_leaf.patristic_distance("A", "Q")


class TestSplits:
    def test_four_leaf(self, four_leaf):
        assert four_leaf.splits() == {frozenset({"C", "D"})}

    def test_three_leaf_has_none(self, three_leaf):
        assert three_leaf.splits() == set()

    def test_branch_lengths(self, four_leaf):
        assert four_leaf.branch_lengths_by_split() == {
            frozenset({"B", "C", "D"}): 1.0,
            frozenset({"B"}): 2.0,
            frozenset({"C"}): 4.0,
            frozenset({"D"}): 5.0,
            frozenset({"C", "D"}): 3.0,
        }


class TestValidity:
    def test_valid(self, four_leaf, three_leaf):
        assert four_leaf.is_valid()
        assert three_leaf.is_valid()

    def test_negative_length(self):
        tree = _four_leaf(distance=[1.0, -2.0, 4.0, 5.0, 3.0, -1.0])
        assert not tree.is_valid()

    def test_parent_child_mismatch(self):
        tree = Tree(
            ["A", "B", "C", "D"],
            [4, 4, 5, 4, 5, -1],
            [1.0, 2.0, 4.0, 5.0, 3.0, -1.0],
            [[-1, -1, -1]] * 4 + [[0, 1, -1], [4, 2, 3]],
        )
        assert not tree.is_valid()

"""
_tree.py
========
An unrooted neighbor-joining tree represented as a set of parallel numpy
arrays.

Node numbering
--------------
Leaves are nodes ``0 .. n_leaves-1`` in the order of the input taxa.
Internal nodes follow in the order they were created by joins, and the last
node (``n_nodes - 1 = 2 * n_leaves - 3``) is the trifurcating node created
by the final three-way join.  The tree is stored rooted at that node for
traversal only; its topology is unrooted.

Public API
----------
  Tree(names, parent, distance, children)
  .to_newick(precision=6)
  .leaf_names
  .lca(u, v)
  .patristic_distance(u, v)
  .patristic_matrix()
  .splits()
  .branch_lengths_by_split()
  .is_valid()
"""

from typing import Dict, FrozenSet, List, Sequence, Set

import numpy as np

from bindashtree._utils import quote_newick_label


class Tree:
    """
    An unrooted tree with a trifurcating base node.

    Attributes (all read-only after construction)
    ----------------------------------------------
    n_nodes   : int     Total number of nodes (2 * n_leaves - 2).
    n_leaves  : int     Number of leaf (taxon) nodes.
    root      : int     Node ID of the base trifurcation (n_nodes - 1).
    names     : list[str]  Taxon name for each node; '' for internal nodes.

    Arrays
    ------
    parent     : int32  [n_nodes]     Parent ID; -1 for the base node.
    distance   : float64[n_nodes]     Branch length to parent; -1.0 for the base node.
    children   : int32  [n_nodes, 3]  Child IDs, -1 padded.
    n_children : int32  [n_nodes]     0 for leaves, 2 for joins, 3 for the base.
    depth      : int32  [n_nodes]     Edge depth from the base node.
    root_distance : float64[n_nodes]  Cumulative branch length from the base node.
    """

    def __init__(
        self,
        names: Sequence[str],
        parent: np.ndarray,
        distance: np.ndarray,
        children: np.ndarray,
    ) -> None:
        """
        Parameters
        ----------
        names : Sequence[str]
            Leaf names, one per leaf node.
        parent, distance, children : np.ndarray
            Node arrays as described in the class docstring.
        """
        self.parent = np.asarray(parent, dtype=np.int32)
        self.distance = np.asarray(distance, dtype=np.float64)
        self.children = np.asarray(children, dtype=np.int32).reshape(-1, 3)
        self.n_nodes: int = int(self.parent.shape[0])
        self.n_leaves: int = len(names)
        self.root: int = self.n_nodes - 1
        if self.distance.shape[0] != self.n_nodes or self.children.shape[0] != self.n_nodes:
            raise ValueError("parent, distance and children must have one entry per node")
        self.n_children = np.count_nonzero(self.children >= 0, axis=1).astype(np.int32)
        self.names: List[str] = list(names) + [""] * (self.n_nodes - self.n_leaves)

        self._compute_depths()
        self._name_index: Dict[str, int] = None  # type: ignore[assignment]

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    @property
    def leaf_names(self) -> List[str]:
        return self.names[: self.n_leaves]

    def to_newick(self, precision: int = 6) -> str:
        """
        Render the tree as a Newick string.

        Labels containing whitespace or Newick metacharacters are single
        quoted.  Every node except the base carries ``:length`` with
        ``precision`` decimals.

        Parameters
        ----------
        precision : int, default 6

        Returns
        -------
        str
            Newick text terminated by ';'.

        Examples
        --------
        >>> tree.to_newick()
        '(A:0.100000,B:0.200000,(C:0.050000,D:0.050000):0.300000);'
        """
        parts: Dict[int, str] = {}
        for node in self._postorder():
            if node < self.n_leaves:
                text = quote_newick_label(self.names[node])
            else:
                kids = self.children[node, : self.n_children[node]]
                text = "(" + ",".join(parts.pop(int(k)) for k in kids) + ")"
            if node != self.root:
                text += f":{self.distance[node]:.{precision}f}"
            parts[node] = text
        return parts[self.root] + ";"

    def lca(self, u, v) -> int:
        """
        Node ID of the lowest common ancestor of *u* and *v* with respect to
        the base node.

        Parameters
        ----------
        u, v : int | str   Node IDs or taxon names.
        """
        a = self._resolve_node(u)
        b = self._resolve_node(v)
        while self.depth[a] > self.depth[b]:
            a = int(self.parent[a])
        while self.depth[b] > self.depth[a]:
            b = int(self.parent[b])
        while a != b:
            a = int(self.parent[a])
            b = int(self.parent[b])
        return a

    def patristic_distance(self, u, v) -> float:
        """
        Sum of branch lengths on the path between *u* and *v*.

        Uses the identity:
            dist(u, v) = root_distance[u] + root_distance[v]
                         - 2 * root_distance[LCA(u, v)]
        """
        a = self._resolve_node(u)
        b = self._resolve_node(v)
        if a == b:
            return 0.0
        w = self.lca(a, b)
        return float(
            self.root_distance[a] + self.root_distance[b] - 2.0 * self.root_distance[w]
        )

    def patristic_matrix(self) -> np.ndarray:
        """
        Leaf-to-leaf path lengths.

        Returns
        -------
        np.ndarray
            float64 [n_leaves, n_leaves], symmetric with a zero diagonal.
        """
        n = self.n_leaves
        out = np.zeros((n, n), dtype=np.float64)
        for i in range(n):
            for j in range(i + 1, n):
                out[i, j] = out[j, i] = self.patristic_distance(i, j)
        return out

    def splits(self) -> Set[FrozenSet[str]]:
        """
        Non-trivial bipartitions of the leaf set.

        Each split is reported as the side that does NOT contain leaf 0, so
        two trees over the same taxa have equal topologies exactly when
        their split sets are equal.
        """
        return {
            split
            for split in self.branch_lengths_by_split()
            if 1 < len(split) < self.n_leaves - 1
        }

    def branch_lengths_by_split(self) -> Dict[FrozenSet[str], float]:
        """
        Map every edge (terminal edges included) to its branch length.

        Edges are keyed by their canonical split, as in :meth:`splits`.
        """
        leaf_sets = self._leaf_sets()
        everyone = frozenset(range(self.n_leaves))
        out: Dict[FrozenSet[str], float] = {}
        for node in range(self.n_nodes):
            if node == self.root:
                continue
            below = leaf_sets[node]
            side = everyone - below if 0 in below else below
            out[frozenset(self.names[i] for i in side)] = float(self.distance[node])
        return out

    def is_valid(self) -> bool:
        """
        Structural self-check.

        True when leaves have no children, internal nodes have two children,
        the base node has three, parent and children arrays agree, every node
        reaches the base node and every branch length is finite and >= 0.
        """
        n_leaves, n_nodes = self.n_leaves, self.n_nodes
        if n_leaves < 3 or n_nodes != 2 * n_leaves - 2:
            return False
        if self.parent[self.root] != -1:
            return False
        for node in range(n_nodes):
            expected = 0 if node < n_leaves else (3 if node == self.root else 2)
            if self.n_children[node] != expected:
                return False
            for k in self.children[node, : self.n_children[node]]:
                if self.parent[k] != node:
                    return False
            if node != self.root:
                d = self.distance[node]
                if not np.isfinite(d) or d < 0.0:
                    return False
        return bool(np.all(self.depth >= 0))

    def __repr__(self) -> str:
        return f"Tree(n_leaves={self.n_leaves})"

    # ================================================================== #
    # Private helpers                                                      #
    # ================================================================== #

    def _postorder(self) -> List[int]:
        """Iterative post-order from the base node."""
        order: List[int] = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            order.append(node)
            for k in self.children[node, : self.n_children[node]]:
                stack.append(int(k))
        order.reverse()
        return order

    def _compute_depths(self) -> None:
        depth = np.full(self.n_nodes, -1, dtype=np.int32)
        root_distance = np.zeros(self.n_nodes, dtype=np.float64)
        depth[self.root] = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            for k in self.children[node, : self.n_children[node]]:
                k = int(k)
                depth[k] = depth[node] + 1
                root_distance[k] = root_distance[node] + self.distance[k]
                stack.append(k)
        self.depth = depth
        self.root_distance = root_distance

    def _leaf_sets(self) -> List[FrozenSet[int]]:
        sets: List[FrozenSet[int]] = [frozenset()] * self.n_nodes
        for node in self._postorder():
            if node < self.n_leaves:
                sets[node] = frozenset((node,))
            else:
                kids = self.children[node, : self.n_children[node]]
                sets[node] = frozenset().union(*(sets[int(k)] for k in kids))
        return sets

    def _resolve_node(self, node) -> int:
        """
        **Private.**  Return the integer node ID for *node*.

        Raises
        ------
        KeyError   if *node* is a string not present in the tree.
        """
        if isinstance(node, (int, np.integer)):
            return int(node)
        if self._name_index is None:
            self._name_index = {
                name: i for i, name in enumerate(self.names) if name != ""
            }
        if node not in self._name_index:
            raise KeyError(f"No node with name '{node}' found in tree.")
        return self._name_index[node]

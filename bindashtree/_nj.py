"""
_nj.py
======
Neighbor joining with three interchangeable pair-search strategies.

All strategies share one working state and one join routine; they differ
only in how the next pair to join is found.

Working state
-------------
Clusters live in *slots* of an n x n float64 matrix.  Joining the clusters
in slots ``a < b`` writes the new cluster into slot ``a`` and retires slot
``b``, so no matrix is ever reallocated.  ``row_sums[s]`` holds the sum of
distances from slot ``s`` to every other active slot and is updated
incrementally after each join.  With ``r`` active clusters the selection
criterion for a pair is

    Q(a, b) = (r - 2) * d(a, b) - (row_sums[a] + row_sums[b])

evaluated with the same floating-point operations by every strategy, so
identical input always yields an identical topology.  Ties are broken by the
smallest ``(slot_a, slot_b)`` pair.

Strategies
----------
naive
    Evaluate Q over the whole active submatrix each step.  O(n^3) total.

rapidnj
    Every cluster owns a candidate list: the clusters alive when it was
    created, sorted by distance.  A pair is therefore always reachable from
    the list of its younger member.  Lists are scanned in chunks; since the
    distances ascend, ``(r - 2) * d_first - (row_sums[i] + max(row_sums))``
    bounds Q from below for the rest of the row, and the row is abandoned as
    soon as that bound exceeds the best Q found so far.  Entries of clusters
    that have since been joined are skipped, and a row whose stale-entry
    count passes half its length is compacted the next time it is visited.

hybrid
    Run ``n * naive_percentage // 100`` steps with the naive search, then
    build candidate lists for the surviving clusters and continue with the
    rapidnj search.

When three clusters remain they are joined to one trifurcating base node
with ``l_a = (d_ab + d_ac - d_bc) / 2`` (and cyclic permutations).  Negative
branch lengths are clamped to zero.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from bindashtree._config import TreeConfig
from bindashtree._exceptions import TreeConstructionError
from bindashtree._logging import log_join_statistics
from bindashtree._matrix import DistanceMatrix
from bindashtree._tree import Tree


logger = logging.getLogger(__name__)


# ======================================================================== #
# Shared working state                                                      #
# ======================================================================== #


class _JoinState:
    """Slot-indexed distance matrix, row sums and the growing node arrays."""

    def __init__(self, matrix: DistanceMatrix):
        n = matrix.n
        n_nodes = 2 * n - 2
        self.n_leaves = n
        self.dist = matrix.to_square()
        self.row_sums = self.dist.sum(axis=1)
        self.active = np.ones(n, dtype=np.bool_)
        self.n_active = n
        self.step = 0

        # slot <-> tree node bookkeeping
        self.slot_node = np.arange(n, dtype=np.int64)
        self.node_slot = np.full(n_nodes, -1, dtype=np.int64)
        self.node_slot[:n] = np.arange(n)
        self.next_node = n

        self.parent = np.full(n_nodes, -1, dtype=np.int32)
        self.distance = np.full(n_nodes, -1.0, dtype=np.float64)
        self.children = np.full((n_nodes, 3), -1, dtype=np.int32)

    def active_slots(self) -> np.ndarray:
        return np.flatnonzero(self.active)

    def join(self, a: int, b: int) -> int:
        """
        Join the clusters in slots ``a < b``; return the new node ID.

        The new cluster takes slot ``a``; slot ``b`` is retired.
        """
        r = self.n_active
        dist = self.dist
        d_ab = dist[a, b]
        delta = (self.row_sums[a] - self.row_sums[b]) / (r - 2)
        l_a = 0.5 * (d_ab + delta)
        l_b = d_ab - l_a

        node_a = int(self.slot_node[a])
        node_b = int(self.slot_node[b])
        new = self.next_node
        self.parent[node_a] = new
        self.parent[node_b] = new
        self.distance[node_a] = max(l_a, 0.0)
        self.distance[node_b] = max(l_b, 0.0)
        self.children[new, 0] = node_a
        self.children[new, 1] = node_b

        others = self.active.copy()
        others[a] = False
        others[b] = False
        idx = np.flatnonzero(others)
        d_new = 0.5 * (dist[a, idx] + dist[b, idx] - d_ab)
        self.row_sums[idx] = self.row_sums[idx] - dist[a, idx] - dist[b, idx] + d_new
        dist[a, idx] = d_new
        dist[idx, a] = d_new
        self.row_sums[a] = d_new.sum()

        self.active[b] = False
        self.n_active -= 1
        self.slot_node[a] = new
        self.node_slot[node_a] = -1
        self.node_slot[node_b] = -1
        self.node_slot[new] = a
        self.next_node += 1
        self.step += 1
        return new

    def finish(self) -> None:
        """Join the last three clusters to the trifurcating base node."""
        a, b, c = (int(s) for s in self.active_slots())
        d_ab = self.dist[a, b]
        d_ac = self.dist[a, c]
        d_bc = self.dist[b, c]
        lengths = (
            0.5 * (d_ab + d_ac - d_bc),
            0.5 * (d_ab + d_bc - d_ac),
            0.5 * (d_ac + d_bc - d_ab),
        )
        base = self.next_node
        for pos, (slot, length) in enumerate(zip((a, b, c), lengths)):
            node = int(self.slot_node[slot])
            self.parent[node] = base
            self.distance[node] = max(length, 0.0)
            self.children[base, pos] = node
        self.next_node += 1


# ======================================================================== #
# Pair-search strategies                                                    #
# ======================================================================== #


class NaiveSelector:
    """Full-matrix Q minimisation."""

    name = "naive"

    def __init__(self):
        self.n_steps = 0

    def start(self, state: _JoinState) -> None:
        self.n_steps = 0

    def select(self, state: _JoinState) -> Tuple[int, int]:
        idx = state.active_slots()
        r = idx.shape[0]
        sub = state.dist[np.ix_(idx, idx)]
        s = state.row_sums[idx]
        q = (r - 2) * sub - (s[:, None] + s[None, :])
        q[np.tril_indices(r)] = np.inf
        # first minimum in row-major order = smallest (a, b)
        a, b = divmod(int(np.argmin(q)), r)
        self.n_steps += 1
        return int(idx[a]), int(idx[b])

    def joined(self, state: _JoinState, removed: Tuple[int, int], new: int) -> None:
        pass


class _CandidateRow:
    __slots__ = ("ids", "dists", "stale")

    def __init__(self, ids: np.ndarray, dists: np.ndarray):
        self.ids = ids
        self.dists = dists
        self.stale = 0


class RapidSelector:
    """
    Sorted candidate-list search with lower-bound pruning.

    Parameters
    ----------
    chunk_size : int, default 30
        Entries evaluated between two bound checks.
    """

    name = "rapidnj"

    def __init__(self, chunk_size: int = 30):
        self.chunk_size = int(chunk_size)
        self.rows = {}
        self.n_scanned = 0

    def start(self, state: _JoinState) -> None:
        self.rows = {}
        slots = state.active_slots()
        for slot in slots:
            self.rows[int(state.slot_node[slot])] = self._make_row(state, int(slot), slots)

    @staticmethod
    def _make_row(state: _JoinState, slot: int, slots: np.ndarray) -> _CandidateRow:
        others = slots[slots != slot]
        dists = state.dist[slot, others]
        ids = state.slot_node[others]
        order = np.lexsort((ids, dists))
        return _CandidateRow(ids[order], dists[order])

    def select(self, state: _JoinState) -> Tuple[int, int]:
        coeff = state.n_active - 2
        row_sums = state.row_sums
        node_slot = state.node_slot
        slots = state.active_slots()
        n_slots = state.n_leaves
        s_max = row_sums[slots].max()
        chunk = self.chunk_size

        best_q = np.inf
        best = (n_slots, n_slots)
        for slot in slots:
            slot = int(slot)
            row = self.rows[int(state.slot_node[slot])]
            if 2 * row.stale > row.ids.shape[0]:
                keep = node_slot[row.ids] >= 0
                row.ids = row.ids[keep]
                row.dists = row.dists[keep]
                row.stale = 0

            s_i = row_sums[slot]
            bound = s_i + s_max
            ids, dists = row.ids, row.dists
            for start in range(0, ids.shape[0], chunk):
                if coeff * dists[start] - bound > best_q:
                    break
                other = node_slot[ids[start : start + chunk]]
                live = other >= 0
                self.n_scanned += other.shape[0]
                if not live.any():
                    continue
                other = other[live]
                q = coeff * dists[start : start + chunk][live] - (s_i + row_sums[other])
                q_min = q.min()
                if q_min > best_q:
                    continue
                tied = other[q == q_min]
                lo = np.minimum(tied, slot)
                hi = np.maximum(tied, slot)
                pick = int(np.argmin(lo * n_slots + hi))
                pair = (int(lo[pick]), int(hi[pick]))
                if q_min < best_q or pair < best:
                    best_q = q_min
                    best = pair
        return best

    def joined(self, state: _JoinState, removed: Tuple[int, int], new: int) -> None:
        for node in removed:
            del self.rows[node]
        for row in self.rows.values():
            row.stale += 2
        self.rows[new] = self._make_row(
            state, int(state.node_slot[new]), state.active_slots()
        )


class HybridSelector:
    """
    Naive search for the first ``n * naive_percentage // 100`` steps, then
    the candidate-list search.
    """

    name = "hybrid"

    def __init__(self, chunk_size: int = 30, naive_percentage: int = 90):
        self.naive = NaiveSelector()
        self.rapid = RapidSelector(chunk_size)
        self.naive_percentage = int(naive_percentage)
        self.naive_steps = 0
        self._switched = False

    def start(self, state: _JoinState) -> None:
        self.naive.start(state)
        self.naive_steps = state.n_leaves * self.naive_percentage // 100
        self._switched = False

    def select(self, state: _JoinState) -> Tuple[int, int]:
        if state.step < self.naive_steps:
            return self.naive.select(state)
        if not self._switched:
            logger.debug(
                "Switching to candidate-list search after %d steps (%d clusters left)",
                state.step,
                state.n_active,
            )
            self.rapid.start(state)
            self._switched = True
        return self.rapid.select(state)

    def joined(self, state: _JoinState, removed: Tuple[int, int], new: int) -> None:
        if self._switched:
            self.rapid.joined(state, removed, new)

    @property
    def n_steps(self) -> int:
        return self.naive.n_steps

    @property
    def n_scanned(self) -> int:
        return self.rapid.n_scanned


# ======================================================================== #
# Engine                                                                    #
# ======================================================================== #


class NeighborJoiningEngine:
    """
    Build an unrooted tree from a distance matrix.

    Parameters
    ----------
    config : TreeConfig, optional
        Strategy, chunk size and hybrid switch-over percentage.

    Examples
    --------
    >>> engine = NeighborJoiningEngine(TreeConfig(method="naive"))
    >>> tree = engine.build(matrix)
    >>> print(tree.to_newick())
    """

    def __init__(self, config: Optional[TreeConfig] = None):
        self.config = config if config is not None else TreeConfig()

    def _make_selector(self):
        method = self.config.method
        if method == "naive":
            return NaiveSelector()
        if method == "rapidnj":
            return RapidSelector(self.config.chunk_size)
        return HybridSelector(self.config.chunk_size, self.config.naive_percentage)

    @staticmethod
    def _validate(matrix: DistanceMatrix) -> None:
        if matrix.n < 3:
            raise TreeConstructionError(
                f"Neighbor joining needs at least 3 taxa, got {matrix.n}",
                suggestion="Add more genomes to the input list.",
            )
        values = matrix.condensed
        if not np.all(np.isfinite(values)):
            raise TreeConstructionError("Distance matrix contains non-finite values")
        if np.any(values < 0.0):
            raise TreeConstructionError("Distance matrix contains negative distances")

    def build(self, matrix: DistanceMatrix) -> Tree:
        """
        Run neighbor joining on ``matrix``.

        Raises
        ------
        TreeConstructionError
            Fewer than 3 taxa, or non-finite / negative distances.
        """
        self._validate(matrix)
        state = _JoinState(matrix)
        selector = self._make_selector()
        selector.start(state)

        total = state.n_leaves - 3
        report_every = max(total // 10, 1)
        while state.n_active > 3:
            a, b = selector.select(state)
            removed = (int(state.slot_node[a]), int(state.slot_node[b]))
            new = state.join(a, b)
            selector.joined(state, removed, new)
            if state.step % report_every == 0:
                logger.debug("Joined %d/%d", state.step, total)
        state.finish()

        log_join_statistics(
            self.config.method,
            state.n_leaves,
            getattr(selector, "n_steps", 0),
            getattr(selector, "n_scanned", 0),
        )
        return Tree(matrix.names, state.parent, state.distance, state.children)


def neighbor_joining(
    matrix: DistanceMatrix,
    method: str = "rapidnj",
    chunk_size: int = 30,
    naive_percentage: int = 90,
) -> Tree:
    """Convenience wrapper around :class:`NeighborJoiningEngine`."""
    config = TreeConfig(
        method=method, chunk_size=chunk_size, naive_percentage=naive_percentage
    )
    return NeighborJoiningEngine(config).build(matrix)

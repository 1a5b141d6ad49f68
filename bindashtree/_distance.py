"""
_distance.py
============
Jaccard estimation and evolutionary distances between sketches.

The Jaccard index of two genomes is estimated as the fraction of bins whose
densified values are equal.  It is converted into a per-base distance with
the Mash transform

    d = -ln(2J / (1 + J)) / k

and clipped to ``max_distance``.  J = 0, a degenerate sketch on either side,
or a non-finite transform all map to ``max_distance``; J = 1 maps to 0.

:class:`DistanceMatrixBuilder` evaluates all n(n-1)/2 pairs.  The
'cpu-parallel' backend runs a numba prange kernel over rows; the 'python'
backend compares one row against all later rows with numpy, spreading rows
over a thread pool.  Each cell is written exactly once in both cases.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

import numpy as np

from bindashtree._backend import set_kernel_threads
from bindashtree._config import RunConfig
from bindashtree._logging import log_matrix_statistics
from bindashtree._matrix import DistanceMatrix
from bindashtree._sketch import Sketch
from bindashtree._utils import choose_backend, condensed_size


logger = logging.getLogger(__name__)

# Track first calls to kernels for compilation logging
_kernel_first_call = {"cpu-parallel-matrix": True}


def mash_distance(
    matches: int, sketch_size: int, kmer_size: int, max_distance: float = 1.0
) -> float:
    """
    Distance for ``matches`` equal bins out of ``sketch_size``.

    Examples
    --------
    >>> mash_distance(10, 10, 16)
    0.0
    >>> mash_distance(0, 10, 16, max_distance=1.0)
    1.0
    """
    if matches == 0:
        return max_distance
    if matches == sketch_size:
        return 0.0
    j = matches / sketch_size
    d = -math.log(2.0 * j / (1.0 + j)) / kmer_size
    if not math.isfinite(d) or d > max_distance:
        return max_distance
    return max(d, 0.0)


def mash_distances(
    matches: np.ndarray, sketch_size: int, kmer_size: int, max_distance: float = 1.0
) -> np.ndarray:
    """Vectorised :func:`mash_distance`."""
    m = np.asarray(matches, dtype=np.float64)
    j = m / sketch_size
    with np.errstate(divide="ignore", invalid="ignore"):
        d = -np.log(2.0 * j / (1.0 + j)) / kmer_size
    d[~np.isfinite(d) | (d > max_distance) | (m == 0)] = max_distance
    d[(m == sketch_size) | (d < 0.0)] = 0.0
    return d


class DistanceEstimator:
    """
    Pairwise similarity and distance between two sketches.

    Parameters
    ----------
    max_distance : float, default 1.0
        Saturation distance.

    Examples
    --------
    >>> est = DistanceEstimator()
    >>> est.distance(sketch_a, sketch_a)
    0.0
    """

    def __init__(self, max_distance: float = 1.0):
        self.max_distance = float(max_distance)

    @staticmethod
    def _check(a: Sketch, b: Sketch) -> None:
        if not a.is_compatible(b):
            raise ValueError(
                f"Sketches {a.name!r} and {b.name!r} were built with different "
                "parameters (sketch size, k-mer size, seed or densification)"
            )

    def matches(self, a: Sketch, b: Sketch) -> int:
        """Number of bins holding equal values."""
        self._check(a, b)
        return int(np.count_nonzero(a.values == b.values))

    def jaccard(self, a: Sketch, b: Sketch) -> float:
        """Estimated Jaccard index; 0.0 if either sketch is degenerate."""
        if a.degenerate or b.degenerate:
            self._check(a, b)
            return 0.0
        return self.matches(a, b) / a.sketch_size

    def distance(self, a: Sketch, b: Sketch) -> float:
        """Clipped Mash distance between two sketches."""
        if a.degenerate or b.degenerate:
            self._check(a, b)
            return self.max_distance
        return mash_distance(
            self.matches(a, b), a.sketch_size, a.kmer_size, self.max_distance
        )


class DistanceMatrixBuilder:
    """
    Compute the full distance matrix for a batch of sketches.

    Parameters
    ----------
    config : RunConfig, optional
        Supplies ``threads``, ``max_distance`` and ``backend``.
    backend : str, optional
        Overrides ``config.backend``.
    """

    def __init__(self, config: Optional[RunConfig] = None, backend: Optional[str] = None):
        self.config = config if config is not None else RunConfig()
        self.backend = choose_backend(backend or self.config.backend)

    def build(self, sketches: Sequence[Sketch]) -> DistanceMatrix:
        """
        Distances between every pair of ``sketches``.

        Raises
        ------
        ValueError
            If the sketches are not mutually compatible.
        """
        sketches = list(sketches)
        n = len(sketches)
        for sk in sketches[1:]:
            if not sk.is_compatible(sketches[0]):
                raise ValueError(
                    f"Sketch {sk.name!r} is incompatible with {sketches[0].name!r}"
                )
        names = [sk.name for sk in sketches]
        condensed = np.empty(condensed_size(n), dtype=np.float64)
        if n < 2:
            return DistanceMatrix(names, condensed)

        stack = np.ascontiguousarray(np.stack([sk.values for sk in sketches]))
        degenerate = np.array([sk.degenerate for sk in sketches], dtype=np.bool_)
        kmer_size = sketches[0].kmer_size
        max_distance = self.config.max_distance

        logger.info(
            "Computing %d pairwise distances (backend=%r, threads=%d)",
            condensed.shape[0],
            self.backend,
            self.config.threads,
        )

        if self.backend == "cpu-parallel":
            from bindashtree._cpu_kernels import _distance_matrix_njit

            if _kernel_first_call.get("cpu-parallel-matrix", False):
                logger.info("  Compiling cpu-parallel-matrix kernel (cached for future calls)")
                _kernel_first_call["cpu-parallel-matrix"] = False
            set_kernel_threads(self.config.threads)
            _distance_matrix_njit(stack, degenerate, kmer_size, max_distance, condensed)
        else:
            sketch_size = stack.shape[1]

            def fill_row(i: int) -> None:
                start = condensed_index_row_start(i, n)
                matches = np.count_nonzero(stack[i + 1 :] == stack[i], axis=1)
                row = mash_distances(matches, sketch_size, kmer_size, max_distance)
                row[degenerate[i + 1 :] | degenerate[i]] = max_distance
                condensed[start : start + n - i - 1] = row

            with ThreadPoolExecutor(max_workers=self.config.threads) as pool:
                # list() re-raises the first worker exception
                list(pool.map(fill_row, range(n - 1)))

        log_matrix_statistics(condensed, max_distance)
        return DistanceMatrix(names, condensed)


def condensed_index_row_start(i: int, n: int) -> int:
    """Condensed position of cell (i, i + 1)."""
    return n * i - i * (i + 1) // 2

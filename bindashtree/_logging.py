"""
_logging.py
===========
Logging functions for bindashtree.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages, so the sketching,
matrix and tree code stays free of presentation concerns.
"""

import logging
from typing import List, Sequence

import numpy as np


logger = logging.getLogger(__name__)


# ============================================================================ #
# System and Backend Logging
# ============================================================================ #


def log_optimization_status(numba_available: bool) -> None:
    """
    Log system capabilities and optimization library availability at DEBUG level.

    Reports CPU count, memory (when psutil is installed), numba version and
    threading configuration.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import os
    import platform

    cpu_count = os.cpu_count() or 1
    logger.debug(
        "System: %s (%s), %d CPU cores, Python %s",
        platform.machine(),
        platform.system(),
        cpu_count,
        platform.python_version(),
    )

    # Memory info (optional psutil)
    try:
        import psutil

        mem = psutil.virtual_memory()
        logger.debug(
            "Memory: %.1f GB total, %.1f GB available",
            mem.total / (1024**3),
            mem.available / (1024**3),
        )
    except ImportError:
        pass  # psutil not required

    if numba_available:
        import numba

        logger.debug("Numba %s loaded successfully", numba.__version__)
        logger.debug(
            "Numba thread pool: %d threads (NUMBA_NUM_THREADS)",
            numba.config.NUMBA_NUM_THREADS,
        )
    else:
        logger.debug("Numba not importable; only the python backend is usable")


def install_numba_warning_filter(numba_available: bool) -> None:
    """
    Capture NumbaPerformanceWarning and route it through our logger.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import warnings

    if not numba_available:
        return

    from numba.core.errors import NumbaPerformanceWarning

    original_showwarning = warnings.showwarning

    def custom_showwarning(message, category, filename, lineno, file=None, line=None):
        if issubclass(category, NumbaPerformanceWarning):
            logger.warning("Numba performance issue: %s", message)
            logger.warning("  at %s:%s", filename, lineno)
            return
        original_showwarning(message, category, filename, lineno, file, line)

    warnings.showwarning = custom_showwarning


def log_backend_availability(backends_available: List[str]) -> None:
    """
    Log which execution backends are available.

    Parameters
    ----------
    backends_available : List[str]
        Available backends in preference order (e.g., ['python', 'cpu-parallel']).
    """
    logger.debug("Available backends: %s", ", ".join(backends_available))
    if "cpu-parallel" in backends_available:
        logger.debug("  cpu-parallel: LLVM-compiled kernels (numba.njit + prange)")
    logger.debug("  python: vectorised numpy reference implementation")
    logger.debug("Default backend='best' will use: %s", backends_available[-1])


# ============================================================================ #
# Pipeline Statistics
# ============================================================================ #


def log_sketch_statistics(
    names: Sequence[str],
    n_kmers: Sequence[int],
    n_filled: Sequence[int],
    sketch_size: int,
) -> None:
    """
    Log a summary of a batch of sketches and warn about sparse ones.

    Parameters
    ----------
    names : Sequence[str]
        Genome labels.
    n_kmers : Sequence[int]
        Valid k-mers hashed per genome.
    n_filled : Sequence[int]
        Bins filled by genuine k-mers (before densification) per genome.
    sketch_size : int
        Bins per sketch.
    """
    if len(names) == 0:
        return
    filled = np.asarray(n_filled, dtype=np.float64) / sketch_size
    logger.info(
        "Sketched %d genomes: %.2e k-mers (median), bin occupancy %.1f%%..%.1f%%",
        len(names),
        float(np.median(n_kmers)),
        100.0 * filled.min(),
        100.0 * filled.max(),
    )

    degenerate = [name for name, k in zip(names, n_kmers) if k == 0]
    if degenerate:
        logger.warning(
            "%d genome(s) produced no valid k-mers and will sit at the maximum "
            "distance from every other genome: %s",
            len(degenerate),
            ", ".join(degenerate[:5]) + (" ..." if len(degenerate) > 5 else ""),
        )

    sparse = int(np.count_nonzero((filled < 0.5) & (np.asarray(n_kmers) > 0)))
    if sparse:
        logger.warning(
            "%d genome(s) filled fewer than half of the %d bins; their "
            "distances rely heavily on densification. Consider a smaller sketch.",
            sparse,
            sketch_size,
        )


def log_matrix_statistics(condensed: np.ndarray, max_distance: float) -> None:
    """
    Log the range of a condensed distance vector and how much of it is saturated.

    Parameters
    ----------
    condensed : np.ndarray
        Upper-triangle distances.
    max_distance : float
        Saturation value.
    """
    if condensed.size == 0:
        return
    saturated = int(np.count_nonzero(condensed >= max_distance))
    logger.info(
        "Distance matrix: %d pairs, min %.6f, mean %.6f, max %.6f",
        condensed.size,
        float(condensed.min()),
        float(condensed.mean()),
        float(condensed.max()),
    )
    if saturated:
        logger.warning(
            "%d of %d pairwise distances (%.1f%%) are saturated at %.3f",
            saturated,
            condensed.size,
            100.0 * saturated / condensed.size,
            max_distance,
        )


def log_join_statistics(
    method: str, n_taxa: int, n_naive_steps: int, n_entries_scanned: int
) -> None:
    """
    Log how a neighbor-joining run was carried out.

    Parameters
    ----------
    method : str
        Canonical tree method name.
    n_taxa : int
        Number of leaves.
    n_naive_steps : int
        Join steps resolved by full-matrix search.
    n_entries_scanned : int
        Candidate-list entries evaluated by the sorted-list search.
    """
    logger.info(
        "Neighbor joining (%s): %d taxa, %d naive steps, %d candidate entries scanned",
        method,
        n_taxa,
        n_naive_steps,
        n_entries_scanned,
    )

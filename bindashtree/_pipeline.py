"""
_pipeline.py
============
End-to-end orchestration: genome files -> sketches -> distance matrix -> tree.

Stages run strictly one after another.  Sketching is parallel across
genomes (a thread pool over nogil numba kernels or numpy code); the distance
matrix is parallel across rows; neighbor joining is sequential.  Each stage
returns only once all of its work is complete, and a failure in any worker
aborts the run.

Logging
-------
Importing this module logs system and backend information at DEBUG level
and routes numba performance warnings into the ``bindashtree._logging``
logger.  Configure handlers before importing to see them::

    import logging
    logging.basicConfig(level=logging.DEBUG)
    import bindashtree
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, List, Optional, Sequence, Union

from bindashtree._backend import check_numba_available, get_available_backends
from bindashtree._config import RunConfig, TreeConfig
from bindashtree._distance import DistanceMatrixBuilder
from bindashtree._exceptions import BinDashTreeError, GenomeInputError
from bindashtree._io import genome_labels
from bindashtree._logging import (
    install_numba_warning_filter,
    log_backend_availability,
    log_optimization_status,
    log_sketch_statistics,
)
from bindashtree._matrix import DistanceMatrix
from bindashtree._nj import NeighborJoiningEngine
from bindashtree._sketch import DensifiedSketcher, Sketch
from bindashtree._tree import Tree


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_NUMBA_AVAILABLE = check_numba_available()
_BACKENDS_AVAILABLE = get_available_backends()

# Log system info and backend availability on module import
log_optimization_status(_NUMBA_AVAILABLE)
log_backend_availability(_BACKENDS_AVAILABLE)
install_numba_warning_filter(_NUMBA_AVAILABLE)


@dataclass
class PipelineResult:
    """Everything a run produced."""

    sketches: List[Sketch]
    matrix: DistanceMatrix
    tree: Optional[Tree]


def _path_key(path: PathLike) -> str:
    return str(Path(path).expanduser().resolve())


def sketch_genomes(
    paths: Sequence[PathLike],
    config: Optional[RunConfig] = None,
    labels: Optional[Sequence[str]] = None,
    excludable: Collection[PathLike] = (),
) -> List[Sketch]:
    """
    Sketch every genome file, in input order.

    Parameters
    ----------
    paths : Sequence[str or Path]
        FASTA/FASTQ files, plain or gzip-compressed.
    config : RunConfig, optional
        Sketch parameters, thread count and backend.
    labels : Sequence[str], optional
        Genome labels; defaults to :func:`genome_labels` of ``paths``.
    excludable : Collection[str or Path]
        Genomes that are dropped with a warning instead of aborting the run
        when they cannot be read.

    Returns
    -------
    list[Sketch]
        One sketch per usable genome, in input order.

    Raises
    ------
    GenomeInputError
        For the first unreadable genome that is not excludable.
    """
    config = config if config is not None else RunConfig()
    paths = list(paths)
    labels = list(labels) if labels is not None else genome_labels(paths)
    if len(labels) != len(paths):
        raise BinDashTreeError(
            f"{len(labels)} labels given for {len(paths)} genomes"
        )
    excluded = {_path_key(p) for p in excludable}

    sketcher = DensifiedSketcher(config.sketch, backend=config.backend)
    logger.info(
        "Sketching %d genomes (k=%d, S=%d, %s densification, backend=%r, threads=%d)",
        len(paths),
        config.sketch.kmer_size,
        config.sketch.sketch_size,
        config.sketch.densification,
        sketcher.backend,
        config.threads,
    )
    start = time.perf_counter()

    sketches: List[Sketch] = []
    with ThreadPoolExecutor(max_workers=config.threads) as pool:
        futures = [
            pool.submit(sketcher.sketch_file, path, label)
            for path, label in zip(paths, labels)
        ]
        for path, future in zip(paths, futures):
            try:
                sketches.append(future.result())
            except GenomeInputError as e:
                if _path_key(path) not in excluded:
                    for pending in futures:
                        pending.cancel()
                    raise
                logger.warning("Excluding genome %s: %s", path, e.reason)

    logger.info("Sketching finished in %.2fs", time.perf_counter() - start)
    log_sketch_statistics(
        [sk.name for sk in sketches],
        [sk.n_kmers for sk in sketches],
        [sk.n_filled for sk in sketches],
        config.sketch.sketch_size,
    )
    return sketches


def build_distance_matrix(
    sketches: Sequence[Sketch], config: Optional[RunConfig] = None
) -> DistanceMatrix:
    """All pairwise distances between ``sketches``."""
    start = time.perf_counter()
    matrix = DistanceMatrixBuilder(config).build(sketches)
    logger.info("Distance matrix finished in %.2fs", time.perf_counter() - start)
    return matrix


def build_tree(matrix: DistanceMatrix, config: Optional[TreeConfig] = None) -> Tree:
    """Neighbor-joining tree of ``matrix``."""
    start = time.perf_counter()
    tree = NeighborJoiningEngine(config).build(matrix)
    logger.info("Tree construction finished in %.2fs", time.perf_counter() - start)
    return tree


def run_pipeline(
    paths: Sequence[PathLike],
    config: Optional[RunConfig] = None,
    excludable: Collection[PathLike] = (),
    matrix_path: Optional[PathLike] = None,
    tree_path: Optional[PathLike] = None,
    build: bool = True,
) -> PipelineResult:
    """
    Sketch genomes, compute their distance matrix and join a tree.

    Parameters
    ----------
    paths : Sequence[str or Path]
        Genome files.
    config : RunConfig, optional
    excludable : Collection[str or Path]
        Genomes that may be dropped if unreadable.
    matrix_path : str or Path, optional
        Write the matrix here in PHYLIP format.
    tree_path : str or Path, optional
        Write the Newick tree here.
    build : bool, default True
        Set False to stop after the distance matrix.

    Returns
    -------
    PipelineResult
    """
    config = config if config is not None else RunConfig()
    sketches = sketch_genomes(paths, config, excludable=excludable)
    matrix = build_distance_matrix(sketches, config)
    if matrix_path is not None:
        matrix.write_phylip(matrix_path)
        logger.info("Distance matrix written to %s", matrix_path)

    tree = None
    if build:
        tree = build_tree(matrix, config.tree)
        if tree_path is not None:
            Path(tree_path).write_text(tree.to_newick() + "\n")
            logger.info("Tree written to %s", tree_path)
    return PipelineResult(sketches=sketches, matrix=matrix, tree=tree)

"""
bindashtree
===========

Binwise densified MinHash sketching of genomes and neighbor-joining tree
construction from the resulting distance matrix.

Every genome is reduced to a fixed-length sketch of S bins by one-permutation
hashing of its canonical k-mers followed by densification of empty bins.
The fraction of equal bins estimates the Jaccard index of two genomes, which
is turned into a Mash-style distance.  A naive, a RapidNJ-style or a hybrid
neighbor-joining search then builds an unrooted tree.

Main Classes
------------
SketchConfig, TreeConfig, RunConfig : Immutable, validated run parameters
KmerHasher : Canonical k-mer hashing
DensifiedSketcher : Build sketches; Sketch : the sketch itself
DistanceEstimator : Similarity and distance between two sketches
DistanceMatrixBuilder : All pairwise distances; DistanceMatrix : the result
NeighborJoiningEngine : Tree construction; Tree : the result

Pipeline
--------
read_genome_list, read_sequences : Genome input
sketch_genomes, build_distance_matrix, build_tree, run_pipeline

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
suppress_warnings : Suppress specific warnings
use_backend : Force specific computational backend

Backend Information
-------------------
get_available_backends : Query available computational backends
get_backend_info : Get comprehensive backend status
check_numba_available : Check if numba is available

Examples
--------
>>> from bindashtree import RunConfig, SketchConfig, run_pipeline
>>> config = RunConfig(sketch=SketchConfig(kmer_size=16, sketch_size=2048), threads=4)
>>> result = run_pipeline(["a.fna", "b.fna.gz", "c.fq", "d.fna"], config)
>>> print(result.tree.to_newick())

Tree from an existing PHYLIP matrix:

>>> from bindashtree import DistanceMatrix, NeighborJoiningEngine, TreeConfig
>>> matrix = DistanceMatrix.read_phylip("distances.phylip")
>>> tree = NeighborJoiningEngine(TreeConfig(method="hybrid")).build(matrix)
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Configuration and errors
from ._config import RunConfig, SketchConfig, TreeConfig
from ._exceptions import (
    BinDashTreeError,
    ConfigurationError,
    GenomeInputError,
    TreeConstructionError,
)

# Core components
from ._kmers import KmerHasher, encode_sequence
from ._sketch import DensifiedSketcher, Sketch
from ._distance import DistanceEstimator, DistanceMatrixBuilder
from ._matrix import DistanceMatrix
from ._nj import (
    HybridSelector,
    NaiveSelector,
    NeighborJoiningEngine,
    RapidSelector,
    neighbor_joining,
)
from ._tree import Tree

# Input and orchestration
from ._io import genome_label, genome_labels, read_genome_list, read_sequences
from ._pipeline import (
    PipelineResult,
    build_distance_matrix,
    build_tree,
    run_pipeline,
    sketch_genomes,
)

# Context managers (user-facing utilities)
from ._context import quiet, suppress_logger, suppress_warnings, use_backend

# Backend information (useful for checking capabilities)
from ._backend import check_numba_available, get_available_backends, get_backend_info

# Public API
__all__ = [
    # Configuration and errors
    "RunConfig",
    "SketchConfig",
    "TreeConfig",
    "BinDashTreeError",
    "ConfigurationError",
    "GenomeInputError",
    "TreeConstructionError",
    # Core components
    "KmerHasher",
    "encode_sequence",
    "DensifiedSketcher",
    "Sketch",
    "DistanceEstimator",
    "DistanceMatrixBuilder",
    "DistanceMatrix",
    "NeighborJoiningEngine",
    "NaiveSelector",
    "RapidSelector",
    "HybridSelector",
    "neighbor_joining",
    "Tree",
    # Input and orchestration
    "read_genome_list",
    "read_sequences",
    "genome_label",
    "genome_labels",
    "sketch_genomes",
    "build_distance_matrix",
    "build_tree",
    "run_pipeline",
    "PipelineResult",
    # Context managers
    "quiet",
    "suppress_logger",
    "suppress_warnings",
    "use_backend",
    # Backend information
    "get_available_backends",
    "get_backend_info",
    "check_numba_available",
    # Version info
    "__version__",
]

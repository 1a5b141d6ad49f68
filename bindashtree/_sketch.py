"""
_sketch.py
==========
Binwise densified MinHash (one-permutation hashing) sketches.

Every canonical k-mer hash is routed to one of S bins by a secondary hash of
its value and each bin keeps the minimum hash it receives.  Bins that no
k-mer reached are then filled by *densification*, which copies the value of
another, genuinely filled bin and perturbs it with the destination index:

'optimal'
    Each empty bin walks its own fixed pseudo-random probe sequence (the same
    for every genome in the run) until it meets a filled bin.  After S probes
    without a hit the bins to its right are scanned circularly.  Expected
    cost is sublinear per empty bin; worst case O(S).

'reverse'
    One right-to-left circular pass; each empty bin takes the nearest filled
    bin to its right.  O(S) total.

Because the copy rule depends only on the bin index, the seed and the set of
filled bins, two genomes whose filled bins agree also agree on their
densified bins, which keeps the bin-match fraction an unbiased Jaccard
estimator.

A genome without a single valid k-mer yields a *degenerate* sketch: all bins
zero and ``degenerate`` set, which the distance code treats as "maximally
distant from everything".
"""

import logging
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np

from bindashtree._config import SketchConfig
from bindashtree._exceptions import GenomeInputError
from bindashtree._kmers import KmerHasher, encode_sequence, mix64, mix64_int


logger = logging.getLogger(__name__)

_GOLDEN = np.uint64(0x9E3779B97F4A7C15)
_BIN_SALT = np.uint64(0xD6E8FEB86659FD93)
_DENSIFY_SALT = np.uint64(0xC2B2AE3D27D4EB4F)
_EMPTY_BIN = np.iinfo(np.uint64).max

# Track first calls to kernels for compilation logging
_kernel_first_call = {"cpu-parallel-sketch": True}


@dataclass
class Sketch:
    """
    A fixed-length densified MinHash sketch of one genome.

    Attributes
    ----------
    name : str
        Genome label.
    values : np.ndarray
        uint64[S] bin values after densification.
    kmer_size, seed : int
        Hashing parameters; only sketches that share them are comparable.
    densification : str
        Strategy used to fill empty bins.
    n_kmers : int
        Valid k-mer windows hashed.
    n_filled : int
        Bins filled by genuine k-mers before densification.
    """

    name: str
    values: np.ndarray
    kmer_size: int
    seed: int
    densification: str
    n_kmers: int = 0
    n_filled: int = 0

    @property
    def sketch_size(self) -> int:
        return int(self.values.shape[0])

    @property
    def degenerate(self) -> bool:
        """True when no k-mer reached any bin."""
        return self.n_filled == 0

    def is_compatible(self, other: "Sketch") -> bool:
        """Whether bin values of ``other`` can be compared with ours."""
        return (
            self.sketch_size == other.sketch_size
            and self.kmer_size == other.kmer_size
            and self.seed == other.seed
            and self.densification == other.densification
        )


def _densified_values(src_values: np.ndarray, dest: np.ndarray) -> np.ndarray:
    return mix64(src_values ^ mix64(dest.astype(np.uint64) ^ _DENSIFY_SALT))


class DensifiedSketcher:
    """
    Build densified one-permutation MinHash sketches.

    Parameters
    ----------
    config : SketchConfig
        K-mer size, sketch size, seed and densification strategy.
    backend : str, default 'best'
        'python' (numpy reference) or 'cpu-parallel' (numba, nogil); both
        produce identical sketches.

    Examples
    --------
    >>> sketcher = DensifiedSketcher(SketchConfig(kmer_size=8, sketch_size=64))
    >>> sk = sketcher.sketch_sequences([b"ACGTACGTTGCA" * 20], name="toy")
    >>> sk.values.shape
    (64,)

    Notes
    -----
    Instances hold no per-genome state and may be shared between threads.
    """

    def __init__(self, config: Optional[SketchConfig] = None, backend: str = "best"):
        self.config = config if config is not None else SketchConfig()
        self.hasher = KmerHasher(
            self.config.kmer_size, self.config.seed, backend=backend
        )
        self.backend = self.hasher.backend
        self.seed_mix = mix64_int(self.config.seed)
        self.max_probes = self.config.sketch_size

        if self.backend == "cpu-parallel":
            from bindashtree import _cpu_kernels

            self._kernels = _cpu_kernels
            if _kernel_first_call.get("cpu-parallel-sketch", False):
                logger.info("Compiling cpu-parallel-sketch kernels (cached for future calls)")
                _kernel_first_call["cpu-parallel-sketch"] = False
        else:
            self._kernels = None

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def sketch_sequences(self, records: Iterable[Union[bytes, str]], name: str = "") -> Sketch:
        """
        Sketch a genome given as an iterable of sequence records.

        K-mers never span record boundaries; all records feed the same bins.

        Parameters
        ----------
        records : iterable of bytes or str
        name : str
            Label stored on the sketch.

        Returns
        -------
        Sketch
        """
        size = self.config.sketch_size
        values = np.full(size, _EMPTY_BIN, dtype=np.uint64)
        filled = np.zeros(size, dtype=np.bool_)
        n_kmers = 0
        for record in records:
            hashes = self.hasher.hash_codes(encode_sequence(record))
            n_kmers += hashes.shape[0]
            if hashes.shape[0]:
                self._bin(hashes, values, filled)

        n_filled = int(np.count_nonzero(filled))
        if n_filled == 0:
            logger.debug("Genome %r has no valid %d-mers", name, self.config.kmer_size)
            dense = np.zeros(size, dtype=np.uint64)
        else:
            dense = self._densify(values, filled)

        return Sketch(
            name=name,
            values=dense,
            kmer_size=self.config.kmer_size,
            seed=self.config.seed,
            densification=self.config.densification,
            n_kmers=int(n_kmers),
            n_filled=n_filled,
        )

    def sketch_file(self, path: Union[str, Path], name: Optional[str] = None) -> Sketch:
        """
        Sketch a FASTA/FASTQ file (optionally gzip-compressed).

        Raises
        ------
        GenomeInputError
            If the file is missing, unreadable, not a sequence file, or a
            truncated or corrupt gzip stream.
        """
        from bindashtree._io import genome_label, read_sequences

        label = name if name is not None else genome_label(path)
        try:
            return self.sketch_sequences(read_sequences(path), name=label)
        except OSError as e:
            raise GenomeInputError(path, e.strerror or str(e)) from e
        except (EOFError, zlib.error) as e:
            raise GenomeInputError(path, f"corrupt compressed data ({e})") from e

    # ------------------------------------------------------------------ #
    # Binning and densification                                          #
    # ------------------------------------------------------------------ #

    def _bin(self, hashes: np.ndarray, values: np.ndarray, filled: np.ndarray) -> None:
        if self._kernels is not None:
            self._kernels._bin_minima_njit(hashes, hashes.shape[0], values, filled)
            return
        bins = (mix64(hashes ^ _BIN_SALT) % np.uint64(values.shape[0])).astype(np.intp)
        np.minimum.at(values, bins, hashes)
        filled[bins] = True

    def _densify(self, values: np.ndarray, filled: np.ndarray) -> np.ndarray:
        """Fill every empty bin; ``filled`` must have at least one True."""
        out = np.empty_like(values)
        strategy = self.config.densification

        if self._kernels is not None:
            if strategy == "optimal":
                self._kernels._densify_optimal_njit(
                    values, filled, self.max_probes, np.uint64(self.seed_mix), out
                )
            else:
                self._kernels._densify_reverse_njit(values, filled, out)
            return out

        out[:] = values
        empty = np.flatnonzero(~filled)
        if empty.size == 0:
            return out
        filled_idx = np.flatnonzero(filled)
        src = np.full(empty.size, -1, dtype=np.int64)
        pending = np.arange(empty.size)

        if strategy == "optimal":
            n_bins = np.uint64(values.shape[0])
            seed_mix = np.uint64(self.seed_mix)
            base = empty.astype(np.uint64) * _GOLDEN
            for t in range(1, self.max_probes + 1):
                if pending.size == 0:
                    break
                probe = (mix64((base[pending] + np.uint64(t)) ^ seed_mix) % n_bins).astype(
                    np.int64
                )
                hit = filled[probe]
                src[pending[hit]] = probe[hit]
                pending = pending[~hit]

        if pending.size:
            # nearest filled bin to the right, circularly
            pos = np.searchsorted(filled_idx, empty[pending], side="right") % filled_idx.size
            src[pending] = filled_idx[pos]

        out[empty] = _densified_values(values[src], empty)
        return out

"""
_kmers.py
=========
Canonical k-mer extraction and hashing.

A k-mer is packed into one 64-bit word with the 2-bit code A=0, C=1, G=2,
T=3 (first base in the high bits).  Its reverse complement is packed the same
way and the numerically smaller of the two words is the *canonical* k-mer, so
a sequence and its reverse complement yield the same set of hashes.  Windows
that contain any character other than A/C/G/T (case-insensitive) are skipped.

Every canonical k-mer is XOR-ed with the mixed run seed and passed through
the SplitMix64 finalizer.  The numpy implementation here and the numba
kernel in ``_cpu_kernels`` produce identical hash sequences.
"""

import logging
from typing import Union

import numpy as np

from bindashtree._config import MAX_KMER_SIZE, UINT64_MAX
from bindashtree._exceptions import ConfigurationError
from bindashtree._utils import choose_backend


logger = logging.getLogger(__name__)

_GOLDEN = 0x9E3779B97F4A7C15
_MIX1 = 0xBF58476D1CE4E5B9
_MIX2 = 0x94D049BB133111EB

INVALID_CODE = 4

# byte -> 2-bit code lookup; everything that is not ACGT/acgt maps to 4
_ENCODE = np.full(256, INVALID_CODE, dtype=np.uint8)
for _code, _bases in enumerate((b"Aa", b"Cc", b"Gg", b"Tt")):
    for _b in _bases:
        _ENCODE[_b] = _code
del _code, _bases, _b


def encode_sequence(sequence: Union[bytes, bytearray, str]) -> np.ndarray:
    """
    Translate a nucleotide sequence to 2-bit codes.

    Parameters
    ----------
    sequence : bytes or str

    Returns
    -------
    np.ndarray
        uint8 array of the same length; non-ACGT characters become 4.

    Examples
    --------
    >>> encode_sequence(b"ACGTN")
    array([0, 1, 2, 3, 4], dtype=uint8)
    """
    if isinstance(sequence, str):
        sequence = sequence.encode("ascii", errors="replace")
    return _ENCODE[np.frombuffer(bytes(sequence), dtype=np.uint8)]


def mix64_int(x: int) -> int:
    """SplitMix64 finalizer on a Python integer (result in [0, 2**64))."""
    z = (x + _GOLDEN) & UINT64_MAX
    z = ((z ^ (z >> 30)) * _MIX1) & UINT64_MAX
    z = ((z ^ (z >> 27)) * _MIX2) & UINT64_MAX
    return z ^ (z >> 31)


def mix64(x: np.ndarray) -> np.ndarray:
    """
    Vectorised SplitMix64 finalizer.

    Parameters
    ----------
    x : np.ndarray
        uint64 array (at least one dimension).  Arithmetic wraps modulo 2**64.

    Returns
    -------
    np.ndarray
        uint64 array of the same shape.
    """
    z = np.asarray(x, dtype=np.uint64) + np.uint64(_GOLDEN)
    z = (z ^ (z >> np.uint64(30))) * np.uint64(_MIX1)
    z = (z ^ (z >> np.uint64(27))) * np.uint64(_MIX2)
    return z ^ (z >> np.uint64(31))


class KmerHasher:
    """
    Hash the canonical k-mers of nucleotide records.

    Parameters
    ----------
    kmer_size : int
        K, 1..32.
    seed : int
        Unsigned 64-bit run seed.
    backend : str, default 'best'
        'python', 'cpu-parallel' or 'best'.

    Attributes
    ----------
    kmer_size : int
    seed : int
    seed_mix : int
        ``mix64_int(seed)``, XOR-ed into every canonical k-mer.
    backend : str
        Resolved backend.
    """

    def __init__(self, kmer_size: int, seed: int = 42, backend: str = "best"):
        if not 1 <= kmer_size <= MAX_KMER_SIZE:
            raise ConfigurationError(
                "kmer_size", kmer_size, f"must be between 1 and {MAX_KMER_SIZE}"
            )
        self.kmer_size = int(kmer_size)
        self.seed = int(seed)
        self.seed_mix = mix64_int(self.seed)
        self.mask = (1 << (2 * self.kmer_size)) - 1 if self.kmer_size < 32 else UINT64_MAX
        self.backend = choose_backend(backend)
        if self.backend == "cpu-parallel":
            from bindashtree._cpu_kernels import _kmer_hashes_njit

            self._kernel = _kmer_hashes_njit
        else:
            self._kernel = None

    def canonical_kmers(self, codes: np.ndarray) -> np.ndarray:
        """
        Packed canonical k-mers of every valid window, in sequence order.

        Parameters
        ----------
        codes : np.ndarray
            Output of :func:`encode_sequence`.

        Returns
        -------
        np.ndarray
            uint64 array of length <= len(codes) - K + 1.
        """
        k = self.kmer_size
        n_windows = codes.shape[0] - k + 1
        if n_windows <= 0:
            return np.empty(0, dtype=np.uint64)

        invalid = codes > 3
        runs = np.concatenate(([0], np.cumsum(invalid, dtype=np.int64)))
        valid = (runs[k:] - runs[:-k]) == 0

        c = np.where(invalid, 0, codes).astype(np.uint64)
        fwd = np.zeros(n_windows, dtype=np.uint64)
        rc = np.zeros(n_windows, dtype=np.uint64)
        two = np.uint64(2)
        three = np.uint64(3)
        for j in range(k):
            window = c[j : j + n_windows]
            fwd = (fwd << two) | window
            rc |= (three - window) << np.uint64(2 * j)

        return np.minimum(fwd, rc)[valid]

    def hash_codes(self, codes: np.ndarray) -> np.ndarray:
        """
        Hash values of every valid canonical k-mer of one encoded record.

        Parameters
        ----------
        codes : np.ndarray
            uint8 codes from :func:`encode_sequence`.

        Returns
        -------
        np.ndarray
            uint64 hashes in sequence order (one per valid window).
        """
        codes = np.ascontiguousarray(codes, dtype=np.uint8)
        if self._kernel is not None:
            out = np.empty(max(codes.shape[0] - self.kmer_size + 1, 0), dtype=np.uint64)
            n_out = self._kernel(
                codes,
                self.kmer_size,
                np.uint64(self.mask),
                np.uint64(self.seed_mix),
                out,
            )
            return out[:n_out]

        canonical = self.canonical_kmers(codes)
        if canonical.size == 0:
            return canonical
        return mix64(canonical ^ np.uint64(self.seed_mix))

    def hash_sequence(self, sequence: Union[bytes, str]) -> np.ndarray:
        """Encode then hash one record."""
        return self.hash_codes(encode_sequence(sequence))

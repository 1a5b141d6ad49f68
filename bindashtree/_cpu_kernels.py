"""
_cpu_kernels.py
===============
CPU-accelerated sketching and distance kernels using Numba.

This module contains ONLY numba-accelerated code and does not import other
project modules, so an import failure here never takes the package down with
it.  The pure-numpy reference implementations live beside the public classes
(``_kmers.py``, ``_sketch.py``, ``_distance.py``); both backends produce
bit-identical sketches.

Exported Functions
------------------
_mix64_nb : njit function
    SplitMix64 finalizer on a single uint64.

_kmer_hashes_njit : njit function
    Rolling canonical 2-bit k-mer packing and hashing for one record.

_bin_minima_njit : njit function
    One-permutation hashing: route hashes to bins and keep per-bin minima.

_densify_optimal_njit : njit function
    Optimal densification by per-bin pseudo-random probing.

_densify_reverse_njit : njit function
    Single right-to-left circular pass densification.

_distance_matrix_njit : njit function
    Parallel condensed distance matrix over a stack of sketches.

Notes
-----
- Every uint64 constant is a module-level ``np.uint64`` so numba never mixes
  signed and unsigned operands (which would silently promote to float64).
- Sketch kernels are ``nogil=True`` so a thread pool can sketch several
  genomes at once; the matrix kernel parallelises rows with prange.
- cache=True persists compiled binary to disk for faster subsequent runs
"""

import math

import numpy as np
from numba import njit, prange

# SplitMix64 constants
_GOLDEN = np.uint64(0x9E3779B97F4A7C15)
_MIX1 = np.uint64(0xBF58476D1CE4E5B9)
_MIX2 = np.uint64(0x94D049BB133111EB)
_S30 = np.uint64(30)
_S27 = np.uint64(27)
_S31 = np.uint64(31)

# Salts separating the three uses of the mixer
_BIN_SALT = np.uint64(0xD6E8FEB86659FD93)
_DENSIFY_SALT = np.uint64(0xC2B2AE3D27D4EB4F)

_TWO = np.uint64(2)
_THREE = np.uint64(3)


# ======================================================================== #
# Hashing                                                                   #
# ======================================================================== #


@njit(cache=True, nogil=True)
def _mix64_nb(x):
    """SplitMix64 finalizer.  Wraps modulo 2**64."""
    z = x + _GOLDEN
    z = (z ^ (z >> _S30)) * _MIX1
    z = (z ^ (z >> _S27)) * _MIX2
    return z ^ (z >> _S31)


@njit(cache=True, nogil=True)
def _kmer_hashes_njit(codes, kmer_size, mask, seed_mix, out):
    """
    Hash every valid canonical k-mer of one encoded record.

    Parameters
    ----------
    codes : uint8[L]
        2-bit nucleotide codes (A=0, C=1, G=2, T=3); any value > 3 marks a
        non-ACGT character.
    kmer_size : int
        K, 1..32.
    mask : uint64
        (1 << 2K) - 1, or all ones when K = 32.
    seed_mix : uint64
        Mixed run seed, XOR-ed into every canonical k-mer before hashing.
    out : uint64[max(L - K + 1, 0)]
        Output buffer.

    Returns
    -------
    int
        Number of hashes written to ``out``.

    Notes
    -----
    ``fwd`` keeps the first base of the window in the high bits; ``rc``
    keeps the complement of the first base in the low bits, so after K valid
    bases both hold complete words.  A non-ACGT base resets the run.
    """
    fwd = np.uint64(0)
    rc = np.uint64(0)
    high_shift = np.uint64(2 * (kmer_size - 1))
    run = 0
    n_out = 0
    for p in range(codes.shape[0]):
        c = codes[p]
        if c > 3:
            run = 0
            fwd = np.uint64(0)
            rc = np.uint64(0)
            continue
        cu = np.uint64(c)
        fwd = ((fwd << _TWO) | cu) & mask
        rc = (rc >> _TWO) | ((_THREE - cu) << high_shift)
        run += 1
        if run >= kmer_size:
            canonical = fwd if fwd < rc else rc
            out[n_out] = _mix64_nb(canonical ^ seed_mix)
            n_out += 1
    return n_out


# ======================================================================== #
# One-permutation hashing and densification                                 #
# ======================================================================== #


@njit(cache=True, nogil=True)
def _bin_minima_njit(hashes, n_hashes, values, filled):
    """
    Route ``hashes[:n_hashes]`` to bins and keep the minimum per bin.

    ``values`` and ``filled`` are updated in place so several records of
    one genome accumulate into the same sketch.
    """
    n_bins = np.uint64(values.shape[0])
    for t in range(n_hashes):
        h = hashes[t]
        b = np.int64(_mix64_nb(h ^ _BIN_SALT) % n_bins)
        if not filled[b] or h < values[b]:
            values[b] = h
            filled[b] = True


@njit(cache=True, nogil=True)
def _densified_value_nb(value, dest):
    """Perturb a copied bin value with its destination bin index."""
    return _mix64_nb(value ^ _mix64_nb(np.uint64(dest) ^ _DENSIFY_SALT))


@njit(cache=True, nogil=True)
def _densify_optimal_njit(values, filled, max_probes, seed_mix, out):
    """
    Optimal densification.

    Every empty bin ``i`` probes the fixed pseudo-random sequence
    ``j_t = mix64((i * GOLDEN + t) ^ seed_mix) mod S`` for t = 1..max_probes
    and copies the first bin that was filled by a genuine k-mer.  If no probe
    hits, the bins after ``i`` are scanned circularly.  The caller guarantees
    at least one filled bin.
    """
    n_bins = values.shape[0]
    n_bins_u = np.uint64(n_bins)
    for i in range(n_bins):
        if filled[i]:
            out[i] = values[i]
            continue
        src = -1
        base = np.uint64(i) * _GOLDEN
        for t in range(1, max_probes + 1):
            j = np.int64(_mix64_nb((base + np.uint64(t)) ^ seed_mix) % n_bins_u)
            if filled[j]:
                src = j
                break
        if src < 0:
            for step in range(1, n_bins):
                j = (i + step) % n_bins
                if filled[j]:
                    src = j
                    break
        out[i] = _densified_value_nb(values[src], i)


@njit(cache=True, nogil=True)
def _densify_reverse_njit(values, filled, out):
    """
    Reverse densification: one right-to-left circular pass.

    Each empty bin receives the (perturbed) value of the nearest filled bin
    to its right.  The caller guarantees at least one filled bin.
    """
    n_bins = values.shape[0]
    first = 0
    while not filled[first]:
        first += 1
    current = first
    out[first] = values[first]
    for step in range(1, n_bins):
        i = (first - step) % n_bins
        if filled[i]:
            current = i
            out[i] = values[i]
        else:
            out[i] = _densified_value_nb(values[current], i)


# ======================================================================== #
# Distances                                                                 #
# ======================================================================== #


@njit(cache=True, nogil=True)
def _mash_distance_nb(matches, n_bins, kmer_size, max_distance):
    """Convert a bin-match count into the clipped Mash-style distance."""
    if matches == 0:
        return max_distance
    if matches == n_bins:
        return 0.0
    j = matches / n_bins
    d = -math.log(2.0 * j / (1.0 + j)) / kmer_size
    if not math.isfinite(d) or d > max_distance:
        return max_distance
    if d < 0.0:
        return 0.0
    return d


@njit(parallel=True, cache=True)
def _distance_matrix_njit(sketches, degenerate, kmer_size, max_distance, out):
    """
    Fill the condensed distance vector for a stack of sketches.

    Parameters
    ----------
    sketches : uint64[n, S]
    degenerate : bool[n]
    kmer_size : int
    max_distance : float
    out : float64[n * (n - 1) // 2]
        Condensed upper triangle, row-major (i < j).

    Notes
    -----
    The outer loop over rows runs in parallel via prange.  Row ``i`` owns
    the cells ``(i, i+1..n-1)``, so every cell is written exactly once and
    no synchronisation is needed.
    """
    n = sketches.shape[0]
    n_bins = sketches.shape[1]
    for i in prange(n):
        base = i * n - (i * (i + 1)) // 2 - i - 1
        for j in range(i + 1, n):
            if degenerate[i] or degenerate[j]:
                out[base + j] = max_distance
                continue
            matches = 0
            for b in range(n_bins):
                if sketches[i, b] == sketches[j, b]:
                    matches += 1
            out[base + j] = _mash_distance_nb(
                matches, n_bins, kmer_size, max_distance
            )

"""
tests/test_sketch.py
====================
Densified one-permutation MinHash sketches.

Coverage
--------
- completeness: every bin filled after densification, including the
  single-k-mer boundary case
- degenerate genomes (no valid k-mer)
- determinism, strand symmetry and record-boundary handling
- python / cpu-parallel agreement for both densification strategies,
  including the circular-scan fallback of optimal densification
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from bindashtree._backend import get_available_backends
from bindashtree._config import SketchConfig
from bindashtree._context import use_backend
from bindashtree._exceptions import GenomeInputError
from bindashtree._sketch import DensifiedSketcher, Sketch
from synthetic import random_sequence, reverse_complement, write_damaged_gzip, write_fasta

_AVAILABLE = get_available_backends()
_EMPTY = np.iinfo(np.uint64).max

cpu_parallel_skip = pytest.mark.skipif(
    "cpu-parallel" not in _AVAILABLE,
    reason="cpu-parallel backend not available",
)


def _sketcher(backend, k=8, size=64, densification="optimal", seed=42):
    config = SketchConfig(
        kmer_size=k, sketch_size=size, seed=seed, densification=densification
    )
    return DensifiedSketcher(config, backend=backend)


@pytest.mark.parametrize("backend", _AVAILABLE)
@pytest.mark.parametrize("densification", ["optimal", "reverse"])
class TestCompleteness:
    def test_length_equals_k(self, backend, densification, rng):
        sk = _sketcher(backend, k=12, size=128, densification=densification)
        sketch = sk.sketch_sequences([random_sequence(rng, 12)], name="one")
        assert sketch.n_kmers == 1
        assert sketch.n_filled == 1
        assert not sketch.degenerate
        assert sketch.values.shape == (128,)
        assert not np.any(sketch.values == _EMPTY)
        # copies of the single value are perturbed per destination bin
        assert np.unique(sketch.values).shape[0] == 128

    def test_sparse_genome_filled(self, backend, densification, rng):
        sk = _sketcher(backend, k=10, size=512, densification=densification)
        sketch = sk.sketch_sequences([random_sequence(rng, 40)])
        assert 1 <= sketch.n_filled <= 31
        assert not np.any(sketch.values == _EMPTY)

    def test_dense_genome(self, backend, densification, rng):
        sk = _sketcher(backend, k=16, size=64, densification=densification)
        sketch = sk.sketch_sequences([random_sequence(rng, 20000)])
        assert sketch.n_filled == 64
        assert sketch.n_kmers == 20000 - 15

    def test_shorter_than_k_is_degenerate(self, backend, densification):
        sk = _sketcher(backend, k=16, densification=densification)
        sketch = sk.sketch_sequences([b"ACGTACGT"], name="tiny")
        assert sketch.degenerate
        assert sketch.n_kmers == 0
        assert np.all(sketch.values == 0)

    def test_only_ambiguous_bases_is_degenerate(self, backend, densification):
        sk = _sketcher(backend, densification=densification)
        assert sk.sketch_sequences([b"N" * 500]).degenerate


@pytest.mark.parametrize("backend", _AVAILABLE)
class TestSketchProperties:
    def test_deterministic(self, backend, rng):
        seq = random_sequence(rng, 3000)
        a = _sketcher(backend).sketch_sequences([seq])
        b = _sketcher(backend).sketch_sequences([seq])
        np.testing.assert_array_equal(a.values, b.values)

    def test_strand_symmetric(self, backend, rng):
        seq = random_sequence(rng, 3000)
        sk = _sketcher(backend)
        np.testing.assert_array_equal(
            sk.sketch_sequences([seq]).values,
            sk.sketch_sequences([reverse_complement(seq)]).values,
        )

    def test_records_do_not_join(self, backend, rng):
        left = random_sequence(rng, 300)
        right = random_sequence(rng, 300)
        sk = _sketcher(backend)
        split = sk.sketch_sequences([left, right])
        separated = sk.sketch_sequences([left + b"N" + right])
        np.testing.assert_array_equal(split.values, separated.values)
        assert split.n_kmers == 2 * (300 - 7)

    def test_seed_changes_sketch(self, backend, rng):
        seq = random_sequence(rng, 1000)
        a = _sketcher(backend, seed=1).sketch_sequences([seq])
        b = _sketcher(backend, seed=2).sketch_sequences([seq])
        assert not np.array_equal(a.values, b.values)
        assert not a.is_compatible(b)

    def test_strategies_agree_on_filled_genomes(self, backend, rng):
        seq = random_sequence(rng, 50000)
        opt = _sketcher(backend, k=16, size=32, densification="optimal")
        rev = _sketcher(backend, k=16, size=32, densification="reverse")
        np.testing.assert_array_equal(
            opt.sketch_sequences([seq]).values, rev.sketch_sequences([seq]).values
        )

    def test_sketch_file(self, backend, rng, tmp_path):
        seq = random_sequence(rng, 2000)
        path = write_fasta(tmp_path / "g.fasta", [seq])
        sk = _sketcher(backend)
        from_file = sk.sketch_file(path)
        assert from_file.name == "g.fasta"
        np.testing.assert_array_equal(from_file.values, sk.sketch_sequences([seq]).values)

    def test_missing_file(self, backend, tmp_path):
        with pytest.raises(GenomeInputError) as excinfo:
            _sketcher(backend).sketch_file(tmp_path / "absent.fa")
        assert "absent.fa" in str(excinfo.value)

    @pytest.mark.parametrize("damage", ["truncate", "corrupt"])
    def test_damaged_gzip(self, backend, rng, tmp_path, damage):
        path = write_damaged_gzip(tmp_path / "g.fa.gz", [random_sequence(rng, 5000)], damage)
        with pytest.raises(GenomeInputError) as excinfo:
            _sketcher(backend).sketch_file(path)
        assert excinfo.value.path == path
        assert "g.fa.gz" in str(excinfo.value)


class TestSketchType:
    def test_compatibility(self):
        values = np.zeros(8, dtype=np.uint64)
        a = Sketch("a", values, kmer_size=16, seed=1, densification="optimal", n_filled=3)
        b = Sketch("b", values, kmer_size=16, seed=1, densification="optimal", n_filled=3)
        c = Sketch("c", values, kmer_size=21, seed=1, densification="optimal", n_filled=3)
        assert a.is_compatible(b)
        assert not a.is_compatible(c)
        assert a.sketch_size == 8

    def test_use_backend_context(self):
        with use_backend("python"):
            assert DensifiedSketcher(SketchConfig(sketch_size=16)).backend == "python"


@cpu_parallel_skip
class TestBackendAgreement:
    @pytest.mark.parametrize("densification", ["optimal", "reverse"])
    @pytest.mark.parametrize("length", [16, 60, 400, 30000])
    def test_identical_sketches(self, densification, length, rng):
        records = [random_sequence(rng, length), random_sequence(rng, length // 2 + 16)]
        py = _sketcher("python", k=16, size=1024, densification=densification)
        nb = _sketcher("cpu-parallel", k=16, size=1024, densification=densification)
        a = py.sketch_sequences(records)
        b = nb.sketch_sequences(records)
        assert a.n_filled == b.n_filled
        np.testing.assert_array_equal(a.values, b.values)

    def test_identical_scan_fallback(self, rng):
        records = [random_sequence(rng, 30)]
        py = _sketcher("python", k=16, size=256)
        nb = _sketcher("cpu-parallel", k=16, size=256)
        # a single probe forces most empty bins onto the circular scan
        py.max_probes = 1
        nb.max_probes = 1
        np.testing.assert_array_equal(
            py.sketch_sequences(records).values, nb.sketch_sequences(records).values
        )

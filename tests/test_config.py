"""
tests/test_config.py
====================
Validation and normalisation of the immutable run configuration models.
"""

import os
import sys

import pytest
from pydantic import BaseModel, ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from bindashtree._config import RunConfig, SketchConfig, TreeConfig
from bindashtree._exceptions import BinDashTreeError, ConfigurationError


class TestSketchConfig:
    def test_defaults(self):
        cfg = SketchConfig()
        assert cfg.kmer_size == 16
        assert cfg.sketch_size == 10240
        assert cfg.densification == "optimal"

    @pytest.mark.parametrize("k", [0, -3, 33, 1.5, True])
    def test_bad_kmer_size(self, k):
        with pytest.raises(ConfigurationError):
            SketchConfig(kmer_size=k)

    @pytest.mark.parametrize("k", [1, 21, 32])
    def test_kmer_size_bounds(self, k):
        assert SketchConfig(kmer_size=k).kmer_size == k

    @pytest.mark.parametrize("s", [0, -1, 2.0])
    def test_bad_sketch_size(self, s):
        with pytest.raises(ConfigurationError):
            SketchConfig(sketch_size=s)

    @pytest.mark.parametrize("seed", [-1, 1 << 64, "42"])
    def test_bad_seed(self, seed):
        with pytest.raises(ConfigurationError):
            SketchConfig(seed=seed)

    @pytest.mark.parametrize(
        "value,expected",
        [("optimal", "optimal"), ("REVERSE", "reverse"), (0, "optimal"), ("1", "reverse")],
    )
    def test_densification_aliases(self, value, expected):
        assert SketchConfig(densification=value).densification == expected

    def test_unknown_densification(self):
        with pytest.raises(ConfigurationError, match="densification"):
            SketchConfig(densification="fast")

    def test_frozen(self):
        cfg = SketchConfig()
        with pytest.raises(ValidationError):
            cfg.kmer_size = 21


class TestTreeConfig:
    @pytest.mark.parametrize(
        "value,expected",
        [("naive", "naive"), ("RapidNJ", "rapidnj"), ("accelerated", "rapidnj"), ("hybrid", "hybrid")],
    )
    def test_method_names(self, value, expected):
        assert TreeConfig(method=value).method == expected

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            TreeConfig(method="upgma")

    @pytest.mark.parametrize("pct", [-1, 101, 50.5])
    def test_bad_percentage(self, pct):
        with pytest.raises(ConfigurationError):
            TreeConfig(naive_percentage=pct)

    @pytest.mark.parametrize("pct", [0, 100])
    def test_percentage_bounds(self, pct):
        assert TreeConfig(naive_percentage=pct).naive_percentage == pct

    def test_bad_chunk_size(self):
        with pytest.raises(ConfigurationError):
            TreeConfig(chunk_size=0)


class TestRunConfig:
    def test_defaults(self):
        cfg = RunConfig()
        assert cfg.threads == 1
        assert cfg.max_distance == 1.0
        assert cfg.backend == "best"
        assert cfg.tree.method == "rapidnj"

    @pytest.mark.parametrize("value", [0, -1.0, float("inf"), float("nan"), "x"])
    def test_bad_max_distance(self, value):
        with pytest.raises(ConfigurationError):
            RunConfig(max_distance=value)

    def test_max_distance_coerced_to_float(self):
        assert isinstance(RunConfig(max_distance=2).max_distance, float)

    def test_bad_threads(self):
        with pytest.raises(ConfigurationError):
            RunConfig(threads=0)

    def test_bad_backend(self):
        with pytest.raises(ConfigurationError):
            RunConfig(backend="cuda")

    def test_error_hierarchy(self):
        with pytest.raises(ValueError):
            RunConfig(threads=0)
        with pytest.raises(BinDashTreeError) as excinfo:
            RunConfig(threads=0)
        assert excinfo.value.parameter == "threads"
        assert "threads" in excinfo.value.message

    def test_error_names_value_and_reason(self):
        with pytest.raises(ConfigurationError) as excinfo:
            SketchConfig(kmer_size=33)
        assert excinfo.value.parameter == "kmer_size"
        assert excinfo.value.value == 33
        assert "32" in excinfo.value.message

    def test_nested_error_names_path(self):
        with pytest.raises(ConfigurationError) as excinfo:
            RunConfig(sketch={"kmer_size": 0})
        assert excinfo.value.parameter == "sketch.kmer_size"

    def test_nested_dict_is_validated(self):
        cfg = RunConfig(tree={"method": "accelerated"})
        assert isinstance(cfg.tree, TreeConfig)
        assert cfg.tree.method == "rapidnj"

    def test_unknown_field(self):
        with pytest.raises(ConfigurationError, match="kmer"):
            RunConfig(kmer=16)


class TestModels:
    @pytest.mark.parametrize("model", [SketchConfig, TreeConfig, RunConfig])
    def test_pydantic_models(self, model):
        assert issubclass(model, BaseModel)
        assert model.model_config["frozen"] is True

    def test_assignment_rejected(self):
        cfg = RunConfig()
        with pytest.raises(ValidationError):
            cfg.threads = 4
        assert cfg.threads == 1

    def test_equal_configs_hash_equal(self):
        a = RunConfig(sketch=SketchConfig(densification=1), threads=2)
        b = RunConfig(sketch=SketchConfig(densification="reverse"), threads=2)
        assert a == b
        assert hash(a) == hash(b)

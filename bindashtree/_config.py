"""
_config.py
==========
Immutable run configuration.

All run-wide parameters (k-mer size, sketch size, hash seed, thread count,
tree method ...) live in frozen pydantic models that are validated on
construction and passed explicitly to every component.  Nothing in the
package reads global state for these values, so each stage can be exercised
on its own with synthetic parameters.

Validation failures surface as :class:`ConfigurationError` naming the
offending parameter, never as a bare pydantic ``ValidationError``.

Defaults match the BinDashtree command line:

  k = 16, S = 10240, optimal densification, 1 thread,
  rapidnj tree search, chunk size 30, 90 % naive steps for hybrid.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from bindashtree._exceptions import ConfigurationError


DENSIFICATION_STRATEGIES = ("optimal", "reverse")
TREE_METHODS = ("naive", "rapidnj", "hybrid")
BACKENDS = ("best", "python", "cpu-parallel")

# Integer selectors accepted by the -d flag.
_DENSIFICATION_ALIASES = {"0": "optimal", "1": "reverse"}
_TREE_ALIASES = {"accelerated": "rapidnj", "rapid": "rapidnj"}

MAX_KMER_SIZE = 32
UINT64_MAX = (1 << 64) - 1


def _configuration_error(exc: ValidationError) -> ConfigurationError:
    """Turn the first pydantic error into a ConfigurationError."""
    err = exc.errors()[0]
    parameter = ".".join(str(part) for part in err["loc"]) or "configuration"
    cause = err.get("ctx", {}).get("error")
    reason = str(cause) if cause is not None else err["msg"]
    return ConfigurationError(parameter, err.get("input"), reason)


class _FrozenConfig(BaseModel):
    """Frozen model whose validation errors are ConfigurationErrors."""

    model_config = {"frozen": True, "extra": "forbid"}

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise _configuration_error(exc) from None


class SketchConfig(_FrozenConfig):
    """
    Parameters of the sketching engine.

    Attributes
    ----------
    kmer_size : int
        K-mer length, 1..32 (a canonical k-mer is packed into one 64-bit word).
    sketch_size : int
        Number of one-permutation-hashing bins S per genome.
    seed : int
        Unsigned 64-bit seed shared by every hash in the run.
    densification : str
        'optimal' or 'reverse' (0 and 1 are accepted as selectors).
    """

    kmer_size: int = Field(default=16, ge=1, le=MAX_KMER_SIZE, strict=True)
    sketch_size: int = Field(default=10240, ge=1, strict=True)
    seed: int = Field(default=42, ge=0, le=UINT64_MAX, strict=True)
    densification: str = Field(
        default="optimal", description="Densification strategy for empty bins"
    )

    @field_validator("densification", mode="before")
    @classmethod
    def normalize_densification(cls, value: Any) -> str:
        """Map a densification selector (name or 0/1) to its canonical name."""
        key = str(value).strip().lower()
        key = _DENSIFICATION_ALIASES.get(key, key)
        if key not in DENSIFICATION_STRATEGIES:
            msg = f"expected one of {', '.join(DENSIFICATION_STRATEGIES)} (or 0/1)"
            raise ValueError(msg)
        return key


class TreeConfig(_FrozenConfig):
    """
    Parameters of the neighbor-joining engine.

    Attributes
    ----------
    method : str
        'naive', 'rapidnj' or 'hybrid'.
    chunk_size : int
        Candidate-list chunk length scanned between bound checks.
    naive_percentage : int
        Share of the join steps (0..100) run with the naive search before a
        hybrid run switches to the sorted-list search.
    """

    method: str = Field(default="rapidnj", description="Pair-selection strategy")
    chunk_size: int = Field(default=30, ge=1, strict=True)
    naive_percentage: int = Field(default=90, ge=0, le=100, strict=True)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_tree_method(cls, value: Any) -> str:
        """Map a tree method name (case-insensitive, with aliases) to its canonical name."""
        key = str(value).strip().lower()
        key = _TREE_ALIASES.get(key, key)
        if key not in TREE_METHODS:
            raise ValueError(f"expected one of {', '.join(TREE_METHODS)}")
        return key


class RunConfig(_FrozenConfig):
    """
    Complete configuration of one pipeline run.

    Attributes
    ----------
    sketch : SketchConfig
    tree : TreeConfig
    threads : int
        Worker threads for sketching and for the distance matrix.
    max_distance : float
        Distance assigned when the Jaccard estimate is 0, when a degenerate
        sketch is involved, or when the transform is not finite.
    backend : str
        'best', 'python' or 'cpu-parallel'.
    """

    sketch: SketchConfig = Field(default_factory=SketchConfig)
    tree: TreeConfig = Field(default_factory=TreeConfig)
    threads: int = Field(default=1, ge=1, strict=True)
    max_distance: float = Field(default=1.0, gt=0.0, allow_inf_nan=False)
    backend: Literal["best", "python", "cpu-parallel"] = "best"

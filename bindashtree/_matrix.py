"""
_matrix.py
==========
Symmetric pairwise distance matrix with PHYLIP input and output.

The matrix stores only the strict upper triangle as a flat float64 vector
(row-major, i < j).  The diagonal is implicitly zero and the lower triangle
is the mirror image, so symmetry holds by construction.

PHYLIP layout written by :meth:`DistanceMatrix.to_phylip`::

    3
    genomeA    0.000000 0.012345 0.500000
    genomeB    0.012345 0.000000 0.487000
    genomeC    0.500000 0.487000 0.000000

The first line is the taxon count; every row is the label left-justified to
ten characters followed by one ``" %8.6f"`` field per column.  The reader
also accepts lower-triangular files (row ``i`` holding ``i`` values).
"""

from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np

from bindashtree._exceptions import TreeConstructionError
from bindashtree._utils import condensed_index, condensed_size


def _split_phylip_row(line: str, n: int) -> List[str]:
    """Label followed by distance fields."""
    fields = line.split()
    if len(fields) > n + 1:
        return line.strip().rsplit(None, n)
    return fields


class DistanceMatrix:
    """
    An immutable labelled distance matrix.

    Parameters
    ----------
    names : Sequence[str]
        Unique taxon labels, in row order.
    condensed : array_like
        Upper-triangle distances, length n * (n - 1) / 2.

    Attributes
    ----------
    names : list[str]
    condensed : np.ndarray
        float64 [n * (n - 1) / 2], read-only.

    Examples
    --------
    >>> dm = DistanceMatrix(["A", "B", "C"], [0.1, 0.2, 0.3])
    >>> dm["A", "C"]
    0.2
    >>> dm[2, 1]
    0.3
    """

    def __init__(self, names: Sequence[str], condensed):
        names = [str(name) for name in names]
        condensed = np.array(condensed, dtype=np.float64).ravel()
        expected = condensed_size(len(names))
        if condensed.shape[0] != expected:
            raise TreeConstructionError(
                f"{len(names)} taxa need {expected} condensed distances, "
                f"got {condensed.shape[0]}"
            )
        index: Dict[str, int] = {}
        for i, name in enumerate(names):
            if name in index:
                raise TreeConstructionError(f"Duplicate taxon label {name!r}")
            index[name] = i
        condensed.setflags(write=False)
        self.names: List[str] = names
        self.condensed = condensed
        self._index = index

    # ------------------------------------------------------------------ #
    # Construction                                                       #
    # ------------------------------------------------------------------ #

    @classmethod
    def from_square(
        cls, names: Sequence[str], square, atol: float = 1e-6
    ) -> "DistanceMatrix":
        """
        Build from a full square matrix.

        Parameters
        ----------
        names : Sequence[str]
        square : array_like
            n x n matrix; must be symmetric (within ``atol``) with a zero
            diagonal.  Mirrored cells are averaged.

        Raises
        ------
        TreeConstructionError
            If the matrix is not square, not symmetric or has a non-zero
            diagonal.
        """
        square = np.asarray(square, dtype=np.float64)
        n = len(names)
        if square.shape != (n, n):
            raise TreeConstructionError(
                f"Expected a {n}x{n} matrix for {n} taxa, got shape {square.shape}"
            )
        if np.any(np.abs(np.diag(square)) > atol):
            raise TreeConstructionError("Distance matrix diagonal must be zero")
        if not np.allclose(square, square.T, rtol=0.0, atol=atol, equal_nan=True):
            raise TreeConstructionError("Distance matrix is not symmetric")
        iu = np.triu_indices(n, k=1)
        return cls(names, 0.5 * (square[iu] + square.T[iu]))

    @classmethod
    def from_phylip_text(cls, text: str) -> "DistanceMatrix":
        """
        Parse a PHYLIP distance matrix (square or lower-triangular).

        Labels are whitespace-delimited, except that a row holding more than
        n + 1 fields is a square row whose label contains whitespace: its last
        n fields are the distances and everything before them is the label.

        Raises
        ------
        TreeConstructionError
            If the header, row count or row lengths are inconsistent.
        """
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            raise TreeConstructionError("Empty PHYLIP input")
        try:
            n = int(lines[0].split()[0])
        except (IndexError, ValueError):
            raise TreeConstructionError(
                f"PHYLIP header must start with the taxon count, got {lines[0]!r}"
            ) from None
        rows = [_split_phylip_row(line, n) for line in lines[1:]]
        if len(rows) != n:
            raise TreeConstructionError(
                f"PHYLIP header announces {n} taxa, found {len(rows)} rows"
            )

        names = [row[0] for row in rows]
        try:
            values = [[float(v) for v in row[1:]] for row in rows]
        except ValueError as e:
            raise TreeConstructionError(f"Non-numeric PHYLIP distance: {e}") from None

        lengths = [len(v) for v in values]
        if all(length == n for length in lengths):
            return cls.from_square(names, values)
        if lengths == list(range(n)):
            square = np.zeros((n, n), dtype=np.float64)
            for i, row in enumerate(values):
                square[i, :i] = row
            square = square + square.T
            return cls.from_square(names, square)
        raise TreeConstructionError(
            "PHYLIP rows must hold either n values (square) or i values "
            "(lower-triangular)"
        )

    @classmethod
    def read_phylip(cls, path: Union[str, Path]) -> "DistanceMatrix":
        """Read a PHYLIP distance matrix file."""
        return cls.from_phylip_text(Path(path).read_text())

    # ------------------------------------------------------------------ #
    # Access                                                             #
    # ------------------------------------------------------------------ #

    @property
    def n(self) -> int:
        return len(self.names)

    def __len__(self) -> int:
        return self.n

    def index(self, name: str) -> int:
        """Row index of a taxon label."""
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"Unknown taxon {name!r}") from None

    def _resolve(self, key: Union[int, str]) -> int:
        if isinstance(key, str):
            return self.index(key)
        i = int(key)
        if not 0 <= i < self.n:
            raise IndexError(f"Taxon index {i} out of range for {self.n} taxa")
        return i

    def __getitem__(self, key: Tuple[Union[int, str], Union[int, str]]) -> float:
        a, b = key
        i, j = self._resolve(a), self._resolve(b)
        if i == j:
            return 0.0
        return float(self.condensed[condensed_index(i, j, self.n)])

    def to_square(self) -> np.ndarray:
        """Full symmetric n x n float64 copy with a zero diagonal."""
        n = self.n
        square = np.zeros((n, n), dtype=np.float64)
        iu = np.triu_indices(n, k=1)
        square[iu] = self.condensed
        square.T[iu] = self.condensed
        return square

    def __eq__(self, other) -> bool:
        if not isinstance(other, DistanceMatrix):
            return NotImplemented
        return self.names == other.names and np.array_equal(
            self.condensed, other.condensed
        )

    def __repr__(self) -> str:
        return f"DistanceMatrix(n={self.n})"

    # ------------------------------------------------------------------ #
    # Output                                                             #
    # ------------------------------------------------------------------ #

    def to_phylip(self) -> str:
        """Render as a square PHYLIP matrix (six decimals per cell)."""
        square = self.to_square()
        lines = [str(self.n)]
        for name, row in zip(self.names, square):
            lines.append(f"{name:<10}" + "".join(f" {d:8.6f}" for d in row))
        return "\n".join(lines) + "\n"

    def write_phylip(self, path: Union[str, Path]) -> None:
        """Write :meth:`to_phylip` output to ``path``."""
        Path(path).write_text(self.to_phylip())

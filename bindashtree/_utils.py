"""
_utils.py
=========
General-purpose utility functions for bindashtree.

These are standalone functions that don't depend on the main classes
and are shared by the matrix, tree and I/O code.
"""

import logging
import re

from bindashtree._backend import get_best_backend, resolve_backend
from bindashtree._context import get_backend_override


logger = logging.getLogger(__name__)

# Characters that force a Newick label to be quoted
_NEWICK_SPECIAL = re.compile(r"[\s(),:;\[\]']")


def condensed_size(n: int) -> int:
    """Number of cells in the strict upper triangle of an n x n matrix."""
    return n * (n - 1) // 2


def condensed_index(i: int, j: int, n: int) -> int:
    """
    Position of cell (i, j) in a row-major condensed upper triangle.

    Parameters
    ----------
    i, j : int
        Distinct row and column indices; order does not matter.
    n : int
        Matrix dimension.

    Returns
    -------
    int

    Examples
    --------
    >>> condensed_index(0, 1, 4)
    0
    >>> condensed_index(2, 1, 4)
    3
    >>> condensed_index(2, 3, 4)
    5
    """
    if i == j:
        raise ValueError(f"diagonal cell ({i}, {j}) has no condensed index")
    if i > j:
        i, j = j, i
    return n * i - i * (i + 1) // 2 + j - i - 1


def quote_newick_label(label: str) -> str:
    """
    Quote a taxon label when it contains Newick metacharacters.

    Single quotes inside a quoted label are doubled.

    Examples
    --------
    >>> quote_newick_label('E_coli')
    'E_coli'
    >>> quote_newick_label("genome 1.fa")
    "'genome 1.fa'"
    """
    if label and not _NEWICK_SPECIAL.search(label):
        return label
    return "'" + label.replace("'", "''") + "'"


def choose_backend(backend: str) -> str:
    """
    Resolve the backend for one operation.

    An active ``use_backend`` context wins over the argument.  A backend that
    is not available is logged and replaced by the best available one.
    """
    backend_override = get_backend_override()
    if backend_override is not None:
        backend = backend_override

    try:
        return resolve_backend(backend)
    except ValueError as e:
        logger.warning(str(e))
        return get_best_backend()

"""
_context.py
===========
Context managers for bindashtree.

Provides context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Warning control (suppress specific warnings)
- Backend selection (force specific backend)

All context managers restore state on exit, even if exceptions occur.
"""

import logging
import warnings
from contextlib import contextmanager
from typing import Optional, Type


# Module-level state for backend override
_backend_override = None

# Loggers silenced by quiet()
_PACKAGE_LOGGERS = (
    "bindashtree",
    "bindashtree._sketch",
    "bindashtree._matrix",
    "bindashtree._nj",
    "bindashtree._pipeline",
)


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'bindashtree._nj').
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> with suppress_logger('bindashtree._nj'):
    ...     tree = NeighborJoiningEngine().build(matrix)

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all bindashtree logging.

    Parameters
    ----------
    level : int, default logging.CRITICAL
        Temporary logging level for every package logger.

    Examples
    --------
    >>> with quiet():
    ...     result = run_pipeline(paths, config)

    >>> with quiet(logging.WARNING):
    ...     sketches = sketch_genomes(paths, config)
    """
    loggers = [logging.getLogger(name) for name in _PACKAGE_LOGGERS]
    original_levels = [lg.level for lg in loggers]

    try:
        for lg in loggers:
            lg.setLevel(level)
        yield
    finally:
        for lg, original in zip(loggers, original_levels):
            lg.setLevel(original)


# ============================================================================ #
# Warning Context Managers
# ============================================================================ #


@contextmanager
def suppress_warnings(category: Optional[Type[Warning]] = None):
    """
    Temporarily suppress warnings.

    Parameters
    ----------
    category : Type[Warning] or None, default None
        Warning category to suppress. If None, suppresses all warnings.

    Examples
    --------
    >>> from numba.core.errors import NumbaPerformanceWarning
    >>> with suppress_warnings(NumbaPerformanceWarning):
    ...     matrix = DistanceMatrixBuilder(config).build(sketches)
    """
    with warnings.catch_warnings():
        if category is None:
            warnings.simplefilter("ignore")
        else:
            warnings.filterwarnings("ignore", category=category)
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Temporarily force a specific backend for sketching and distances.

    Parameters
    ----------
    backend : str
        'python', 'cpu-parallel' or 'best'.

    Raises
    ------
    ValueError
        If requested backend is not available.

    Examples
    --------
    >>> with use_backend('python'):
    ...     sketch = DensifiedSketcher(config).sketch_sequences(records)

    Notes
    -----
    - **Not thread-safe**: Uses module-level state.  Pass ``backend=`` to
      the component constructors when threads pick backends independently.
    - Backend availability checked when context entered
    """
    global _backend_override

    from ._backend import get_available_backends

    available = get_available_backends()

    if backend != "best" and backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    original_override = _backend_override

    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = original_override


def get_backend_override() -> Optional[str]:
    """
    Get the current backend override, if any.

    Returns
    -------
    str or None
        Current backend override, or None if no override active.
    """
    return _backend_override

"""
_backend.py
===========
Backend detection and selection for sketching and distance computation.

Two execution backends exist:

- 'python'       : vectorised numpy reference implementation, always present
- 'cpu-parallel' : numba-compiled kernels (nogil sketching, prange matrix)

Functions in this module have NO side effects - they only query system state.
Logging is done by the calling code, not here.
"""

from typing import List, Optional, Tuple


# ============================================================================ #
# Backend Detection (No Side Effects)
# ============================================================================ #


def check_numba_available() -> bool:
    """
    Check if numba can be imported in this interpreter.

    Returns
    -------
    bool
        True if numba can be imported, False otherwise.
    """
    try:
        import numba  # noqa: F401

        return True
    except ImportError:
        return False


def get_available_backends() -> List[str]:
    """
    Get list of available execution backends.

    Returns
    -------
    list[str]
        Backends in preference order, worst first.  Always includes
        'python'; includes 'cpu-parallel' when the numba kernels import.

    Examples
    --------
    >>> get_available_backends()
    ['python', 'cpu-parallel']
    """
    backends = ["python"]
    kernels_ok, _ = import_cpu_kernels()
    if kernels_ok:
        backends.append("cpu-parallel")
    return backends


def get_best_backend() -> str:
    """
    Get the most optimized available backend.

    Returns
    -------
    str
        'cpu-parallel' if available, otherwise 'python'.
    """
    # List is in preference order, last is best
    return get_available_backends()[-1]


def resolve_backend(backend: str) -> str:
    """
    Resolve a backend specification to an actual backend.

    Parameters
    ----------
    backend : str
        'best', 'python' or 'cpu-parallel'.

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If requested backend is not available.

    Examples
    --------
    >>> resolve_backend('best')
    'cpu-parallel'
    >>> resolve_backend('python')
    'python'
    """
    if backend == "best":
        return get_best_backend()

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )
    return backend


# ============================================================================ #
# Kernel Import Helpers
# ============================================================================ #


def import_cpu_kernels() -> Tuple[bool, Optional[object]]:
    """
    Try to import the numba kernel module.

    Returns
    -------
    tuple
        (success, module)
        - success: Whether the import (and therefore numba) worked
        - module: the ``bindashtree._cpu_kernels`` module or None
    """
    try:
        from bindashtree import _cpu_kernels

        return (True, _cpu_kernels)
    except ImportError:
        return (False, None)


def set_kernel_threads(threads: int) -> int:
    """
    Set the numba thread pool size used by prange kernels.

    The request is capped at ``numba.config.NUMBA_NUM_THREADS`` (the pool
    size fixed at numba start-up).

    Parameters
    ----------
    threads : int
        Requested worker threads.

    Returns
    -------
    int
        Threads actually in use.
    """
    import numba

    effective = max(1, min(int(threads), numba.config.NUMBA_NUM_THREADS))
    numba.set_num_threads(effective)
    return effective


# ============================================================================ #
# Module-Level State Query (Read-Only)
# ============================================================================ #


def get_backend_info() -> dict:
    """
    Get comprehensive backend information.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'numba_available': bool
        - 'numba_version': str or None
        - 'numba_threads': int (0 without numba)
        - 'backends': list[str]
        - 'best_backend': str
        - 'cpu_kernels_available': bool
    """
    numba_available = check_numba_available()
    numba_version = None
    numba_threads = 0
    if numba_available:
        import numba

        numba_version = numba.__version__
        numba_threads = numba.config.NUMBA_NUM_THREADS

    cpu_kernels_ok, _ = import_cpu_kernels()

    return {
        "numba_available": numba_available,
        "numba_version": numba_version,
        "numba_threads": numba_threads,
        "backends": get_available_backends(),
        "best_backend": get_best_backend(),
        "cpu_kernels_available": cpu_kernels_ok,
    }

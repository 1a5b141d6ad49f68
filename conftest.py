"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
slow
    Applied to statistical and end-to-end tests that sketch many synthetic
    genomes.  Deselect with ``-m "not slow"``.

Warning filters
---------------
NumbaPerformanceWarning messages are filtered out during tests.  Warnings
about under-utilised parallel loops are expected with tiny test matrices and
are not informative for correctness testing.
"""

import warnings

import numpy as np
import pytest


def pytest_configure(config):
    """
    Configure pytest before test collection begins.

    This runs before any test module is imported, which matters for catching
    warnings raised while numba compiles kernels.
    """
    config.addinivalue_line(
        "markers",
        "slow: statistical or end-to-end tests that sketch many synthetic genomes",
    )

    from numba.core.errors import NumbaPerformanceWarning

    warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)


def pytest_unconfigure(config):
    """Restore default warning behavior."""
    warnings.resetwarnings()


@pytest.fixture
def rng():
    """Seeded generator so synthetic genomes are reproducible."""
    return np.random.default_rng(20240917)

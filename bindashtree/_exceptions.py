"""
_exceptions.py
==============
Exception types raised by bindashtree.

Every error carries a short message and, where there is something useful to
say, a suggestion for resolving it.  Configuration and tree-construction
errors also derive from ``ValueError`` so callers that only know about the
builtin exception keep working.
"""

from typing import Optional


class BinDashTreeError(Exception):
    """Base exception for bindashtree errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(BinDashTreeError, ValueError):
    """Raised when a run parameter is out of range, before any work starts."""

    def __init__(self, parameter: str, value, reason: str):
        super().__init__(
            message=f"Invalid {parameter}={value!r}: {reason}",
            suggestion=None,
        )
        self.parameter = parameter
        self.value = value


class GenomeInputError(BinDashTreeError):
    """Raised when a genome file cannot be read or holds no sequence."""

    def __init__(self, path, reason: str):
        super().__init__(
            message=f"Cannot use genome '{path}': {reason}",
            suggestion=(
                "Check that the file exists, is readable, and contains FASTA or "
                "FASTQ records. Pass it with --exclude to drop it from the run."
            ),
        )
        self.path = path
        self.reason = reason


class TreeConstructionError(BinDashTreeError, ValueError):
    """Raised when a distance matrix cannot be turned into a tree."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message=message, suggestion=suggestion)

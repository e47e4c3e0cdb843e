"""
cliquetree/core/errors.py

Exception taxonomy for exact inference.

Structural and query errors abort the operation; there are no partial results.
"""

from __future__ import annotations


class JtreeError(Exception):
    """Base class for all inference errors."""


class StructureError(JtreeError, ValueError):
    """Malformed model or clique tree (triangulation, RIP, coverage, orientation)."""


class QueryError(JtreeError, ValueError):
    """A query that cannot be answered from the calibrated tree."""


class ZeroPartitionError(QueryError):
    """The potential to normalize has zero (or non-finite) total mass."""


class UnsupportedOperationError(JtreeError, NotImplementedError):
    """Operation deliberately left unimplemented."""


class NumericalPrecisionWarning(RuntimeWarning):
    """Division by a near-zero value lost probability mass."""


class CalibrationError(JtreeError, RuntimeError):
    """Adjacent clique beliefs disagree on their sepset after calibration."""

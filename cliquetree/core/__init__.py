"""
Core module: ID registry, options and error taxonomy.
"""

from cliquetree.core.errors import (
    JtreeError,
    StructureError,
    QueryError,
    ZeroPartitionError,
    UnsupportedOperationError,
    CalibrationError,
    NumericalPrecisionWarning,
)
from cliquetree.core.options import EngineOptions
from cliquetree.core.registry import VariableRegistry

__all__ = [
    "JtreeError",
    "StructureError",
    "QueryError",
    "ZeroPartitionError",
    "UnsupportedOperationError",
    "CalibrationError",
    "NumericalPrecisionWarning",
    "EngineOptions",
    "VariableRegistry",
]

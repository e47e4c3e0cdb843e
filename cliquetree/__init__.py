"""
cliquetree: exact junction-tree inference for discrete tabular models

Key components:
- algebra: Dense tabular factor operations
- topology: Model structure, moralization and triangulation
- compiler: Clique tree construction, factor assignment, sepsets
- runtime: Two-pass calibration and evidence handling
- api: Marginal, log-partition and sampling queries
- core: ID registry, options and errors
"""

__version__ = "1.0.0"
__author__ = "cliquetree developers"

from cliquetree.algebra.factor import (
    TabularFactor,
    multiply_factors,
    marginalize,
    divide_by,
    slice_factor,
    normalize_factor,
)
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
from cliquetree.engine import JtreeEngine
from cliquetree.model import TabularModel
from cliquetree.inference import (
    InferenceResult,
    jtree_solve,
    compute_log_partition,
    compute_partition_function,
    compute_marginals,
    sample_joint,
)

__all__ = [
    # Factors
    "TabularFactor",
    "multiply_factors",
    "marginalize",
    "divide_by",
    "slice_factor",
    "normalize_factor",
    # Errors
    "JtreeError",
    "StructureError",
    "QueryError",
    "ZeroPartitionError",
    "UnsupportedOperationError",
    "CalibrationError",
    "NumericalPrecisionWarning",
    # Engine
    "EngineOptions",
    "JtreeEngine",
    "TabularModel",
    # Named API
    "InferenceResult",
    "jtree_solve",
    "compute_log_partition",
    "compute_partition_function",
    "compute_marginals",
    "sample_joint",
]

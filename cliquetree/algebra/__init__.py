"""
Algebra module: dense tabular factor operations.
"""

from cliquetree.algebra.factor import (
    TabularFactor,
    multiply_factors,
    marginalize,
    divide_by,
    slice_factor,
    normalize_factor,
    sample_factor,
)

__all__ = [
    "TabularFactor",
    "multiply_factors",
    "marginalize",
    "divide_by",
    "slice_factor",
    "normalize_factor",
    "sample_factor",
]

"""
cliquetree/runtime/evidence.py

Evidence handling for tabular models.

Evidence is applied by slicing: every factor touching an observed variable is
restricted to the observed value and loses that axis.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

import numpy as np

from cliquetree.algebra.factor import TabularFactor, slice_factor

logger = logging.getLogger(__name__)


def validate_evidence(evidence: Mapping[int, int], cards: Sequence[int]) -> Dict[int, int]:
    """
    Check evidence against the model's variables.

    Args:
        evidence: Variable ID -> observed value
        cards: Variable cardinalities

    Returns:
        Normalized evidence dict (int keys and values, sorted by variable)
    """
    out: Dict[int, int] = {}
    for v, x in sorted((int(v), int(x)) for v, x in evidence.items()):
        if not 0 <= v < len(cards):
            raise ValueError(f"evidence on unknown variable {v}")
        if not 0 <= x < cards[v]:
            raise ValueError(f"evidence value {x} out of range for variable {v} with {cards[v]} states")
        out[v] = x
    return out


def condition_factors(
    factors: Sequence[TabularFactor],
    evidence: Mapping[int, int],
) -> List[TabularFactor]:
    """
    Slice every factor that touches an observed variable.

    Factors without observed variables are returned unchanged (same object).
    """
    if not evidence:
        return list(factors)
    fixed_vars = list(evidence.keys())
    fixed_vals = [evidence[v] for v in fixed_vars]
    out = [slice_factor(f, fixed_vars, fixed_vals) for f in factors]
    touched = sum(1 for a, b in zip(factors, out) if a is not b)
    logger.debug("evidence on %d variables sliced %d of %d factors", len(evidence), touched, len(factors))
    return out


def fill_observed(samples: np.ndarray, hidden: Sequence[int], evidence: Mapping[int, int], num_vars: int) -> np.ndarray:
    """
    Expand samples over hidden variables into full assignments.

    Args:
        samples: (n, len(hidden)) array, columns in `hidden` order
        hidden: Unobserved variable ids
        evidence: Observed variable -> value
        num_vars: Total number of model variables

    Returns:
        (n, num_vars) int array
    """
    n = samples.shape[0]
    full = np.zeros((n, num_vars), dtype=np.int64)
    for j, v in enumerate(hidden):
        full[:, v] = samples[:, j]
    for v, x in evidence.items():
        full[:, v] = x
    return full

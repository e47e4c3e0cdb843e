"""
cliquetree/core/options.py

Engine configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

HEURISTICS = ("min_fill", "min_degree")


@dataclass(frozen=True)
class EngineOptions:
    """
    Options controlling clique-tree construction and calibration.

    Attributes:
        heuristic: Elimination-ordering heuristic ("min_fill" or "min_degree")
        root: Clique index used as root of the calibration orientation
        division_tol: Denominator magnitudes <= this are treated as zero
        consistency_rtol: Relative tolerance for sepset consistency checks
        check_calibration: Verify sepset consistency after every calibration
        seed: Default seed for sampling
    """
    heuristic: str = "min_fill"
    root: int = 0
    division_tol: float = float(np.finfo(np.float64).tiny)
    consistency_rtol: float = 1e-9
    check_calibration: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        if self.heuristic not in HEURISTICS:
            raise ValueError(f"unknown heuristic {self.heuristic!r}; expected one of {HEURISTICS}")
        if self.root < 0:
            raise ValueError(f"root must be a non-negative clique index, got {self.root}")
        if self.division_tol < 0:
            raise ValueError("division_tol must be non-negative")
        if self.consistency_rtol <= 0:
            raise ValueError("consistency_rtol must be positive")

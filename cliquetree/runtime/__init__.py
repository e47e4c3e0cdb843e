"""
Runtime module: calibration and evidence handling.
"""

from cliquetree.runtime.calibrate import (
    CalibrationState,
    Calibrator,
    sepset_discrepancy,
    check_calibration,
)
from cliquetree.runtime.evidence import validate_evidence, condition_factors, fill_observed

__all__ = [
    "CalibrationState",
    "Calibrator",
    "sepset_discrepancy",
    "check_calibration",
    "validate_evidence",
    "condition_factors",
    "fill_observed",
]

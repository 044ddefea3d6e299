"""Contradiction detection and discrepancy analysis."""

from .detector import ContradictionDetector, conservative_interpretation, determine_severity
from .discrepancy import analyze_discrepancy

__all__ = [
    "ContradictionDetector",
    "conservative_interpretation",
    "determine_severity",
    "analyze_discrepancy",
]

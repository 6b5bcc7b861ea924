"""Pre-trade risk controls: admission gating and candidate scoring."""

from .admission import AdmissionController, RiskBudget
from .scorer import RiskScorer

__all__ = ["AdmissionController", "RiskBudget", "RiskScorer"]

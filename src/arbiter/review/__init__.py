"""Jury review — eligibility registry and jury selection."""

from arbiter.review.eligibility import EligibilityRegistry
from arbiter.review.jury_selector import JurySelection, JurySelector

__all__ = ["EligibilityRegistry", "JurySelection", "JurySelector"]

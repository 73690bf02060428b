"""Scoring — variance detection and aggregation of juror input."""

from arbiter.scoring.aggregator import (
    Aggregator,
    final_score,
    majority_tier,
    median,
    tier_final,
    tier_slots,
)
from arbiter.scoring.variance import VarianceDetector, VarianceReport

__all__ = [
    "Aggregator",
    "VarianceDetector",
    "VarianceReport",
    "final_score",
    "majority_tier",
    "median",
    "tier_final",
    "tier_slots",
]

"""Policy resolver — loads and validates the room protocol parameters.

The policy file is the single source of truth for every tunable number
in the protocol: jury size, score bounds, the client/jury weighting, the
variance threshold, tier scores and tier-slot percentages, and the
minimum reward.

Usage:
    resolver = PolicyResolver.from_config_dir(Path("config"))
    resolver.jury_size()            # 5
    resolver.variance_threshold()   # 15
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from arbiter.models.room import Tier


_DEFAULT_POLICY: dict[str, Any] = {
    "version": "1.0",
    "jury": {"jury_size": 5},
    "scoring": {
        "score_min": 0,
        "score_max": 100,
        "client_weight": 60,
        "jury_weight": 40,
        "variance_threshold": 15,
        "tier_scores": {"A": 40, "B": 30, "C": 20},
        "tier_slot_percent": {"A": 20, "B": 25},
    },
    "escrow": {"min_reward": "1"},
}


@dataclass(frozen=True)
class ScoringPolicy:
    """Resolved scoring parameters."""
    score_min: int
    score_max: int
    client_weight: int
    jury_weight: int
    variance_threshold: int
    tier_scores: dict[Tier, int]
    tier_a_percent: int
    tier_b_percent: int


class PolicyResolver:
    """Resolves protocol parameters from the policy document.

    Raises ValueError on construction if the document is structurally
    invalid or breaks a protocol invariant (weights must sum to 100,
    tier scores strictly decreasing, and so on).
    """

    POLICY_FILENAME = "arbiter_policy.json"

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._scoring = self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load the policy from a config directory.

        Raises:
            FileNotFoundError: If arbiter_policy.json does not exist.
            ValueError: If the policy is invalid.
        """
        path = config_dir / cls.POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(data)

    @classmethod
    def default(cls) -> PolicyResolver:
        """Resolver over the built-in default policy."""
        return cls(copy.deepcopy(_DEFAULT_POLICY))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return str(self._policy["version"])

    def jury_size(self) -> int:
        return int(self._policy["jury"]["jury_size"])

    def min_reward(self) -> Decimal:
        return Decimal(str(self._policy["escrow"]["min_reward"]))

    def scoring(self) -> ScoringPolicy:
        return self._scoring

    def variance_threshold(self) -> int:
        return self._scoring.variance_threshold

    def score_bounds(self) -> tuple[int, int]:
        return self._scoring.score_min, self._scoring.score_max

    def is_valid_score(self, score: object) -> bool:
        """True for a plain int (bool excluded) within the score bounds."""
        if isinstance(score, bool) or not isinstance(score, int):
            return False
        return self._scoring.score_min <= score <= self._scoring.score_max

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> ScoringPolicy:
        for section in ("version", "jury", "scoring", "escrow"):
            if section not in self._policy:
                raise ValueError(f"Policy missing '{section}' section")

        jury_size = self._policy["jury"].get("jury_size")
        if not isinstance(jury_size, int) or jury_size <= 0:
            raise ValueError(f"jury_size must be a positive integer, got {jury_size!r}")

        try:
            min_reward = Decimal(str(self._policy["escrow"].get("min_reward")))
        except InvalidOperation as e:
            raise ValueError(f"min_reward is not a decimal: {e}") from e
        if min_reward <= Decimal("0"):
            raise ValueError("min_reward must be positive")

        s = self._policy["scoring"]
        required = (
            "score_min", "score_max", "client_weight", "jury_weight",
            "variance_threshold", "tier_scores", "tier_slot_percent",
        )
        for key in required:
            if key not in s:
                raise ValueError(f"Scoring policy missing '{key}'")

        if not 0 <= s["score_min"] < s["score_max"]:
            raise ValueError("score bounds must satisfy 0 <= score_min < score_max")
        if s["client_weight"] < 0 or s["jury_weight"] < 0:
            raise ValueError("score weights must be non-negative")
        if s["client_weight"] + s["jury_weight"] != 100:
            raise ValueError(
                f"client_weight + jury_weight must equal 100, got "
                f"{s['client_weight'] + s['jury_weight']}"
            )
        if s["variance_threshold"] < 0:
            raise ValueError("variance_threshold must be non-negative")

        tier_scores = {Tier[name]: int(v) for name, v in s["tier_scores"].items()}
        if set(tier_scores) != set(Tier):
            raise ValueError("tier_scores must define A, B and C")
        if not tier_scores[Tier.A] > tier_scores[Tier.B] > tier_scores[Tier.C] >= 0:
            raise ValueError("tier_scores must be strictly decreasing from A to C")

        slots = s["tier_slot_percent"]
        a_pct, b_pct = int(slots.get("A", -1)), int(slots.get("B", -1))
        if not (0 < a_pct and 0 < b_pct and a_pct + b_pct <= 100):
            raise ValueError("tier_slot_percent A and B must be positive and sum to <= 100")

        return ScoringPolicy(
            score_min=int(s["score_min"]),
            score_max=int(s["score_max"]),
            client_weight=int(s["client_weight"]),
            jury_weight=int(s["jury_weight"]),
            variance_threshold=int(s["variance_threshold"]),
            tier_scores=tier_scores,
            tier_a_percent=a_pct,
            tier_b_percent=b_pct,
        )

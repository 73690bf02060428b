"""Aggregator — reduces valid juror input to jury scores.

Flat mode:
    median(valid scores)   empty → 0; odd → middle; even → floor of the
                           mean of the two middle values
    final = floor((client * 60 + jury * 40) / 100)

Tier mode:
    majority tier per contributor (ties favour the higher tier, A over
    B over C) → tier score A=40, B=30, C=20
    final = floor(client * 60 / 100) + tier score

Tier slots for n contributors:
    A = ceil(n * 20 / 100)
    B = min(ceil(n * 25 / 100), n - A)

All arithmetic is integer; every division floors. Weights, tier scores
and slot percentages come from the policy.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from arbiter.models.room import JuryResult, Room, ScoringMode, Tier
from arbiter.policy.resolver import PolicyResolver


def median(scores: Iterable[int]) -> int:
    """Median of integer scores, flooring the even-count midpoint.

    An empty input yields 0, which signals the zero-valid-votes path.
    """
    ordered = sorted(scores)
    n = len(ordered)
    if n == 0:
        return 0
    mid = n // 2
    if n % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) // 2


def final_score(
    client_score: int,
    jury_score: int,
    client_weight: int = 60,
    jury_weight: int = 40,
) -> int:
    """Weighted flat-mode score: floor((client*cw + jury*jw) / 100)."""
    return (client_score * client_weight + jury_score * jury_weight) // 100


def tier_final(
    client_score: int,
    tier: Tier,
    client_weight: int = 60,
    tier_scores: dict[Tier, int] | None = None,
) -> int:
    """Tier-mode score: floor(client*cw / 100) + score of the tier."""
    scores = tier_scores or {Tier.A: 40, Tier.B: 30, Tier.C: 20}
    return (client_score * client_weight) // 100 + scores[tier]


def majority_tier(tiers: Iterable[Tier]) -> Tier:
    """Most frequent tier; ties resolve to the better (lower) tier.

    With no input every contributor is implicitly Tier C.
    """
    counts = Counter(tiers)
    if not counts:
        return Tier.C
    best = max(counts.values())
    return min(t for t, c in counts.items() if c == best)


def tier_slots(contributor_count: int, a_percent: int = 20, b_percent: int = 25) -> tuple[int, int]:
    """Tier A / Tier B slot counts for a contributor count."""
    if contributor_count < 0:
        raise ValueError("contributor_count must be non-negative")
    a = -(-contributor_count * a_percent // 100)
    b = -(-contributor_count * b_percent // 100)
    return a, min(b, contributor_count - a)


class Aggregator:
    """Turns variance-filtered votes into a JuryResult and final scores.

    Pure computation: reads the room, returns results, mutates nothing.
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    def aggregate(
        self,
        room: Room,
        valid_jurors: list[str],
        flagged_jurors: list[str],
    ) -> JuryResult:
        """Build the jury result from the valid (unflagged) jurors."""
        if room.mode == ScoringMode.TIER:
            majorities = {
                c: majority_tier(room.tier_votes[j].tier_of(c) for j in valid_jurors)
                for c in room.contributors()
            }
            return JuryResult(
                mode=ScoringMode.TIER,
                valid_jurors=list(valid_jurors),
                flagged_jurors=list(flagged_jurors),
                majority_tiers=majorities,
            )

        scores = [room.votes[j].score for j in valid_jurors]
        return JuryResult(
            mode=ScoringMode.FLAT,
            valid_jurors=list(valid_jurors),
            flagged_jurors=list(flagged_jurors),
            jury_score=median(s for s in scores if s is not None),
        )

    def final_scores(self, room: Room, result: JuryResult) -> dict[str, int]:
        """Final score per contributor, in submission order.

        A contributor the client never scored counts as client score 0.
        """
        policy = self._resolver.scoring()
        finals: dict[str, int] = {}
        for contributor in room.contributors():
            client = room.submissions[contributor].client_score or 0
            if result.mode == ScoringMode.TIER:
                tier = result.majority_tiers.get(contributor, Tier.C)
                finals[contributor] = tier_final(
                    client, tier, policy.client_weight, policy.tier_scores,
                )
            else:
                finals[contributor] = final_score(
                    client, result.jury_score or 0,
                    policy.client_weight, policy.jury_weight,
                )
        return finals

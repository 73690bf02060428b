"""Variance detector — flags juror input that disagrees too much with peers.

Flat mode: for each revealed juror, the distance to the nearest other
revealed score. A juror is flagged when that distance is strictly
greater than the threshold (15): exactly 15 is not flagged. With fewer
than two revealed scores there is no reference point and nobody is
flagged.

Tier mode: per contributor, the majority tier across revealed jurors
(ties favour the higher tier). A juror is flagged when, for any
contributor, their tier is two or more steps from the majority, i.e. an
A-versus-C disagreement.

Detection is pure. The detector is also the only component that marks
votes as flagged and reports flags to the keycard ledger; the caller
decides whether flags are recorded (they are not on the refund path).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from arbiter.identity.keycard import JuryStatsSink
from arbiter.models.room import Room, ScoringMode, Tier
from arbiter.policy.resolver import PolicyResolver
from arbiter.scoring.aggregator import majority_tier


# Tier distance at which a disagreement counts as an outlier.
_TIER_FLAG_DISTANCE = 2


@dataclass(frozen=True)
class VarianceReport:
    """Which revealed jurors are valid and which are flagged."""
    valid_jurors: list[str]
    flagged_jurors: list[str]
    distances: dict[str, int] = field(default_factory=dict)


class VarianceDetector:
    """Detects outlier juror input in flat and tier rooms."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    def detect(self, room: Room) -> VarianceReport:
        """Classify every revealed juror, in jury-pool order."""
        if room.mode == ScoringMode.TIER:
            return self._detect_tier(room)
        return self._detect_flat(room)

    def mark(self, room: Room, report: VarianceReport) -> None:
        """Set the flag on each flagged juror's vote."""
        ballots = room.ballots()
        for juror in report.flagged_jurors:
            ballots[juror].flagged = True

    def record_flags(self, report: VarianceReport, sink: JuryStatsSink) -> None:
        """Increment the variance-flag counter of each flagged juror."""
        for juror in report.flagged_jurors:
            sink.increment_variance_flags(juror)

    # ------------------------------------------------------------------
    # Flat
    # ------------------------------------------------------------------

    def _detect_flat(self, room: Room) -> VarianceReport:
        revealed = [
            (j, room.votes[j].score)
            for j in room.jury_pool
            if j in room.votes and room.votes[j].revealed
        ]
        if len(revealed) < 2:
            return VarianceReport(valid_jurors=[j for j, _ in revealed], flagged_jurors=[])

        threshold = self._resolver.variance_threshold()
        valid: list[str] = []
        flagged: list[str] = []
        distances: dict[str, int] = {}
        for idx, (juror, score) in enumerate(revealed):
            nearest = min(
                abs(score - other)
                for k, (_, other) in enumerate(revealed)
                if k != idx
            )
            distances[juror] = nearest
            if nearest > threshold:
                flagged.append(juror)
            else:
                valid.append(juror)
        return VarianceReport(valid_jurors=valid, flagged_jurors=flagged, distances=distances)

    # ------------------------------------------------------------------
    # Tier
    # ------------------------------------------------------------------

    def _detect_tier(self, room: Room) -> VarianceReport:
        revealed = [
            j for j in room.jury_pool
            if j in room.tier_votes and room.tier_votes[j].revealed
        ]
        contributors = room.contributors()
        majorities: dict[str, Tier] = {
            c: majority_tier(room.tier_votes[j].tier_of(c) for j in revealed)
            for c in contributors
        }

        valid: list[str] = []
        flagged: list[str] = []
        distances: dict[str, int] = {}
        for juror in revealed:
            vote = room.tier_votes[juror]
            worst = max(
                (abs(vote.tier_of(c).value - majorities[c].value) for c in contributors),
                default=0,
            )
            distances[juror] = worst
            if worst >= _TIER_FLAG_DISTANCE:
                flagged.append(juror)
            else:
                valid.append(juror)
        return VarianceReport(valid_jurors=valid, flagged_jurors=flagged, distances=distances)

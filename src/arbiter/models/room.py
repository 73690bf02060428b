"""Room models — the full lifecycle record of one paid task.

A room holds the escrow reference, the contributors' submissions, the
seated jury and its votes, the jury result and the settlement outcome.

Room lifecycle:
    INIT → OPEN → CLOSED → JURY_ACTIVE → JURY_REVEAL → FINALIZED → SETTLED
    JURY_REVEAL → SETTLED   (zero-valid-votes refund only)

Scoring mode is fixed at creation:
- FLAT: each juror reveals one score for the room; the median of the
  valid scores is the jury score.
- TIER: each juror ranks contributors into Tier A / Tier B (everyone
  else is Tier C); the majority tier per contributor is the jury score.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class RoomState(str, enum.Enum):
    """Lifecycle state of a room."""
    INIT = "init"
    OPEN = "open"
    CLOSED = "closed"
    JURY_ACTIVE = "jury_active"
    JURY_REVEAL = "jury_reveal"
    FINALIZED = "finalized"
    SETTLED = "settled"


class ScoringMode(str, enum.Enum):
    """How jurors evaluate a room. Chosen once, at creation."""
    FLAT = "flat"
    TIER = "tier"


class Tier(int, enum.Enum):
    """Tier assignment. Lower value is the better tier."""
    A = 1
    B = 2
    C = 3


@dataclass(frozen=True)
class RoomDeadlines:
    """The three wall-clock deadlines of a room."""
    submission_utc: datetime
    commit_utc: datetime
    reveal_utc: datetime


@dataclass
class Submission:
    """One contributor's entry. Only client_score may change."""
    contributor: str
    content_hash: str
    submitted_utc: datetime
    sequence: int
    client_score: Optional[int] = None


@dataclass
class Vote:
    """A juror's flat-mode commitment and its later opening."""
    juror: str
    commit_hash: str
    committed_utc: datetime
    revealed: bool = False
    score: Optional[int] = None
    salt: Optional[str] = None
    revealed_utc: Optional[datetime] = None
    flagged: bool = False


@dataclass
class TierVote:
    """A juror's tier-mode commitment and its later opening."""
    juror: str
    commit_hash: str
    committed_utc: datetime
    revealed: bool = False
    tier_a: list[str] = field(default_factory=list)
    tier_b: list[str] = field(default_factory=list)
    salt: Optional[str] = None
    revealed_utc: Optional[datetime] = None
    flagged: bool = False

    def tier_of(self, contributor: str) -> Tier:
        """Tier this juror assigned to a contributor (C unless named)."""
        if contributor in self.tier_a:
            return Tier.A
        if contributor in self.tier_b:
            return Tier.B
        return Tier.C


@dataclass(frozen=True)
class JuryResult:
    """Outcome of variance filtering and aggregation.

    For FLAT rooms jury_score holds the median of the valid scores.
    For TIER rooms majority_tiers maps each contributor to its tier.
    """
    mode: ScoringMode
    valid_jurors: list[str]
    flagged_jurors: list[str]
    jury_score: Optional[int] = None
    majority_tiers: dict[str, Tier] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.valid_jurors


@dataclass
class Room:
    """A single task room.

    Invariants enforced by the engines:
    - state only moves along the transition graph;
    - a SETTLED room is never mutated again;
    - submissions are keyed by contributor (one each);
    - votes and tier_votes are keyed by juror (one each).
    """
    room_id: str
    client: str
    category: str
    task_hash: str
    reward: Decimal
    deadlines: RoomDeadlines
    created_utc: datetime
    mode: ScoringMode = ScoringMode.FLAT
    state: RoomState = RoomState.INIT
    submissions: dict[str, Submission] = field(default_factory=dict)
    jury_pool: list[str] = field(default_factory=list)
    votes: dict[str, Vote] = field(default_factory=dict)
    tier_votes: dict[str, TierVote] = field(default_factory=dict)
    jury_result: Optional[JuryResult] = None
    final_scores: dict[str, int] = field(default_factory=dict)
    winner: Optional[str] = None
    jury_score_computed: bool = False
    client_approved: bool = False
    refunded: bool = False
    settled_utc: Optional[datetime] = None

    def contributors(self) -> list[str]:
        """Contributors in submission order."""
        return [
            s.contributor
            for s in sorted(self.submissions.values(), key=lambda s: s.sequence)
        ]

    def needs_refund(self) -> bool:
        """True once scored with no valid juror input or nothing to judge."""
        if self.jury_result is None:
            return False
        return self.jury_result.is_empty or not self.submissions

    def ballots(self) -> dict[str, Vote] | dict[str, TierVote]:
        """Votes for this room's scoring mode."""
        if self.mode == ScoringMode.TIER:
            return self.tier_votes
        return self.votes

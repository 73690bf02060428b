"""Commit-reveal ledger — hidden juror votes, opened later.

Jurors first publish a hash of their vote during JURY_ACTIVE, then open
it during JURY_REVEAL. A reveal is accepted only if recomputing the
commitment from the opened values gives exactly the stored hash;
anything else raises IntegrityError and changes nothing. There is no
partial credit and no "close enough".

Flat mode:  commit(hash)       reveal(score, salt)
Tier mode:  commit_tier(hash)  reveal_tier(tier_a, tier_b, salt)

Constraints enforced:
- One commit and one reveal per juror per room.
- Only seated jurors may commit; only committed jurors may reveal.
- Flat scores lie within the policy score bounds.
- Tier lists have exactly the slot counts for the room's contributor
  count, name only contributors of the room, and are disjoint.
- The ledger never touches keycards. Participation for a successful
  reveal is credited when the room is scored (see the settlement engine).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from arbiter.crypto.commitments import (
    commitments_match,
    is_commitment_hash,
    score_commitment,
    tier_commitment,
)
from arbiter.errors import (
    DuplicateError,
    IntegrityError,
    NotFoundError,
    OutOfRangeError,
    TerminalStateError,
    UnauthorizedError,
    WrongPhaseError,
)
from arbiter.models.room import Room, RoomState, ScoringMode, TierVote, Vote
from arbiter.policy.resolver import PolicyResolver
from arbiter.scoring.aggregator import tier_slots

if TYPE_CHECKING:
    from arbiter.engine.rooms import RoomManager


def all_committed(room: Room) -> bool:
    """True if every seated juror has committed."""
    ballots = room.ballots()
    return bool(room.jury_pool) and all(j in ballots for j in room.jury_pool)


def all_revealed(room: Room) -> bool:
    """True if every seated juror has committed and revealed."""
    ballots = room.ballots()
    return bool(room.jury_pool) and all(
        j in ballots and ballots[j].revealed for j in room.jury_pool
    )


class CommitRevealLedger:
    """Records commitments and their openings on rooms.

    Usage:
        ledger = CommitRevealLedger(resolver, rooms)
        ledger.commit("juror-1", room_id, score_commitment(85, "s3cret"))
        ...  # room moves to JURY_REVEAL
        ledger.reveal("juror-1", room_id, 85, "s3cret")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        rooms: RoomManager,
    ) -> None:
        self._resolver = resolver
        self._rooms = rooms

    # ------------------------------------------------------------------
    # Flat mode
    # ------------------------------------------------------------------

    def commit(
        self,
        juror: str,
        room_id: str,
        commit_hash: str,
        now: Optional[datetime] = None,
    ) -> Vote:
        """Record a flat-mode commitment."""
        room = self._commit_guards(juror, room_id, commit_hash, ScoringMode.FLAT)
        vote = Vote(
            juror=juror,
            commit_hash=commit_hash,
            committed_utc=now or datetime.now(timezone.utc),
        )
        room.votes[juror] = vote
        return vote

    def reveal(
        self,
        juror: str,
        room_id: str,
        score: int,
        salt: str,
        now: Optional[datetime] = None,
    ) -> Vote:
        """Open a flat-mode commitment.

        Raises IntegrityError if H(score ‖ salt) differs from the commit.
        """
        room = self._reveal_guards(room_id, ScoringMode.FLAT)
        vote = room.votes.get(juror)
        if vote is None:
            raise NotFoundError(f"{room_id}: no commitment from {juror}")
        if vote.revealed:
            raise DuplicateError(f"{room_id}: {juror} has already revealed")

        low, high = self._resolver.score_bounds()
        if not self._resolver.is_valid_score(score):
            raise OutOfRangeError(f"Score must be in [{low}, {high}], got {score!r}")

        if not commitments_match(vote.commit_hash, score_commitment(score, salt)):
            raise IntegrityError(f"{room_id}: reveal from {juror} does not match commitment")
        vote.revealed = True
        vote.score = score
        vote.salt = salt
        vote.revealed_utc = now or datetime.now(timezone.utc)
        return vote

    # ------------------------------------------------------------------
    # Tier mode
    # ------------------------------------------------------------------

    def commit_tier(
        self,
        juror: str,
        room_id: str,
        commit_hash: str,
        now: Optional[datetime] = None,
    ) -> TierVote:
        """Record a tier-mode commitment."""
        room = self._commit_guards(juror, room_id, commit_hash, ScoringMode.TIER)
        vote = TierVote(
            juror=juror,
            commit_hash=commit_hash,
            committed_utc=now or datetime.now(timezone.utc),
        )
        room.tier_votes[juror] = vote
        return vote

    def reveal_tier(
        self,
        juror: str,
        room_id: str,
        tier_a: list[str],
        tier_b: list[str],
        salt: str,
        now: Optional[datetime] = None,
    ) -> TierVote:
        """Open a tier-mode commitment.

        Raises:
            OutOfRangeError: wrong slot counts, or duplicates within a list.
            NotFoundError: a named address is not a contributor of the room.
            DuplicateError: the lists overlap, or the juror already revealed.
            IntegrityError: the recomputed hash differs from the commit.
        """
        room = self._reveal_guards(room_id, ScoringMode.TIER)
        vote = room.tier_votes.get(juror)
        if vote is None:
            raise NotFoundError(f"{room_id}: no commitment from {juror}")
        if vote.revealed:
            raise DuplicateError(f"{room_id}: {juror} has already revealed")

        a_slots, b_slots = self.slots_for(room)
        if len(tier_a) != a_slots or len(tier_b) != b_slots:
            raise OutOfRangeError(
                f"{room_id}: tier slots are A={a_slots}, B={b_slots}; "
                f"got A={len(tier_a)}, B={len(tier_b)}"
            )
        if len(set(tier_a)) != len(tier_a) or len(set(tier_b)) != len(tier_b):
            raise OutOfRangeError(f"{room_id}: a tier list names the same contributor twice")
        strangers = sorted((set(tier_a) | set(tier_b)) - set(room.submissions))
        if strangers:
            raise NotFoundError(f"{room_id}: not contributors of this room: {strangers}")
        overlap = sorted(set(tier_a) & set(tier_b))
        if overlap:
            raise DuplicateError(f"{room_id}: placed in both Tier A and Tier B: {overlap}")

        if not commitments_match(vote.commit_hash, tier_commitment(tier_a, tier_b, salt)):
            raise IntegrityError(f"{room_id}: reveal from {juror} does not match commitment")
        vote.revealed = True
        vote.tier_a = list(tier_a)
        vote.tier_b = list(tier_b)
        vote.salt = salt
        vote.revealed_utc = now or datetime.now(timezone.utc)
        return vote

    def slots_for(self, room: Room) -> tuple[int, int]:
        """Tier A / Tier B slot counts for a room's contributor count."""
        policy = self._resolver.scoring()
        return tier_slots(
            len(room.submissions), policy.tier_a_percent, policy.tier_b_percent,
        )

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def all_committed(self, room_id: str) -> bool:
        return all_committed(self._rooms.require(room_id))

    def all_revealed(self, room_id: str) -> bool:
        return all_revealed(self._rooms.require(room_id))

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _commit_guards(
        self,
        juror: str,
        room_id: str,
        commit_hash: str,
        mode: ScoringMode,
    ) -> Room:
        room = self._open_room(room_id, mode)
        if room.state != RoomState.JURY_ACTIVE:
            raise WrongPhaseError(
                f"{room_id}: commits are only accepted in jury_active "
                f"(state: {room.state.value})"
            )
        if juror not in room.jury_pool:
            raise UnauthorizedError(f"{room_id}: {juror} is not on the jury")
        if juror in room.ballots():
            raise DuplicateError(f"{room_id}: {juror} has already committed")
        if not is_commitment_hash(commit_hash):
            raise OutOfRangeError("Commitment must match sha256:<64-hex-chars>")
        return room

    def _reveal_guards(self, room_id: str, mode: ScoringMode) -> Room:
        room = self._open_room(room_id, mode)
        if room.state != RoomState.JURY_REVEAL:
            raise WrongPhaseError(
                f"{room_id}: reveals are only accepted in jury_reveal "
                f"(state: {room.state.value})"
            )
        if room.jury_score_computed:
            raise WrongPhaseError(f"{room_id}: scores already computed, reveal window closed")
        return room

    def _open_room(self, room_id: str, mode: ScoringMode) -> Room:
        room = self._rooms.require(room_id)
        if room.state == RoomState.SETTLED:
            raise TerminalStateError(f"{room_id}: state is terminal ({room.state.value})")
        if room.mode != mode:
            raise WrongPhaseError(
                f"{room_id}: room scores in {room.mode.value} mode, not {mode.value}"
            )
        return room

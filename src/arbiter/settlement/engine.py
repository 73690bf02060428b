"""Settlement engine — dual-key payout and the zero-vote refund.

Payout requires both keys, read from the room itself and never taken
from the caller:
- Silver Key: the jury score has been computed (room.jury_score_computed)
- Gold Key:   the client has approved settlement (room.client_approved)

Jury participation is credited here, when a room is scored without a
refund: every juror who revealed, flagged or not, gets one increment.

On execute, the winner is the contributor with the strictly highest
final score; ties go to the earliest submission. The room is moved to
SETTLED, the vault is unlocked, the full reward is released to the
winner, and every contributor's keycard records the task and its score.

Scoring (variance detection then aggregation) is also driven from here.
If no valid juror input survives filtering, or nobody submitted, the
reward is refunded in full to the client, no keycard is touched (not
even the jury-participation credit earned by revealing), and the
room goes straight to SETTLED with no winner.

Side effects are limited to the room, the vault and the keycard sinks.
Event logging is handled by the service layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from arbiter.compensation.vault import EscrowVault
from arbiter.engine.rooms import RoomManager
from arbiter.engine.state_machine import RoomStateMachine
from arbiter.errors import (
    DeadlineError,
    DuplicateError,
    InsufficientFundsError,
    NotFoundError,
    UnauthorizedError,
    WrongPhaseError,
)
from arbiter.identity.keycard import JuryStatsSink, TaskStatsSink
from arbiter.models.room import JuryResult, Room, RoomState
from arbiter.scoring.aggregator import Aggregator
from arbiter.scoring.variance import VarianceDetector, VarianceReport


@dataclass(frozen=True)
class ScoringOutcome:
    """Result of running variance detection and aggregation on a room."""
    room_id: str
    result: JuryResult
    report: VarianceReport
    refunded: bool
    refund_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class SettlementOutcome:
    """Result of a successful settlement."""
    room_id: str
    winner: str
    amount: Decimal
    final_scores: dict[str, int] = field(default_factory=dict)


class SettlementEngine:
    """Computes jury results and settles rooms.

    Usage:
        engine = SettlementEngine(rooms, vault, detector, aggregator,
                                  jury_stats=keycards, task_stats=keycards)
        engine.score_room(room_id)         # JURY_REVEAL, after reveals
        rooms.finalize(room_id)
        engine.approve("client-1", room_id)
        outcome = engine.execute(room_id)
    """

    def __init__(
        self,
        rooms: RoomManager,
        vault: EscrowVault,
        detector: VarianceDetector,
        aggregator: Aggregator,
        jury_stats: JuryStatsSink,
        task_stats: TaskStatsSink,
    ) -> None:
        self._rooms = rooms
        self._vault = vault
        self._detector = detector
        self._aggregator = aggregator
        self._jury_stats = jury_stats
        self._task_stats = task_stats

    # ------------------------------------------------------------------
    # Scoring (Silver Key)
    # ------------------------------------------------------------------

    def score_room(self, room_id: str, now: Optional[datetime] = None) -> ScoringOutcome:
        """Run variance detection and aggregation on a JURY_REVEAL room.

        Allowed once the reveal deadline has passed or every juror has
        revealed, and only once per room.
        """
        room = self._rooms.require(room_id)
        RoomStateMachine.ensure_mutable(room)
        if room.state != RoomState.JURY_REVEAL:
            raise WrongPhaseError(
                f"{room_id}: scores are computed in jury_reveal (state: {room.state.value})"
            )
        if room.jury_score_computed:
            raise DuplicateError(f"{room_id}: jury scores already computed")
        if now is None:
            now = datetime.now(timezone.utc)
        if not self._rooms.reveal_window_over(room_id, now):
            raise DeadlineError(
                f"{room_id}: reveal deadline not reached and not every juror has revealed"
            )

        report = self._detector.detect(room)
        result = self._aggregator.aggregate(room, report.valid_jurors, report.flagged_jurors)
        self._detector.mark(room, report)
        room.jury_result = result
        room.jury_score_computed = True

        if room.needs_refund():
            vault = self._vault.refund_to_client(room, now=now)
            RoomStateMachine.apply_refund_transition(room)
            room.refunded = True
            room.settled_utc = now
            return ScoringOutcome(
                room_id=room_id,
                result=result,
                report=report,
                refunded=True,
                refund_amount=vault.amount,
            )

        for juror in self._revealed_jurors(room, report):
            self._jury_stats.increment_jury_participation(juror)
        self._detector.record_flags(report, self._jury_stats)
        return ScoringOutcome(room_id=room_id, result=result, report=report, refunded=False)

    # ------------------------------------------------------------------
    # Approval (Gold Key)
    # ------------------------------------------------------------------

    def approve(self, caller: str, room_id: str) -> Room:
        """Client approval of settlement. FINALIZED only, single use."""
        room = self._rooms.require(room_id)
        RoomStateMachine.ensure_mutable(room)
        if room.state != RoomState.FINALIZED:
            raise WrongPhaseError(
                f"{room_id}: settlement can only be approved in finalized "
                f"(state: {room.state.value})"
            )
        if caller != room.client:
            raise UnauthorizedError(f"{room_id}: only the client may approve settlement")
        if room.client_approved:
            raise DuplicateError(f"{room_id}: settlement already approved")
        room.client_approved = True
        return room

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, room_id: str, now: Optional[datetime] = None) -> SettlementOutcome:
        """Settle a FINALIZED room holding both keys. Anyone may call."""
        room = self._rooms.require(room_id)
        RoomStateMachine.validate_transition(room, RoomState.SETTLED)
        if not room.jury_score_computed or room.jury_result is None:
            raise WrongPhaseError(f"{room_id}: Silver Key missing (jury score not computed)")
        if not room.client_approved:
            raise WrongPhaseError(f"{room_id}: Gold Key missing (client has not approved)")
        if not room.submissions:
            raise NotFoundError(f"{room_id}: no submissions to settle")

        vault = self._vault.get_vault(room_id)
        if vault is None:
            raise NotFoundError(f"Unknown vault for room: {room_id}")
        if vault.balance < room.reward:
            raise InsufficientFundsError(
                f"Vault for {room_id} holds {vault.balance}, reward is {room.reward}"
            )

        finals = self._aggregator.final_scores(room, room.jury_result)
        winner = self.pick_winner(room, finals)
        if now is None:
            now = datetime.now(timezone.utc)

        RoomStateMachine.apply_transition(room, RoomState.SETTLED)
        self._vault.unlock(room, now=now)
        self._vault.release_to_winner(room_id, winner, room.reward, now=now)
        for contributor, score in finals.items():
            self._task_stats.add_task_completion(contributor, score)

        room.final_scores = finals
        room.winner = winner
        room.settled_utc = now
        return SettlementOutcome(
            room_id=room_id,
            winner=winner,
            amount=room.reward,
            final_scores=dict(finals),
        )

    @staticmethod
    def _revealed_jurors(room: Room, report: VarianceReport) -> list[str]:
        """Every juror who revealed, flagged or not, in jury-pool order."""
        revealed = set(report.valid_jurors) | set(report.flagged_jurors)
        return [j for j in room.jury_pool if j in revealed]

    @staticmethod
    def pick_winner(room: Room, finals: dict[str, int]) -> str:
        """Strictly highest final score; ties go to the earliest submission."""
        winner: Optional[str] = None
        best = -1
        for contributor in room.contributors():
            score = finals[contributor]
            if score > best:
                winner, best = contributor, score
        if winner is None:
            raise NotFoundError(f"{room.room_id}: no contributors to pick a winner from")
        return winner

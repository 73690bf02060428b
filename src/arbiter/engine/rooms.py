"""Room manager — owns every room and validates each lifecycle step.

The manager enforces, for every operation:
1. The room exists (NotFoundError).
2. The room is not SETTLED (TerminalStateError).
3. The step is on the transition graph or valid in the current phase
   (InvalidTransitionError / WrongPhaseError).
4. The caller holds the required role (UnauthorizedError).
5. Deadlines, ranges and uniqueness (DeadlineError, OutOfRangeError,
   DuplicateError).

All guards run before the first mutation, so a failed call leaves the
room exactly as it was. Escrow is taken through the EscrowVault at
creation; the vault stays locked until settlement or refund.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from arbiter.compensation.vault import EscrowVault
from arbiter.errors import (
    DeadlineError,
    DuplicateError,
    NotFoundError,
    NotInitializedError,
    OutOfRangeError,
    UnauthorizedError,
    WrongPhaseError,
)
from arbiter.engine.state_machine import RoomStateMachine
from arbiter.identity.keycard import IdentityGate
from arbiter.models.room import (
    Room,
    RoomDeadlines,
    RoomState,
    ScoringMode,
    Submission,
)
from arbiter.policy.resolver import PolicyResolver
from arbiter.review.eligibility import EligibilityRegistry
from arbiter.review.jury_selector import JurySelection, JurySelector
from arbiter.voting.commit_reveal import all_committed, all_revealed


# States in which the client may still score a submission.
_CLIENT_SCORING_STATES = frozenset({
    RoomState.OPEN,
    RoomState.CLOSED,
    RoomState.JURY_ACTIVE,
    RoomState.JURY_REVEAL,
})


class RoomManager:
    """Creates rooms and drives them through their lifecycle.

    Usage:
        rooms = RoomManager(resolver, vault, keycards, registry)
        rooms.initialize()
        room = rooms.create("client-1", "design", "sha256:...", Decimal("500"), deadlines)
        rooms.open("client-1", room.room_id)
        rooms.submit("worker-1", room.room_id, "sha256:...")
        rooms.close("client-1", room.room_id)
        rooms.assign_jury(room.room_id)
        rooms.start_jury(room.room_id)
        ...
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        vault: EscrowVault,
        identity: IdentityGate,
        registry: EligibilityRegistry,
        selector: Optional[JurySelector] = None,
    ) -> None:
        self._resolver = resolver
        self._vault = vault
        self._identity = identity
        self._registry = registry
        self._selector = selector or JurySelector()
        self._rooms: dict[str, Room] = {}
        self._room_counter: Optional[int] = None
        self._submission_counter = 0

    def initialize(self) -> None:
        """Create the room-id counter. Must be called exactly once."""
        if self._room_counter is not None:
            raise DuplicateError("Room manager already initialized")
        self._room_counter = 0

    @property
    def initialized(self) -> bool:
        return self._room_counter is not None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        client: str,
        category: str,
        task_hash: str,
        reward: Decimal,
        deadlines: RoomDeadlines,
        mode: ScoringMode = ScoringMode.FLAT,
        now: Optional[datetime] = None,
    ) -> Room:
        """Create a room in INIT with its reward locked in a vault.

        Raises:
            NotInitializedError: initialize() was never called.
            UnauthorizedError: the client holds no keycard.
            OutOfRangeError: blank fields or reward below the minimum.
            DeadlineError: deadlines not strictly increasing after now.
            InsufficientFundsError: the client cannot cover the reward.
        """
        if self._room_counter is None:
            raise NotInitializedError("Room manager not initialized — call initialize() first")
        if now is None:
            now = datetime.now(timezone.utc)

        if not self._identity.has_identity(client):
            raise UnauthorizedError(f"{client} holds no keycard")
        if not category.strip():
            raise OutOfRangeError("Room category must be non-blank")
        if not task_hash.strip():
            raise OutOfRangeError("Task hash must be non-blank")
        if reward < self._resolver.min_reward():
            raise OutOfRangeError(
                f"Reward {reward} is below the minimum {self._resolver.min_reward()}"
            )
        if not (now < deadlines.submission_utc < deadlines.commit_utc < deadlines.reveal_utc):
            raise DeadlineError(
                "Deadlines must satisfy now < submission < commit < reveal"
            )

        room_id = f"ROOM-{self._room_counter + 1:08d}"
        # Vault first: if the client cannot pay, no room is recorded.
        self._vault.create_and_lock(room_id, client, reward, now=now)
        self._room_counter += 1

        room = Room(
            room_id=room_id,
            client=client,
            category=category.strip(),
            task_hash=task_hash,
            reward=reward,
            deadlines=deadlines,
            created_utc=now,
            mode=mode,
        )
        self._rooms[room_id] = room
        return room

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    def open(self, caller: str, room_id: str) -> RoomState:
        """INIT → OPEN. Client only. Returns the previous state."""
        room = self._get(room_id)
        RoomStateMachine.validate_transition(room, RoomState.OPEN)
        self._require_client(room, caller)
        return RoomStateMachine.apply_transition(room, RoomState.OPEN)

    def submit(
        self,
        caller: str,
        room_id: str,
        content_hash: str,
        now: Optional[datetime] = None,
    ) -> Submission:
        """Record a contributor's entry. One per contributor, OPEN only."""
        room = self._get(room_id)
        RoomStateMachine.ensure_mutable(room)
        self._require_phase(room, RoomState.OPEN, "submit")
        if now is None:
            now = datetime.now(timezone.utc)
        if now >= room.deadlines.submission_utc:
            raise DeadlineError(f"{room_id}: submission deadline has passed")
        if caller == room.client:
            raise UnauthorizedError(f"{room_id}: the client cannot submit to its own room")
        if not self._identity.has_identity(caller):
            raise UnauthorizedError(f"{caller} holds no keycard")
        if caller in room.submissions:
            raise DuplicateError(f"{room_id}: {caller} has already submitted")
        if not content_hash.strip():
            raise OutOfRangeError("Content hash must be non-blank")

        self._submission_counter += 1
        submission = Submission(
            contributor=caller,
            content_hash=content_hash,
            submitted_utc=now,
            sequence=self._submission_counter,
        )
        room.submissions[caller] = submission
        return submission

    def close(
        self,
        caller: str,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> RoomState:
        """OPEN → CLOSED. Client any time; anyone once overdue."""
        room = self._get(room_id)
        RoomStateMachine.validate_transition(room, RoomState.CLOSED)
        if now is None:
            now = datetime.now(timezone.utc)
        overdue = now >= room.deadlines.submission_utc
        if caller != room.client and not overdue:
            raise UnauthorizedError(
                f"{room_id}: only the client may close before the submission deadline"
            )
        return RoomStateMachine.apply_transition(room, RoomState.CLOSED)

    def assign_jury(self, room_id: str) -> JurySelection:
        """Seat a jury for a CLOSED room from its category's eligible pool.

        The client and every contributor are removed from the pool so
        nobody judges their own room.
        """
        room = self._get(room_id)
        RoomStateMachine.ensure_mutable(room)
        self._require_phase(room, RoomState.CLOSED, "assign a jury")
        if room.jury_pool:
            raise DuplicateError(f"{room_id}: jury already assigned")

        excluded = {room.client, *room.submissions}
        pool = [
            j for j in self._registry.eligible_jurors(room.category)
            if j not in excluded
        ]
        selection = self._selector.select(room_id, pool, self._resolver.jury_size())
        room.jury_pool = list(selection.jurors)
        return selection

    def start_jury(self, room_id: str) -> RoomState:
        """CLOSED → JURY_ACTIVE. Requires an assigned jury."""
        room = self._get(room_id)
        RoomStateMachine.validate_transition(room, RoomState.JURY_ACTIVE)
        if not room.jury_pool:
            raise WrongPhaseError(f"{room_id}: no jury assigned")
        return RoomStateMachine.apply_transition(room, RoomState.JURY_ACTIVE)

    def start_reveal(
        self,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> RoomState:
        """JURY_ACTIVE → JURY_REVEAL once the commit window is over.

        The window is over when the commit deadline has passed or every
        seated juror has committed.
        """
        room = self._get(room_id)
        RoomStateMachine.validate_transition(room, RoomState.JURY_REVEAL)
        if now is None:
            now = datetime.now(timezone.utc)
        if now < room.deadlines.commit_utc and not all_committed(room):
            raise DeadlineError(
                f"{room_id}: commit deadline not reached and not every juror has committed"
            )
        return RoomStateMachine.apply_transition(room, RoomState.JURY_REVEAL)

    def reveal_window_over(self, room_id: str, now: Optional[datetime] = None) -> bool:
        """True once the reveal deadline passed or every juror revealed."""
        room = self._get(room_id)
        if now is None:
            now = datetime.now(timezone.utc)
        return now >= room.deadlines.reveal_utc or all_revealed(room)

    def finalize(self, room_id: str) -> RoomState:
        """JURY_REVEAL → FINALIZED. Scores must already be computed."""
        room = self._get(room_id)
        RoomStateMachine.validate_transition(room, RoomState.FINALIZED)
        if not room.jury_score_computed:
            raise WrongPhaseError(f"{room_id}: jury scores have not been computed")
        return RoomStateMachine.apply_transition(room, RoomState.FINALIZED)

    def set_client_score(
        self,
        caller: str,
        room_id: str,
        contributor: str,
        score: int,
    ) -> Submission:
        """Client scores a submission. Allowed until the room is finalized."""
        room = self._get(room_id)
        RoomStateMachine.ensure_mutable(room)
        if room.state not in _CLIENT_SCORING_STATES:
            raise WrongPhaseError(
                f"{room_id}: client scores cannot change in state {room.state.value}"
            )
        self._require_client(room, caller)
        submission = room.submissions.get(contributor)
        if submission is None:
            raise NotFoundError(f"{room_id}: no submission from {contributor}")
        low, high = self._resolver.score_bounds()
        if not self._resolver.is_valid_score(score):
            raise OutOfRangeError(f"Client score must be in [{low}, {high}], got {score!r}")
        submission.client_score = score
        return submission

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        """Look up a room by ID."""
        return self._rooms.get(room_id)

    def require(self, room_id: str) -> Room:
        """Look up a room, raising NotFoundError if absent."""
        return self._get(room_id)

    def all_rooms(self) -> list[Room]:
        return list(self._rooms.values())

    @property
    def count(self) -> int:
        return len(self._rooms)

    # ------------------------------------------------------------------
    # Rollback support (service layer only)
    # ------------------------------------------------------------------

    def counters(self) -> tuple[Optional[int], int]:
        return self._room_counter, self._submission_counter

    def restore_counters(self, counters: tuple[Optional[int], int]) -> None:
        self._room_counter, self._submission_counter = counters

    def _replace(self, room: Room) -> None:
        self._rooms[room.room_id] = room

    def _drop(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _get(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotFoundError(f"Room not found: {room_id}")
        return room

    @staticmethod
    def _require_client(room: Room, caller: str) -> None:
        if caller != room.client:
            raise UnauthorizedError(f"{room.room_id}: only the client may do this")

    @staticmethod
    def _require_phase(room: Room, expected: RoomState, action: str) -> None:
        if room.state != expected:
            raise WrongPhaseError(
                f"{room.room_id}: cannot {action} in state {room.state.value} "
                f"(requires {expected.value})"
            )

"""Room state machine — enforces the fixed lifecycle graph.

Room lifecycle:
    INIT → OPEN → CLOSED → JURY_ACTIVE → JURY_REVEAL → FINALIZED → SETTLED

No skipping, no going back. SETTLED is terminal: any attempt to leave
it raises TerminalStateError, distinct from InvalidTransitionError, so
callers can tell "wrong order" from "already done".

The one edge off the linear path is JURY_REVEAL → SETTLED, taken only
when the jury produced zero valid votes and the reward is refunded.
It is not reachable through apply_transition.

Fail-closed: invalid transitions raise. There are no implicit
transitions.
"""

from __future__ import annotations

from arbiter.errors import InvalidTransitionError, TerminalStateError
from arbiter.models.room import Room, RoomState


# Valid transitions: {from_state: {allowed_to_states}}
_TRANSITIONS: dict[RoomState, set[RoomState]] = {
    RoomState.INIT: {RoomState.OPEN},
    RoomState.OPEN: {RoomState.CLOSED},
    RoomState.CLOSED: {RoomState.JURY_ACTIVE},
    RoomState.JURY_ACTIVE: {RoomState.JURY_REVEAL},
    RoomState.JURY_REVEAL: {RoomState.FINALIZED},
    RoomState.FINALIZED: {RoomState.SETTLED},
    # Terminal state — no outgoing transitions
    RoomState.SETTLED: set(),
}

_REFUND_TRANSITION = (RoomState.JURY_REVEAL, RoomState.SETTLED)


class RoomStateMachine:
    """Validates and applies room state transitions.

    Pure computation over a Room. Side effects (event logging, vault
    movement) are handled by the callers.
    """

    @staticmethod
    def validate_transition(room: Room, target: RoomState) -> None:
        """Raise if moving room to target is not allowed."""
        current = room.state
        if RoomStateMachine.is_terminal(current):
            raise TerminalStateError(
                f"{room.room_id}: state is terminal ({current.value})"
            )
        allowed = _TRANSITIONS.get(current, set())
        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            raise InvalidTransitionError(
                f"Invalid room transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            )

    @staticmethod
    def apply_transition(room: Room, target: RoomState) -> RoomState:
        """Validate and apply a transition. Returns the previous state."""
        RoomStateMachine.validate_transition(room, target)
        previous = room.state
        room.state = target
        return previous

    @staticmethod
    def apply_refund_transition(room: Room) -> RoomState:
        """Move a room straight to SETTLED on the zero-valid-votes path."""
        if RoomStateMachine.is_terminal(room.state):
            raise TerminalStateError(
                f"{room.room_id}: state is terminal ({room.state.value})"
            )
        if (room.state, RoomState.SETTLED) != _REFUND_TRANSITION:
            raise InvalidTransitionError(
                f"Invalid refund transition: {room.state.value} → settled"
            )
        previous = room.state
        room.state = RoomState.SETTLED
        return previous

    @staticmethod
    def ensure_mutable(room: Room) -> None:
        """Raise TerminalStateError if the room can no longer change."""
        if RoomStateMachine.is_terminal(room.state):
            raise TerminalStateError(
                f"{room.room_id}: state is terminal ({room.state.value})"
            )

    @staticmethod
    def is_terminal(state: RoomState) -> bool:
        return state == RoomState.SETTLED

    @staticmethod
    def valid_transitions(state: RoomState) -> set[RoomState]:
        """Return the set of valid target states from the given state."""
        return set(_TRANSITIONS.get(state, set()))

"""Tests for the room state machine — lifecycle transitions."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from arbiter.engine.state_machine import RoomStateMachine
from arbiter.errors import ErrorKind, InvalidTransitionError, TerminalStateError
from arbiter.models.room import Room, RoomDeadlines, RoomState


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_room(state: RoomState = RoomState.INIT) -> Room:
    now = _now()
    return Room(
        room_id="ROOM-00000001",
        client="client-1",
        category="design",
        task_hash="sha256:" + "a" * 64,
        reward=Decimal("500"),
        deadlines=RoomDeadlines(
            submission_utc=now + timedelta(days=1),
            commit_utc=now + timedelta(days=2),
            reveal_utc=now + timedelta(days=3),
        ),
        created_utc=now,
        state=state,
    )


_LINEAR = [
    RoomState.INIT,
    RoomState.OPEN,
    RoomState.CLOSED,
    RoomState.JURY_ACTIVE,
    RoomState.JURY_REVEAL,
    RoomState.FINALIZED,
    RoomState.SETTLED,
]


class TestValidTransitions:
    @pytest.mark.parametrize("current,target", list(zip(_LINEAR, _LINEAR[1:])))
    def test_each_forward_step(self, current: RoomState, target: RoomState) -> None:
        room = _make_room(current)
        RoomStateMachine.validate_transition(room, target)

    def test_apply_returns_previous_state(self) -> None:
        room = _make_room(RoomState.OPEN)
        previous = RoomStateMachine.apply_transition(room, RoomState.CLOSED)
        assert previous == RoomState.OPEN
        assert room.state == RoomState.CLOSED

    def test_full_walk(self) -> None:
        room = _make_room()
        for target in _LINEAR[1:]:
            RoomStateMachine.apply_transition(room, target)
        assert room.state == RoomState.SETTLED


class TestInvalidTransitions:
    def test_cannot_skip_open(self) -> None:
        room = _make_room(RoomState.INIT)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.validate_transition(room, RoomState.CLOSED)

    def test_cannot_skip_to_reveal(self) -> None:
        room = _make_room(RoomState.CLOSED)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.apply_transition(room, RoomState.JURY_REVEAL)
        assert room.state == RoomState.CLOSED

    def test_cannot_go_backwards(self) -> None:
        room = _make_room(RoomState.JURY_ACTIVE)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.validate_transition(room, RoomState.OPEN)

    def test_cannot_self_loop(self) -> None:
        room = _make_room(RoomState.OPEN)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.validate_transition(room, RoomState.OPEN)

    def test_finalize_is_not_a_shortcut_to_settled_from_reveal(self) -> None:
        room = _make_room(RoomState.JURY_REVEAL)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.apply_transition(room, RoomState.SETTLED)

    def test_error_kind(self) -> None:
        room = _make_room(RoomState.INIT)
        with pytest.raises(InvalidTransitionError) as exc:
            RoomStateMachine.validate_transition(room, RoomState.FINALIZED)
        assert exc.value.kind == ErrorKind.INVALID_TRANSITION


class TestTerminalState:
    @pytest.mark.parametrize("target", _LINEAR)
    def test_settled_rejects_everything(self, target: RoomState) -> None:
        room = _make_room(RoomState.SETTLED)
        with pytest.raises(TerminalStateError) as exc:
            RoomStateMachine.validate_transition(room, target)
        assert exc.value.kind == ErrorKind.TERMINAL_STATE

    def test_ensure_mutable(self) -> None:
        RoomStateMachine.ensure_mutable(_make_room(RoomState.FINALIZED))
        with pytest.raises(TerminalStateError):
            RoomStateMachine.ensure_mutable(_make_room(RoomState.SETTLED))

    def test_terminal_is_distinct_from_invalid(self) -> None:
        assert not issubclass(TerminalStateError, InvalidTransitionError)

    def test_valid_transitions_from_settled_is_empty(self) -> None:
        assert RoomStateMachine.valid_transitions(RoomState.SETTLED) == set()
        assert RoomStateMachine.is_terminal(RoomState.SETTLED)


class TestRefundTransition:
    def test_reveal_to_settled(self) -> None:
        room = _make_room(RoomState.JURY_REVEAL)
        previous = RoomStateMachine.apply_refund_transition(room)
        assert previous == RoomState.JURY_REVEAL
        assert room.state == RoomState.SETTLED

    @pytest.mark.parametrize("state", [
        RoomState.INIT, RoomState.OPEN, RoomState.CLOSED,
        RoomState.JURY_ACTIVE, RoomState.FINALIZED,
    ])
    def test_refund_only_from_reveal(self, state: RoomState) -> None:
        room = _make_room(state)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.apply_refund_transition(room)

    def test_refund_from_settled_is_terminal(self) -> None:
        room = _make_room(RoomState.SETTLED)
        with pytest.raises(TerminalStateError):
            RoomStateMachine.apply_refund_transition(room)


_EDGES = set(zip(_LINEAR, _LINEAR[1:]))
_NON_EDGES = [
    (current, target)
    for current in RoomState
    for target in RoomState
    if (current, target) not in _EDGES
]


class TestExhaustiveNonEdges:
    """Every (from, to) pair off the lifecycle graph is rejected."""

    @pytest.mark.parametrize(
        "current,target",
        [(c, t) for c, t in _NON_EDGES if c != RoomState.SETTLED],
    )
    def test_invalid_transition(self, current: RoomState, target: RoomState) -> None:
        room = _make_room(current)
        with pytest.raises(InvalidTransitionError):
            RoomStateMachine.apply_transition(room, target)
        assert room.state == current

    @pytest.mark.parametrize(
        "target",
        [t for c, t in _NON_EDGES if c == RoomState.SETTLED],
    )
    def test_from_settled_is_terminal(self, target: RoomState) -> None:
        room = _make_room(RoomState.SETTLED)
        with pytest.raises(TerminalStateError):
            RoomStateMachine.apply_transition(room, target)
        assert room.state == RoomState.SETTLED

    def test_sweep_covers_every_pair(self) -> None:
        states = list(RoomState)
        assert len(_NON_EDGES) + len(_EDGES) == len(states) ** 2

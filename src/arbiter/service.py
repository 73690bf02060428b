"""Arbiter service — unified facade for the room protocol.

This is the primary interface for programmatic access to Arbiter.
It orchestrates all subsystems:
- Room lifecycle (create, open, submit, close, jury phases, finalize)
- Escrow custody (vault locked at creation, released or refunded once)
- Jury selection (deterministic draw from the category's eligible pool)
- Commit-reveal voting (flat scores or tier rankings)
- Scoring (variance detection, aggregation, zero-vote refund)
- Dual-key settlement (jury score + client approval)
- Audit trail (append-only event log)

Every operation is atomic. The service snapshots everything the
operation could touch (the room, its vault, treasury balances, keycards
and counters), runs the engines, then records the resulting events in
a single all-or-nothing batch. If any guard fails or the event log
rejects the batch, the snapshot is restored in place and a failed
ServiceResult carrying the error kind is returned. Nothing is retried.
Event ids are never reused: ids taken by a failed batch are skipped.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from arbiter.compensation.treasury import Treasury
from arbiter.compensation.vault import EscrowVault
from arbiter.engine.rooms import RoomManager
from arbiter.errors import ArbiterError, DuplicateError, ErrorKind, NotInitializedError
from arbiter.identity.keycard import KeycardLedger
from arbiter.models.keycard import Keycard
from arbiter.models.room import Room, RoomDeadlines, RoomState, ScoringMode
from arbiter.models.vault import VaultRecord
from arbiter.persistence.event_log import EventKind, EventLog, EventRecord
from arbiter.policy.resolver import PolicyResolver
from arbiter.review.eligibility import EligibilityRegistry
from arbiter.review.jury_selector import JurySelector
from arbiter.scoring.aggregator import Aggregator
from arbiter.scoring.variance import VarianceDetector
from arbiter.settlement.engine import SettlementEngine
from arbiter.voting.commit_reveal import CommitRevealLedger


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class _PendingEvent:
    kind: EventKind
    actor_id: str
    payload: dict[str, Any]


_Operation = Callable[[], tuple[dict[str, Any], list[_PendingEvent]]]


@dataclass
class _Snapshot:
    room_id: Optional[str]
    room: Optional[Room]
    vault: Optional[VaultRecord]
    balances: dict[str, Decimal]
    keycards: dict[str, Keycard]
    counters: tuple[Optional[int], int]


class ArbiterService:
    """Unified room protocol facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = ArbiterService(resolver)
        service.initialize()

        service.mint_keycard("client-1")
        service.deposit("client-1", Decimal("1000000"))
        result = service.create_room("client-1", "design", "sha256:...",
                                     Decimal("1000000"), deadlines)
        room_id = result.data["room_id"]
        service.open_room("client-1", room_id)
        service.submit_entry("worker-1", room_id, "sha256:...")
        service.close_room("client-1", room_id)
        service.assign_jury("client-1", room_id)
        service.start_jury_phase("client-1", room_id)
        service.commit_vote("juror-1", room_id, score_commitment(85, "salt"))
        service.start_reveal_phase("client-1", room_id)
        service.reveal_vote("juror-1", room_id, 85, "salt")
        service.compute_scores("client-1", room_id)
        service.set_client_score("client-1", room_id, "worker-1", 90)
        service.finalize_room("client-1", room_id)
        service.approve_settlement("client-1", room_id)
        service.execute_settlement("anyone", room_id)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        treasury: Optional[Treasury] = None,
        keycards: Optional[KeycardLedger] = None,
        registry: Optional[EligibilityRegistry] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._treasury = treasury or Treasury()
        self._keycards = keycards or KeycardLedger()
        self._registry = registry or EligibilityRegistry()
        self._event_log = event_log or EventLog()

        self._vault = EscrowVault(self._treasury)
        self._rooms = RoomManager(
            resolver, self._vault, self._keycards, self._registry, JurySelector(),
        )
        self._ledger = CommitRevealLedger(resolver, self._rooms)
        self._detector = VarianceDetector(resolver)
        self._aggregator = Aggregator(resolver)
        self._settlement = SettlementEngine(
            self._rooms,
            self._vault,
            self._detector,
            self._aggregator,
            jury_stats=self._keycards,
            task_stats=self._keycards,
        )
        self._event_counter: Optional[int] = None

    def initialize(self) -> ServiceResult:
        """Bootstrap the room and event counters. Call exactly once."""
        if self._event_counter is not None:
            err = DuplicateError("Service already initialized")
            return ServiceResult(success=False, errors=[str(err)], error_kind=err.kind)
        self._rooms.initialize()
        # Continue numbering after any events recovered from disk.
        self._event_counter = _last_event_number(self._event_log)
        return ServiceResult(success=True)

    # ------------------------------------------------------------------
    # Onboarding (identity, funds, eligibility)
    # ------------------------------------------------------------------

    def mint_keycard(self, owner: str, now: Optional[datetime] = None) -> ServiceResult:
        """Mint an owner's single, non-transferable keycard."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            card = self._keycards.mint(owner, now=now)
            return {"owner": card.owner}, []
        return self._transact(None, op)

    def deposit(self, address: str, amount: Decimal) -> ServiceResult:
        """Credit an address in the treasury."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            balance = self._treasury.deposit(address, amount)
            return {"address": address, "balance": str(balance)}, []
        return self._transact(None, op)

    def register_juror(self, category: str, juror: str) -> ServiceResult:
        """Make a juror eligible for rooms of a category."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._registry.add(category, juror)
            return {"category": category, "juror": juror}, []
        return self._transact(None, op)

    # ------------------------------------------------------------------
    # Room lifecycle
    # ------------------------------------------------------------------

    def create_room(
        self,
        client: str,
        category: str,
        task_hash: str,
        reward: Decimal,
        deadlines: RoomDeadlines,
        mode: ScoringMode = ScoringMode.FLAT,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a room and lock its reward in escrow."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            room = self._rooms.create(
                client, category, task_hash, reward, deadlines, mode=mode, now=now,
            )
            data = {
                "room_id": room.room_id,
                "state": room.state.value,
                "mode": room.mode.value,
                "reward": str(room.reward),
            }
            return data, [_PendingEvent(EventKind.ROOM_CREATED, client, {
                "room_id": room.room_id,
                "category": room.category,
                "task_hash": room.task_hash,
                "reward": str(room.reward),
                "mode": room.mode.value,
            })]
        return self._transact(None, op)

    def open_room(self, caller: str, room_id: str) -> ServiceResult:
        return self._transition(caller, room_id, lambda: self._rooms.open(caller, room_id))

    def submit_entry(
        self,
        caller: str,
        room_id: str,
        content_hash: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Record a contributor's submission."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            submission = self._rooms.submit(caller, room_id, content_hash, now=now)
            return {"room_id": room_id, "contributor": caller}, [
                _PendingEvent(EventKind.SUBMISSION_CREATED, caller, {
                    "room_id": room_id,
                    "content_hash": submission.content_hash,
                    "sequence": submission.sequence,
                }),
            ]
        return self._transact(room_id, op)

    def close_room(
        self,
        caller: str,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._transition(caller, room_id, lambda: self._rooms.close(caller, room_id, now=now))

    def assign_jury(self, caller: str, room_id: str) -> ServiceResult:
        """Draw the jury for a CLOSED room."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            selection = self._rooms.assign_jury(room_id)
            return {"room_id": room_id, "jurors": list(selection.jurors)}, [
                _PendingEvent(EventKind.JURY_ASSIGNED, caller, {
                    "room_id": room_id,
                    "jurors": list(selection.jurors),
                    "pool_size": selection.pool_size,
                }),
            ]
        return self._transact(room_id, op)

    def start_jury_phase(self, caller: str, room_id: str) -> ServiceResult:
        return self._transition(caller, room_id, lambda: self._rooms.start_jury(room_id))

    def start_reveal_phase(
        self,
        caller: str,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._transition(caller, room_id, lambda: self._rooms.start_reveal(room_id, now=now))

    def finalize_room(self, caller: str, room_id: str) -> ServiceResult:
        return self._transition(caller, room_id, lambda: self._rooms.finalize(room_id))

    def set_client_score(
        self,
        caller: str,
        room_id: str,
        contributor: str,
        score: int,
    ) -> ServiceResult:
        """Client scores one contributor's submission."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._rooms.set_client_score(caller, room_id, contributor, score)
            return {"room_id": room_id, "contributor": contributor, "score": score}, [
                _PendingEvent(EventKind.CLIENT_SCORED, caller, {
                    "room_id": room_id,
                    "contributor": contributor,
                    "score": score,
                }),
            ]
        return self._transact(room_id, op)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def commit_vote(
        self,
        juror: str,
        room_id: str,
        commit_hash: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._ledger.commit(juror, room_id, commit_hash, now=now)
            return {"room_id": room_id, "juror": juror}, [
                _PendingEvent(EventKind.VOTE_COMMITTED, juror, {
                    "room_id": room_id, "commit_hash": commit_hash,
                }),
            ]
        return self._transact(room_id, op)

    def commit_tier_vote(
        self,
        juror: str,
        room_id: str,
        commit_hash: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._ledger.commit_tier(juror, room_id, commit_hash, now=now)
            return {"room_id": room_id, "juror": juror}, [
                _PendingEvent(EventKind.TIER_VOTE_COMMITTED, juror, {
                    "room_id": room_id, "commit_hash": commit_hash,
                }),
            ]
        return self._transact(room_id, op)

    def reveal_vote(
        self,
        juror: str,
        room_id: str,
        score: int,
        salt: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._ledger.reveal(juror, room_id, score, salt, now=now)
            return {"room_id": room_id, "juror": juror, "score": score}, [
                _PendingEvent(EventKind.VOTE_REVEALED, juror, {
                    "room_id": room_id, "score": score,
                }),
            ]
        return self._transact(room_id, op)

    def reveal_tier_vote(
        self,
        juror: str,
        room_id: str,
        tier_a: list[str],
        tier_b: list[str],
        salt: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._ledger.reveal_tier(juror, room_id, tier_a, tier_b, salt, now=now)
            return {"room_id": room_id, "juror": juror}, [
                _PendingEvent(EventKind.TIER_VOTE_REVEALED, juror, {
                    "room_id": room_id,
                    "tier_a": list(tier_a),
                    "tier_b": list(tier_b),
                }),
            ]
        return self._transact(room_id, op)

    # ------------------------------------------------------------------
    # Scoring and settlement
    # ------------------------------------------------------------------

    def compute_scores(
        self,
        caller: str,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Run variance detection and aggregation (the Silver Key).

        With zero valid votes the room is refunded and settled here.
        """
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            outcome = self._settlement.score_room(room_id, now=now)
            result = outcome.result
            events = [
                _PendingEvent(EventKind.VARIANCE_FLAGGED, juror, {
                    "room_id": room_id,
                    "distance": outcome.report.distances.get(juror),
                })
                for juror in result.flagged_jurors
            ]
            data: dict[str, Any] = {
                "room_id": room_id,
                "valid_jurors": list(result.valid_jurors),
                "flagged_jurors": list(result.flagged_jurors),
                "refunded": outcome.refunded,
            }
            if result.mode == ScoringMode.FLAT:
                data["jury_score"] = result.jury_score
            else:
                data["majority_tiers"] = {
                    c: t.name for c, t in result.majority_tiers.items()
                }
            events.append(_PendingEvent(EventKind.SCORES_COMPUTED, caller, {
                "room_id": room_id,
                "valid_jurors": list(result.valid_jurors),
                "flagged_jurors": list(result.flagged_jurors),
                "jury_score": result.jury_score,
            }))
            if outcome.refunded:
                data["refund_amount"] = str(outcome.refund_amount)
                data["state"] = RoomState.SETTLED.value
                events.append(_PendingEvent(EventKind.ZERO_VOTES_REFUNDED, caller, {
                    "room_id": room_id, "amount": str(outcome.refund_amount),
                }))
                events.append(self._state_event(
                    caller, room_id, RoomState.JURY_REVEAL, RoomState.SETTLED,
                ))
            return data, events
        return self._transact(room_id, op)

    def approve_settlement(self, caller: str, room_id: str) -> ServiceResult:
        """Client approval of settlement (the Gold Key)."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            self._settlement.approve(caller, room_id)
            return {"room_id": room_id}, [
                _PendingEvent(EventKind.SETTLEMENT_APPROVED, caller, {"room_id": room_id}),
            ]
        return self._transact(room_id, op)

    def execute_settlement(
        self,
        caller: str,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Pay the winner. Anyone may call once both keys are present."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            outcome = self._settlement.execute(room_id, now=now)
            data = {
                "room_id": room_id,
                "winner": outcome.winner,
                "amount": str(outcome.amount),
                "final_scores": dict(outcome.final_scores),
                "state": RoomState.SETTLED.value,
            }
            return data, [
                self._state_event(caller, room_id, RoomState.FINALIZED, RoomState.SETTLED),
                _PendingEvent(EventKind.ROOM_SETTLED, caller, {
                    "room_id": room_id,
                    "winner": outcome.winner,
                    "amount": str(outcome.amount),
                    "final_scores": dict(outcome.final_scores),
                }),
            ]
        return self._transact(room_id, op)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get_room(room_id)

    def get_vault(self, room_id: str) -> Optional[VaultRecord]:
        return self._vault.get_vault(room_id)

    def get_keycard(self, owner: str) -> Optional[Keycard]:
        return self._keycards.get(owner)

    def balance_of(self, address: str) -> Decimal:
        return self._treasury.balance_of(address)

    def all_committed(self, room_id: str) -> bool:
        return self._ledger.all_committed(room_id)

    def all_revealed(self, room_id: str) -> bool:
        return self._ledger.all_revealed(room_id)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def status(self) -> dict[str, Any]:
        """Summary of rooms, custody and audit trail."""
        rooms = self._rooms.all_rooms()
        by_state: dict[str, int] = {}
        for room in rooms:
            by_state[room.state.value] = by_state.get(room.state.value, 0) + 1
        locked = Decimal("0")
        for room in rooms:
            vault = self._vault.get_vault(room.room_id)
            if vault is not None and vault.locked:
                locked += vault.balance
        return {
            "initialized": self._event_counter is not None,
            "policy_version": self._resolver.version,
            "rooms": {"total": len(rooms), "by_state": by_state},
            "escrow": {"locked_total": str(locked)},
            "keycards": self._keycards.count,
            "events": self._event_log.count,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        caller: str,
        room_id: str,
        step: Callable[[], RoomState],
    ) -> ServiceResult:
        """Run a lifecycle step and record its state_changed event."""
        def op() -> tuple[dict[str, Any], list[_PendingEvent]]:
            previous = step()
            room = self._rooms.require(room_id)
            return {"room_id": room_id, "state": room.state.value}, [
                self._state_event(caller, room_id, previous, room.state),
            ]
        return self._transact(room_id, op)

    @staticmethod
    def _state_event(
        caller: str,
        room_id: str,
        previous: RoomState,
        current: RoomState,
    ) -> _PendingEvent:
        return _PendingEvent(EventKind.STATE_CHANGED, caller, {
            "room_id": room_id,
            "from": previous.value,
            "to": current.value,
        })

    def _transact(self, room_id: Optional[str], operation: _Operation) -> ServiceResult:
        """Run an operation atomically.

        Fail-closed: if any guard raises or the audit event cannot be
        recorded, every mutation made by the operation is rolled back.
        """
        if self._event_counter is None:
            err = NotInitializedError("Service not initialized — call initialize() first")
            return ServiceResult(success=False, errors=[str(err)], error_kind=err.kind)

        snapshot = self._snapshot(room_id)
        try:
            data, events = operation()
            self._record_events(events)
        except ArbiterError as e:
            self._restore(snapshot)
            return ServiceResult(success=False, errors=[str(e)], error_kind=e.kind)
        except (ValueError, OSError) as e:
            self._restore(snapshot)
            return ServiceResult(success=False, errors=[f"Event log failure: {e}"])
        return ServiceResult(success=True, data=data)

    def _record_events(self, events: list[_PendingEvent]) -> None:
        """Number the events and append them to the log in one batch.

        The counter only moves forward. Ids taken by a batch that fails
        to write are skipped, never handed out again.
        """
        now = datetime.now(timezone.utc)
        records = []
        for pending in events:
            self._event_counter += 1
            records.append(EventRecord.create(
                event_id=f"EVT-{self._event_counter:08d}",
                event_kind=pending.kind,
                actor_id=pending.actor_id,
                payload=pending.payload,
                timestamp_utc=now,
            ))
        self._event_log.append_all(records)

    def _snapshot(self, room_id: Optional[str]) -> _Snapshot:
        room = self._rooms.get_room(room_id) if room_id else None
        vault = self._vault.get_vault(room_id) if room_id else None
        return _Snapshot(
            room_id=room_id,
            room=copy.deepcopy(room),
            vault=copy.deepcopy(vault),
            balances=self._treasury.snapshot(),
            keycards=self._keycards.snapshot(),
            counters=self._rooms.counters(),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        """Undo a failed operation.

        Room, vault and keycard objects are updated in place, so
        references callers already hold stay live. The event log needs
        no undo: a failed batch leaves it untouched.
        """
        if snapshot.room_id is not None:
            if snapshot.room is not None:
                live_room = self._rooms.get_room(snapshot.room_id)
                if live_room is None:
                    self._rooms._replace(snapshot.room)
                else:
                    _restore_fields(live_room, snapshot.room)
            if snapshot.vault is not None:
                live_vault = self._vault.get_vault(snapshot.room_id)
                if live_vault is None:
                    self._vault._replace(snapshot.vault)
                else:
                    _restore_fields(live_vault, snapshot.vault)
        else:
            # Room creation: forget any room/vault minted under the new id.
            low, _ = snapshot.counters
            high, _ = self._rooms.counters()
            if low is not None and high is not None:
                for n in range(low + 1, high + 2):
                    self._rooms._drop(f"ROOM-{n:08d}")
                    self._vault._drop(f"ROOM-{n:08d}")
        self._treasury.restore(snapshot.balances)
        self._keycards.restore(snapshot.keycards)
        self._rooms.restore_counters(snapshot.counters)


def _restore_fields(live: Any, saved: Any) -> None:
    """Copy every dataclass field of saved onto live, if they differ."""
    if live == saved:
        return
    for f in fields(live):
        setattr(live, f.name, getattr(saved, f.name))


def _last_event_number(log: EventLog) -> int:
    """Numeric part of the newest event id, or 0 for an empty log.

    Ids may have gaps (numbers taken by batches that failed to write),
    so the event count is not a safe place to resume from.
    """
    last = log.last_event
    if last is None:
        return 0
    return int(last.event_id.rsplit("-", 1)[-1])

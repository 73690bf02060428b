"""Append-only event log — the audit trail of every room effect.

Every state change in a room produces an event record appended to the
log. Events are immutable once written. The log serves as:
1. The feed consumed by off-chain indexers.
2. The audit trail for third-party verification of settlements.
3. The source of truth for reconstructing a room's history.

Ordering: events of one room appear in call order. Ordering across
rooms follows call order too, but consumers must not rely on it.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of room events."""
    ROOM_CREATED = "room_created"
    STATE_CHANGED = "state_changed"
    SUBMISSION_CREATED = "submission_created"
    JURY_ASSIGNED = "jury_assigned"
    VOTE_COMMITTED = "vote_committed"
    VOTE_REVEALED = "vote_revealed"
    TIER_VOTE_COMMITTED = "tier_vote_committed"
    TIER_VOTE_REVEALED = "tier_vote_revealed"
    VARIANCE_FLAGGED = "variance_flagged"
    SCORES_COMPUTED = "scores_computed"
    CLIENT_SCORED = "client_scored"
    SETTLEMENT_APPROVED = "settlement_approved"
    ROOM_SETTLED = "room_settled"
    ZERO_VOTES_REFUNDED = "zero_votes_refunded"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the room log.

    The event_hash is computed at creation time over the canonical JSON
    of every other field.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @property
    def room_id(self) -> Optional[str]:
        return self.payload.get("room_id")

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(event_id, event_kind.value, ts_str, actor_id, payload),
        )


class EventLog:
    """Append-only event log with optional file persistence.

    Events can only be appended, never modified or deleted.
    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        self.append_all([event])

    def append_all(self, events: list[EventRecord]) -> None:
        """Append a batch of events, all or nothing.

        Every id is checked before anything is written. The batch goes
        to the JSONL file in a single write; if that write fails the
        file is cut back to its previous length and the error re-raised,
        so neither the file nor memory holds part of the batch.

        Raises ValueError on a duplicate event_id, either against the
        log or within the batch.
        """
        seen: set[str] = set()
        for event in events:
            if event.event_id in self._event_ids or event.event_id in seen:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            seen.add(event.event_id)

        if self._storage_path and events:
            self._write_batch(events)

        self._events.extend(events)
        self._event_ids.update(seen)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_room(
        self,
        room_id: str,
        kind: Optional[EventKind] = None,
    ) -> list[EventRecord]:
        """Return one room's events in call order."""
        return [
            e for e in self.events(kind)
            if e.room_id == room_id
        ]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _write_batch(self, events: list[EventRecord]) -> None:
        """Write a batch to the JSONL file, restoring its length on failure."""
        path = self._storage_path
        offset = path.stat().st_size if path.exists() else 0
        try:
            self._append_to_file(events)
        except OSError:
            if path.exists():
                with path.open("r+b") as f:
                    f.truncate(offset)
            raise

    def _append_to_file(self, events: list[EventRecord]) -> None:
        """Append events to the JSONL file in one write."""
        lines = "".join(
            json.dumps(self._to_record(e), sort_keys=True, ensure_ascii=False) + "\n"
            for e in events
        )
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(lines)

    @staticmethod
    def _to_record(event: EventRecord) -> dict[str, Any]:
        return {
            "event_id": event.event_id,
            "event_kind": event.event_kind.value,
            "timestamp_utc": event.timestamp_utc,
            "actor_id": event.actor_id,
            "payload": event.payload,
            "event_hash": event.event_hash,
        }

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs (replay protection on recovery).
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event.event_id)

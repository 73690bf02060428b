"""Persistence — the append-only room event log."""

from arbiter.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]

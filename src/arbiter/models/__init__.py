"""Core data models for Arbiter."""

from arbiter.models.keycard import Keycard
from arbiter.models.room import (
    JuryResult,
    Room,
    RoomDeadlines,
    RoomState,
    ScoringMode,
    Submission,
    Tier,
    TierVote,
    Vote,
)
from arbiter.models.vault import VaultRecord

__all__ = [
    "JuryResult",
    "Keycard",
    "Room",
    "RoomDeadlines",
    "RoomState",
    "ScoringMode",
    "Submission",
    "Tier",
    "TierVote",
    "VaultRecord",
    "Vote",
]

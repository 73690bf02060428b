"""Identity — non-transferable keycards and the capabilities over them."""

from arbiter.identity.keycard import (
    IdentityGate,
    JuryStatsSink,
    KeycardLedger,
    TaskStatsSink,
)

__all__ = ["IdentityGate", "JuryStatsSink", "KeycardLedger", "TaskStatsSink"]

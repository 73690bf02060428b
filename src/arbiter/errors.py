"""Typed failures for every guard in the room protocol.

Each exception carries an ErrorKind so callers can tell "wrong order"
apart from "already done", an integrity failure apart from a range
failure, and so on. All of them subclass ValueError, which is what the
engines raised historically and what the service layer catches.

Buckets:
    state-violation        invalid_transition, terminal_state, wrong_phase,
                           deadline, not_initialized
    authorization          unauthorized
    integrity              integrity
    range                  out_of_range
    duplication            duplicate
    not-found              not_found
    insufficient-resource  insufficient_funds, insufficient_jurors,
                           vault_locked
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Distinct failure condition reported to the caller."""
    INVALID_TRANSITION = "invalid_transition"
    TERMINAL_STATE = "terminal_state"
    WRONG_PHASE = "wrong_phase"
    DEADLINE = "deadline"
    NOT_INITIALIZED = "not_initialized"
    UNAUTHORIZED = "unauthorized"
    INTEGRITY = "integrity"
    OUT_OF_RANGE = "out_of_range"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_JURORS = "insufficient_jurors"
    VAULT_LOCKED = "vault_locked"


class ArbiterError(ValueError):
    """Base class for all protocol failures."""
    kind: ErrorKind = ErrorKind.INVALID_TRANSITION


class InvalidTransitionError(ArbiterError):
    """A state change not on the transition graph was attempted."""
    kind = ErrorKind.INVALID_TRANSITION


class TerminalStateError(ArbiterError):
    """The room is settled and can no longer change."""
    kind = ErrorKind.TERMINAL_STATE


class WrongPhaseError(ArbiterError):
    """The operation is not valid in the room's current state."""
    kind = ErrorKind.WRONG_PHASE


class DeadlineError(ArbiterError):
    """A deadline guard failed (too late, or not yet overdue)."""
    kind = ErrorKind.DEADLINE


class NotInitializedError(ArbiterError):
    """The service was used before initialize() was called."""
    kind = ErrorKind.NOT_INITIALIZED


class UnauthorizedError(ArbiterError):
    """The caller does not hold the role the operation requires."""
    kind = ErrorKind.UNAUTHORIZED


class IntegrityError(ArbiterError):
    """A reveal did not hash to the stored commitment."""
    kind = ErrorKind.INTEGRITY


class OutOfRangeError(ArbiterError):
    """A score, tier-slot count or other bounded value is out of range."""
    kind = ErrorKind.OUT_OF_RANGE


class DuplicateError(ArbiterError):
    """Already submitted, committed, revealed, approved or created."""
    kind = ErrorKind.DUPLICATE


class NotFoundError(ArbiterError):
    """A room, submission, vote, vault or record does not exist."""
    kind = ErrorKind.NOT_FOUND


class InsufficientFundsError(ArbiterError):
    """An account or vault cannot cover the requested amount."""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class InsufficientJurorsError(ArbiterError):
    """Too few eligible jurors to seat a jury."""
    kind = ErrorKind.INSUFFICIENT_JURORS


class VaultLockedError(ArbiterError):
    """Funds were asked to move while the vault is still locked."""
    kind = ErrorKind.VAULT_LOCKED

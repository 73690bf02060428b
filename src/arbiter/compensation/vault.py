"""Escrow vault — custody of each room's reward.

Before a room exists, the client must stake the full reward into a
vault. The vault is created locked and stays locked through the whole
room lifecycle. Funds leave it in exactly one of two ways:

    release   room SETTLED → unlock → reward paid to the winner
    refund    zero valid jury votes → full balance back to the client

Custody invariant: no code path moves funds while `locked` is True.
Every fund-moving method checks the flag itself before acting.

The vault manager is a pure custody component — no event side effects.
Event logging is handled by the service layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from arbiter.compensation.treasury import Treasury
from arbiter.errors import (
    DuplicateError,
    InsufficientFundsError,
    NotFoundError,
    OutOfRangeError,
    VaultLockedError,
    WrongPhaseError,
)
from arbiter.models.room import Room, RoomState
from arbiter.models.vault import VaultRecord


class EscrowVault:
    """Manages one vault per room.

    Usage:
        vault = EscrowVault(treasury)
        record = vault.create_and_lock("ROOM-00000001", "client-1", Decimal("500"))
        ...  # room runs to SETTLED
        vault.unlock(room)
        vault.release_to_winner(room.room_id, "worker-1", Decimal("500"))
    """

    def __init__(self, treasury: Treasury) -> None:
        self._treasury = treasury
        self._vaults: dict[str, VaultRecord] = {}

    def create_and_lock(
        self,
        room_id: str,
        client: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> VaultRecord:
        """Withdraw amount from the client and hold it locked for room_id.

        Raises:
            OutOfRangeError: amount is not positive.
            DuplicateError: a vault already exists for this room.
            InsufficientFundsError: the client cannot supply amount.
        """
        if amount <= Decimal("0"):
            raise OutOfRangeError("Escrow amount must be positive")
        if room_id in self._vaults:
            raise DuplicateError(f"Vault already exists for room: {room_id}")
        if now is None:
            now = datetime.now(timezone.utc)

        self._treasury.withdraw(client, amount)
        record = VaultRecord(
            room_id=room_id,
            client=client,
            amount=amount,
            balance=amount,
            created_utc=now,
        )
        self._vaults[room_id] = record
        return record

    def unlock(self, room: Room, now: Optional[datetime] = None) -> VaultRecord:
        """Unlock a settled room's vault.

        Only a SETTLED room may be unlocked; the refund path unlocks
        through refund_to_client instead.
        """
        record = self._get(room.room_id)
        if room.state != RoomState.SETTLED:
            raise WrongPhaseError(
                f"Vault for {room.room_id} cannot unlock before settlement "
                f"(room state: {room.state.value})"
            )
        if not record.locked:
            raise DuplicateError(f"Vault for {room.room_id} is already unlocked")
        record.locked = False
        record.unlocked_utc = now or datetime.now(timezone.utc)
        return record

    def release_to_winner(
        self,
        room_id: str,
        winner: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> VaultRecord:
        """Pay amount from an unlocked vault to the winner.

        Raises:
            VaultLockedError: the vault is still locked.
            DuplicateError: the vault already released its reward.
            InsufficientFundsError: amount exceeds the vault balance.
        """
        record = self._get(room_id)
        if record.locked:
            raise VaultLockedError(f"Vault for {room_id} is locked")
        if record.released_to is not None:
            raise DuplicateError(f"Vault for {room_id} already released")
        if amount <= Decimal("0"):
            raise OutOfRangeError("Release amount must be positive")
        if amount > record.balance:
            raise InsufficientFundsError(
                f"Vault for {room_id} holds {record.balance}, cannot release {amount}"
            )

        self._treasury.deposit(winner, amount)
        record.balance -= amount
        record.released_to = winner
        record.released_amount = amount
        record.released_utc = now or datetime.now(timezone.utc)
        return record

    def refund_to_client(
        self,
        room: Room,
        now: Optional[datetime] = None,
    ) -> VaultRecord:
        """Return the entire balance to the client and unlock.

        Only valid for a room whose jury produced zero valid votes.
        """
        record = self._get(room.room_id)
        if not room.needs_refund():
            raise WrongPhaseError(
                f"Refund for {room.room_id} requires a jury result with no valid votes"
            )
        if record.refunded or record.released_to is not None:
            raise DuplicateError(f"Vault for {room.room_id} has already paid out")
        if record.balance <= Decimal("0"):
            raise InsufficientFundsError(f"Vault for {room.room_id} is empty")
        if now is None:
            now = datetime.now(timezone.utc)

        refund = record.balance
        record.locked = False
        record.unlocked_utc = now
        self._treasury.deposit(record.client, refund)
        record.balance = Decimal("0")
        record.refunded = True
        record.refunded_utc = now
        return record

    def get_vault(self, room_id: str) -> Optional[VaultRecord]:
        """Look up a vault by room ID."""
        return self._vaults.get(room_id)

    def is_locked(self, room_id: str) -> bool:
        return self._get(room_id).locked

    def _get(self, room_id: str) -> VaultRecord:
        """Internal lookup with clear error on missing ID."""
        record = self._vaults.get(room_id)
        if record is None:
            raise NotFoundError(f"Unknown vault for room: {room_id}")
        return record

    def _drop(self, room_id: str) -> None:
        """Forget a vault. Used only to roll back a failed room creation."""
        self._vaults.pop(room_id, None)

    def _replace(self, record: VaultRecord) -> None:
        """Restore a vault from a snapshot. Used only by rollback."""
        self._vaults[record.room_id] = record

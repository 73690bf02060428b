"""Keycard ledger — identity gate and reputation counters.

Keycards are identity-bound and non-transferable: records are stored in
a map keyed by owner and no operation exists that moves a record from
one owner to another. The ledger is minted into by onboarding (outside
the room protocol) and mutated by the room protocol only through the
narrow interfaces below.

Each consumer sees only the capability it needs:
- IdentityGate          room creation and submission (read only)
- JuryStatsSink         settlement engine and variance detector
- TaskStatsSink         settlement engine
"""

from __future__ import annotations

import copy
import dataclasses
from datetime import datetime, timezone
from typing import Optional, Protocol

from arbiter.errors import DuplicateError, NotFoundError, OutOfRangeError
from arbiter.models.keycard import Keycard


class IdentityGate(Protocol):
    def has_identity(self, address: str) -> bool: ...


class JuryStatsSink(Protocol):
    def increment_jury_participation(self, address: str) -> None: ...

    def increment_variance_flags(self, address: str) -> None: ...


class TaskStatsSink(Protocol):
    def add_task_completion(self, address: str, score: int) -> None: ...


class KeycardLedger:
    """In-memory keycard store.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._cards: dict[str, Keycard] = {}

    def mint(self, owner: str, now: Optional[datetime] = None) -> Keycard:
        """Mint the one keycard an owner may ever hold.

        Raises DuplicateError if the owner already holds one.
        """
        canonical = owner.strip()
        if not canonical:
            raise OutOfRangeError("Cannot mint keycard for blank address")
        if canonical in self._cards:
            raise DuplicateError(f"Keycard already minted for {canonical}")
        card = Keycard(owner=canonical, minted_utc=now or datetime.now(timezone.utc))
        self._cards[canonical] = card
        return card

    def has_identity(self, address: str) -> bool:
        return address in self._cards

    def get(self, address: str) -> Optional[Keycard]:
        """Look up a keycard by owner."""
        return self._cards.get(address)

    def increment_jury_participation(self, address: str) -> None:
        self._require(address).jury_participations += 1

    def increment_variance_flags(self, address: str) -> None:
        self._require(address).variance_flags += 1

    def add_task_completion(self, address: str, score: int) -> None:
        """Count a completed task and fold score into the running average.

        The average is kept as an integer, floored:
            new = (old * n + score) // (n + 1)
        """
        card = self._require(address)
        n = card.tasks_completed
        card.average_score = (card.average_score * n + score) // (n + 1)
        card.tasks_completed = n + 1

    @property
    def count(self) -> int:
        return len(self._cards)

    def snapshot(self) -> dict[str, Keycard]:
        return copy.deepcopy(self._cards)

    def restore(self, cards: dict[str, Keycard]) -> None:
        """Roll back to a snapshot, updating live Keycard objects in place."""
        for address in list(self._cards):
            if address not in cards:
                del self._cards[address]
        for address, saved in cards.items():
            live = self._cards.get(address)
            if live is None:
                self._cards[address] = saved
            elif live != saved:
                for f in dataclasses.fields(live):
                    setattr(live, f.name, getattr(saved, f.name))

    def _require(self, address: str) -> Keycard:
        card = self._cards.get(address)
        if card is None:
            raise NotFoundError(f"No keycard for {address}")
        return card

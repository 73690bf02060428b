"""Treasury — available balances of every address.

The treasury is where escrow is drawn from and where releases and
refunds land. Storage is in-memory; balances never go negative.

Usage:
    treasury = Treasury()
    treasury.deposit("client-1", Decimal("1000000"))
    treasury.withdraw("client-1", Decimal("250"))
"""

from __future__ import annotations

from decimal import Decimal

from arbiter.errors import InsufficientFundsError, OutOfRangeError


class Treasury:
    """In-memory account balances keyed by address."""

    def __init__(self) -> None:
        self._balances: dict[str, Decimal] = {}

    def deposit(self, address: str, amount: Decimal) -> Decimal:
        """Credit an address. Returns the new balance."""
        if amount <= Decimal("0"):
            raise OutOfRangeError("Deposit amount must be positive")
        balance = self._balances.get(address, Decimal("0")) + amount
        self._balances[address] = balance
        return balance

    def withdraw(self, address: str, amount: Decimal) -> Decimal:
        """Debit an address. Returns the new balance.

        Raises InsufficientFundsError if the address cannot cover amount.
        """
        if amount <= Decimal("0"):
            raise OutOfRangeError("Withdrawal amount must be positive")
        balance = self._balances.get(address, Decimal("0"))
        if balance < amount:
            raise InsufficientFundsError(
                f"{address} cannot cover {amount} (available: {balance})"
            )
        self._balances[address] = balance - amount
        return self._balances[address]

    def balance_of(self, address: str) -> Decimal:
        return self._balances.get(address, Decimal("0"))

    def snapshot(self) -> dict[str, Decimal]:
        """Copy of all balances (Decimal is immutable, a shallow copy suffices)."""
        return dict(self._balances)

    def restore(self, balances: dict[str, Decimal]) -> None:
        """Replace all balances with a previously taken snapshot."""
        self._balances = dict(balances)

    @property
    def total(self) -> Decimal:
        return sum(self._balances.values(), Decimal("0"))

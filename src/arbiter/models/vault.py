"""Vault and treasury models.

All monetary values use Decimal for exact arithmetic. No floats in finance.

A vault is tied 1:1 to a room. Its balance is set once at creation and
decreases exactly once (release to the winner) or is fully drained
(refund to the client). `locked` is False only from settlement or refund
onward; nothing moves while it is True.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class VaultRecord:
    """Custody record for one room's reward."""
    room_id: str
    client: str
    amount: Decimal
    balance: Decimal
    created_utc: datetime
    locked: bool = True
    unlocked_utc: Optional[datetime] = None
    released_to: Optional[str] = None
    released_amount: Decimal = Decimal("0")
    released_utc: Optional[datetime] = None
    refunded: bool = False
    refunded_utc: Optional[datetime] = None

    @property
    def is_drained(self) -> bool:
        return self.balance == Decimal("0")

"""Keycard — non-transferable identity and reputation record.

A keycard is minted once per owner and lives in a map keyed by that
owner. There is no transfer, move or burn operation anywhere in the
package; the only mutations are the counter updates driven by voting and
settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Keycard:
    """Accumulated participation statistics for one principal."""
    owner: str
    tasks_completed: int = 0
    average_score: int = 0
    jury_participations: int = 0
    variance_flags: int = 0
    minted_utc: Optional[datetime] = None

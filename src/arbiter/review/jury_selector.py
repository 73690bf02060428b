"""Jury selector — deterministic, unpredictable sampling of a jury.

Selection is a Fisher–Yates shuffle over the eligible pool where the
swap index at step i is derived from a SHA-256 digest of the room id and
i, reduced modulo (i + 1). The room id is assigned by the system at
creation, so the client cannot steer which jurors are drawn, while any
third party can recompute and audit the draw.

The selector is pure computation: no side effects. Recording the
assignment on the room and in the event log is the caller's job.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass

from arbiter.errors import InsufficientJurorsError, OutOfRangeError


@dataclass(frozen=True)
class JurySelection:
    """Result of a jury draw."""
    room_id: str
    jurors: list[str]
    pool_size: int


class JurySelector:
    """Draws a fixed-size jury from an eligible pool.

    Usage:
        selector = JurySelector()
        selection = selector.select("ROOM-00000001", pool, jury_size=5)
    """

    def select(
        self,
        room_id: str,
        eligible_pool: list[str],
        jury_size: int,
    ) -> JurySelection:
        """Shuffle the pool deterministically and take the first jury_size.

        Duplicate addresses in the pool are collapsed (first occurrence
        wins) before the draw.

        Raises:
            OutOfRangeError: jury_size is not positive.
            InsufficientJurorsError: the pool is smaller than jury_size.
        """
        if jury_size <= 0:
            raise OutOfRangeError(f"Jury size must be positive, got {jury_size}")

        pool = list(dict.fromkeys(eligible_pool))
        if len(pool) < jury_size:
            raise InsufficientJurorsError(
                f"{room_id}: needs {jury_size} eligible jurors, got {len(pool)}"
            )

        for i in range(len(pool) - 1, 0, -1):
            j = shuffle_index(room_id, i)
            pool[i], pool[j] = pool[j], pool[i]

        return JurySelection(
            room_id=room_id,
            jurors=pool[:jury_size],
            pool_size=len(pool),
        )


def shuffle_index(room_id: str, step: int) -> int:
    """Swap index for shuffle step `step`, in [0, step]."""
    canonical = json.dumps(
        {"room_id": room_id, "step": step},
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    digest = hashlib.sha256(canonical).digest()
    return int.from_bytes(digest, "big") % (step + 1)

"""Commitment hashing for juror votes.

A commitment is SHA-256 over canonical JSON (sorted keys, UTF-8) of the
hidden value and the juror's salt, rendered as ``sha256:<64 hex>``.
Jurors use these same functions to build the hash they commit, and the
ledger uses them to check the later reveal.

Tier lists are hashed in the order given; a juror must reveal the same
order they committed.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from typing import Any


_SHA256_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")


def score_commitment(score: int, salt: str) -> str:
    """Commitment over a flat-mode score: H(score ‖ salt)."""
    return _digest({"score": score, "salt": salt})


def tier_commitment(tier_a: list[str], tier_b: list[str], salt: str) -> str:
    """Commitment over a tier-mode ranking: H(tier_a ‖ tier_b ‖ salt)."""
    return _digest({"tier_a": list(tier_a), "tier_b": list(tier_b), "salt": salt})


def is_commitment_hash(value: str) -> bool:
    """True if value is a well-formed ``sha256:<64 hex>`` string."""
    return bool(value) and bool(_SHA256_PATTERN.match(value))


def commitments_match(stored: str, recomputed: str) -> bool:
    """Constant-time comparison of two commitment strings."""
    return hmac.compare_digest(stored.encode("utf-8"), recomputed.encode("utf-8"))


def _digest(payload: dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"

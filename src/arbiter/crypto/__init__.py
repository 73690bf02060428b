"""Cryptographic helpers — vote commitments."""

from arbiter.crypto.commitments import (
    commitments_match,
    is_commitment_hash,
    score_commitment,
    tier_commitment,
)

__all__ = [
    "commitments_match",
    "is_commitment_hash",
    "score_commitment",
    "tier_commitment",
]

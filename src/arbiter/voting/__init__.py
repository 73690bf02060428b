"""Juror voting — commit-reveal ledger for flat and tier votes."""

from arbiter.voting.commit_reveal import (
    CommitRevealLedger,
    all_committed,
    all_revealed,
)

__all__ = ["CommitRevealLedger", "all_committed", "all_revealed"]

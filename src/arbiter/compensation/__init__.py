"""Compensation subsystem — account balances and per-room escrow vaults."""

from arbiter.compensation.treasury import Treasury
from arbiter.compensation.vault import EscrowVault

__all__ = ["EscrowVault", "Treasury"]

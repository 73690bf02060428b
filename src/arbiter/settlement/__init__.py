"""Settlement — dual-key payout and zero-vote refunds."""

from arbiter.settlement.engine import (
    ScoringOutcome,
    SettlementEngine,
    SettlementOutcome,
)

__all__ = ["ScoringOutcome", "SettlementEngine", "SettlementOutcome"]

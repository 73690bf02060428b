"""Protocol policy — tunable parameters loaded from config/."""

from arbiter.policy.resolver import PolicyResolver, ScoringPolicy

__all__ = ["PolicyResolver", "ScoringPolicy"]

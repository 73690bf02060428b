"""Arbiter — escrowed task rooms judged by a commit-reveal jury.

A client locks a reward in escrow and opens a room. Contributors submit
work, a jury drawn from the category's eligible pool scores it behind
hash commitments, and the reward is released to the winner once both
the jury score (Silver Key) and the client's approval (Gold Key) are in.
"""

__version__ = "0.1.0"

"""
ballotproof - anonymous-voting integrity core.

Commitment-tree eligibility snapshots, zero-knowledge vote admission with
nullifier-based double-vote protection, and electoral-type tallying.
"""

__version__ = "0.1.0"

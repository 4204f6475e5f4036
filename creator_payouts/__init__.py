"""Creator payouts: fee calculation, payout execution and webhook reconciliation."""

__version__ = "0.1.0"

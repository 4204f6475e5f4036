"""Fee calculation and payout business logic."""

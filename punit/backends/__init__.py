"""Storage backends for the run ledger."""

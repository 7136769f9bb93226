"""Trade journal and average-cost position ledger."""

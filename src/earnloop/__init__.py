"""EarnLoop credits ledger service."""

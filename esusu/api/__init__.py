"""HTTP surface over the ledger services."""

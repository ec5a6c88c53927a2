"""Esusu: cycle ledger engine for rotating-savings contribution schemes."""

__version__ = "0.1.0"

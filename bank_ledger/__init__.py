"""
Bank Ledger

Back-office account ledger and transaction engine. Balances are mutated
only through the ledger engine, every amount is a Decimal, and every
mutation is written to a hash-chained audit trail.
"""

__version__ = "1.0.0"

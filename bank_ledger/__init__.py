"""
Bank Ledger

A minimal banking ledger with atomic deposits, withdrawals and transfers,
exact Decimal amounts, and an append-only transaction log that can be
replayed into a balance history.
"""

__version__ = "1.0.0"

"""
Pocket Ledger - Source Package

A personal ledger: an append-only record of top-ups and expenses shown as a
paged, day-grouped list with a running balance, next to a periodically
refreshed reference price.

DESIGN PRINCIPLES:
1. The ledger is append-only; nothing is edited or deleted
2. External price failures degrade to the last good value, never to a crash
3. Storage failures reach the caller as typed errors
4. Components are wired explicitly, never through a global container
"""

__version__ = "1.0.0"

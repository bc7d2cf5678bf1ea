"""
Bundle Kernel - lifecycle engine for cut-order bundles.

Tracks physical bundles cut against cut orders with:
- A packed bundle-number codec identifying split siblings
- A status state machine (available -> assigned -> used)
- Transactional, race-safe bundle splitting
- An append-only history ledger
- Best-effort recomputation of order activity
"""

__version__ = "0.1.0"

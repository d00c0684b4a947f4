"""
Ledger Kernel

Shared core of the back-office ledger:
- Typed exceptions and structured logging
- Transaction/payment snapshots and status enumerations
- SQLAlchemy models and session management
- Collision-free document sequence counters
"""

__version__ = "0.1.0"

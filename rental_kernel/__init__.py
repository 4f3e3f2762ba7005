"""
Rental Kernel - shared infrastructure for the rental billing engine.

Provides:
- Typed, coded exceptions
- Declared billing invariants
- Structured JSON logging
- Injectable clock
- SQLAlchemy declarative base and engine/session helpers
- Per-entity mutual exclusion for ledger mutations
"""

__version__ = "0.1.0"

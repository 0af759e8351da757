"""
Import Kernel - shared infrastructure for the import job engine.

Provides:
- SQLAlchemy declarative base, engine and session management
- Injectable clock for deterministic time
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
"""

__version__ = "0.1.0"

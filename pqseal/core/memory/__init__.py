"""
pqseal Memory Security Module
=============================

Provides best-effort wiping of secret buffers.

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from pqseal.core.memory.zeroization import secure_zero, ZeroizeContext

__all__ = ["secure_zero", "ZeroizeContext"]

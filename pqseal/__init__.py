"""
pqseal - Hybrid Post-Quantum Encryption
=======================================

ML-KEM key encapsulation combined with an AEAD cipher, a strict
envelope format and a file-backed key store.

Security Notice:
- No secrets are logged
- Every failure raises a typed error; nothing falls back silently
- Decryption failures carry no detail
"""

from pqseal.core.config import PqSealConfig
from pqseal.core.crypto import AlgorithmId, Envelope, HybridCipher
from pqseal.core.errors import PqSealError
from pqseal.core.keys import KeyPair, KeyStore, PublicKeyEncoding
from pqseal.core.logging import configure_logging, get_secure_logger

__version__ = "0.1.0"

__all__ = [
    "AlgorithmId",
    "Envelope",
    "HybridCipher",
    "KeyPair",
    "KeyStore",
    "PqSealConfig",
    "PqSealError",
    "PublicKeyEncoding",
    "configure_logging",
    "get_secure_logger",
    "__version__",
]

"""
pqseal Cryptographic Core
=========================

Hybrid post-quantum encryption with authenticated encryption.

Architecture:
    1. ML-KEM (512/768/1024): post-quantum key encapsulation
    2. HKDF: shared secret to AEAD key, bound to the algorithm
    3. AES-256-GCM or ChaCha20-Poly1305: authenticated encryption

Security Properties:
    - All encryption is authenticated (AEAD)
    - A fresh nonce from the OS CSPRNG on every seal
    - Shared secrets and derived keys are wiped after use
    - Envelope sizes are checked against the algorithm before any
      cryptographic work

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from pqseal.core.crypto.aes_gcm import AesGcmCipher
from pqseal.core.crypto.chacha20 import ChaCha20Cipher
from pqseal.core.crypto.envelope import Envelope, decode_envelope, encode_envelope
from pqseal.core.crypto.hybrid_engine import HybridCipher
from pqseal.core.crypto.kem import KemBackend, KyberPyBackend, OqsBackend, create_kem_backend
from pqseal.core.crypto.provider import CryptoProvider, DefaultProvider
from pqseal.core.crypto.registry import (
    DEFAULT_REGISTRY,
    AlgorithmId,
    AlgorithmParams,
    AlgorithmRegistry,
)

__all__ = [
    "AesGcmCipher",
    "ChaCha20Cipher",
    "Envelope",
    "decode_envelope",
    "encode_envelope",
    "HybridCipher",
    "KemBackend",
    "KyberPyBackend",
    "OqsBackend",
    "create_kem_backend",
    "CryptoProvider",
    "DefaultProvider",
    "DEFAULT_REGISTRY",
    "AlgorithmId",
    "AlgorithmParams",
    "AlgorithmRegistry",
]

"""
Cryptographic Provider
======================

The capability boundary between the hybrid protocol and the primitives
it composes. HybridCipher only ever talks to a CryptoProvider, so a
native library, a co-process or a hardware module can stand in for the
default implementation without touching the protocol.

Capability Interface:
    generate(params)                                  -> KeyPair
    encapsulate(params, public_key)                   -> EncapsulationResult
    decapsulate(params, private_key, kem_ciphertext)  -> shared_secret
    aead_encrypt(params, key, nonce, plaintext, aad)  -> ciphertext || tag
    aead_decrypt(params, key, nonce, ciphertext, aad) -> plaintext
    generate_nonce(params)                            -> fresh AEAD nonce

Failure Contract:
    decapsulate  -> DecapsulationFailed (generic, no detail)
    aead_decrypt -> AuthenticationFailed (generic, no detail)
    encapsulate  -> InvalidKeyMaterial when the public key is rejected
"""

from __future__ import annotations

import secrets
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from pqseal.core.crypto.aes_gcm import AesGcmCipher
from pqseal.core.crypto.chacha20 import ChaCha20Cipher
from pqseal.core.crypto.kem import EncapsulationResult, KemBackend, KyberPyBackend
from pqseal.core.crypto.registry import AES_256_GCM, CHACHA20_POLY1305, AlgorithmParams
from pqseal.core.errors import (
    DecapsulationFailed,
    InvalidKeyMaterial,
    UnknownAlgorithm,
)
from pqseal.core.keys.keypair import KeyPair


class CryptoProvider(ABC):
    """Abstract capability interface consumed by HybridCipher."""

    @abstractmethod
    def generate(self, params: AlgorithmParams, key_id: Optional[str] = None) -> KeyPair:
        ...

    @abstractmethod
    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> EncapsulationResult:
        ...

    @abstractmethod
    def decapsulate(
        self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes
    ) -> bytes:
        ...

    @abstractmethod
    def aead_encrypt(
        self,
        params: AlgorithmParams,
        key: bytes | bytearray,
        nonce: bytes,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        ...

    @abstractmethod
    def aead_decrypt(
        self,
        params: AlgorithmParams,
        key: bytes | bytearray,
        nonce: bytes,
        ciphertext: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        ...

    def generate_nonce(self, params: AlgorithmParams) -> bytes:
        """Draw a fresh nonce for the algorithm's AEAD from the OS CSPRNG."""
        return secrets.token_bytes(params.nonce_size)


class DefaultProvider(CryptoProvider):
    """
    In-process provider: ML-KEM from a KemBackend, AEADs from cryptography.

    Usage:
        provider = DefaultProvider()                      # kyber-py
        provider = DefaultProvider(kem_backend=OqsBackend())  # liboqs
    """

    __slots__ = ("_kem", "_aeads")

    def __init__(self, kem_backend: Optional[KemBackend] = None) -> None:
        self._kem = kem_backend or KyberPyBackend()
        self._aeads = {
            AES_256_GCM: AesGcmCipher(),
            CHACHA20_POLY1305: ChaCha20Cipher(),
        }

    @property
    def kem_backend(self) -> KemBackend:
        return self._kem

    def _aead(self, params: AlgorithmParams) -> AesGcmCipher | ChaCha20Cipher:
        cipher = self._aeads.get(params.aead_name)
        if cipher is None:
            raise UnknownAlgorithm(params.aead_name)
        return cipher

    def _require_kem(self, params: AlgorithmParams) -> None:
        if not self._kem.supports(params):
            raise UnknownAlgorithm(params.kem_name)

    def generate(self, params: AlgorithmParams, key_id: Optional[str] = None) -> KeyPair:
        """Generate a keypair for the algorithm, with a fresh key id if none given."""
        self._require_kem(params)
        public_key, private_key = self._kem.keygen(params)
        return KeyPair(
            public_key=public_key,
            private_key=private_key,
            algorithm=params.algorithm,
            key_id=key_id or uuid.uuid4().hex,
        )

    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> EncapsulationResult:
        self._require_kem(params)
        try:
            kem_ciphertext, shared_secret = self._kem.encapsulate(params, public_key)
        except ValueError as exc:
            raise InvalidKeyMaterial("Public key rejected by KEM") from exc
        return EncapsulationResult(kem_ciphertext=kem_ciphertext, shared_secret=shared_secret)

    def decapsulate(
        self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes
    ) -> bytes:
        self._require_kem(params)
        try:
            return self._kem.decapsulate(params, private_key, kem_ciphertext)
        except ValueError:
            raise DecapsulationFailed() from None

    def aead_encrypt(
        self,
        params: AlgorithmParams,
        key: bytes | bytearray,
        nonce: bytes,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        return self._aead(params).encrypt(plaintext, key, nonce, aad)

    def aead_decrypt(
        self,
        params: AlgorithmParams,
        key: bytes | bytearray,
        nonce: bytes,
        ciphertext: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        return self._aead(params).decrypt(ciphertext, key, nonce, aad)

    def generate_nonce(self, params: AlgorithmParams) -> bytes:
        return self._aead(params).generate_nonce()

    def __repr__(self) -> str:
        return f"DefaultProvider(kem={self._kem.name})"

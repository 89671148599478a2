"""
Hybrid Post-Quantum Encryption Engine
=====================================

Combines an ML-KEM key encapsulation with an AEAD cipher:

Seal Flow:
    recipient public key
        ↓ validate size against the algorithm
        ↓ KEM encapsulate → (kem_ciphertext, shared_secret)
        ↓ HKDF(shared_secret) → AEAD key
        ↓ fresh random nonce
        ↓ AEAD encrypt(plaintext, aad) → ciphertext || tag
    Envelope(algorithm, kem_ciphertext, nonce, ciphertext)

Open Flow:
    Envelope
        ↓ resolve algorithm, validate private key and field sizes
        ↓ KEM decapsulate → shared_secret
        ↓ HKDF(shared_secret) → AEAD key
        ↓ AEAD decrypt (tag verified before any plaintext exists)
    plaintext

Security Properties:
    - A new nonce is drawn from the provider on every seal
    - Shared secret and AEAD key are zeroized when the call ends
    - Every failure is terminal for the call; nothing is retried
    - Decapsulation and authentication failures carry no detail

Concurrency:
    HybridCipher holds no mutable state. seal()/open() are reentrant
    and can run on any number of threads without locking.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from pqseal.core.config import PqSealConfig
from pqseal.core.crypto.envelope import (
    Envelope,
    build_envelope,
    decode_envelope,
    validate_envelope,
)
from pqseal.core.crypto.kdf import derive_symmetric_key
from pqseal.core.crypto.kem import create_kem_backend
from pqseal.core.crypto.provider import CryptoProvider, DefaultProvider
from pqseal.core.crypto.registry import (
    DEFAULT_REGISTRY,
    AlgorithmId,
    AlgorithmLike,
    AlgorithmParams,
    AlgorithmRegistry,
)
from pqseal.core.errors import (
    AuthenticationFailed,
    DecapsulationFailed,
    InvalidKeyMaterial,
)
from pqseal.core.keys.keypair import KeyPair
from pqseal.core.keys.keystore import KeyStore, PublicKeyEncoding
from pqseal.core.memory.zeroization import ZeroizeContext

_log = logging.getLogger("pqseal.cipher")

EnvelopeLike = Union[Envelope, bytes, bytearray, memoryview]


def _require_size(material: bytes, expected: int, what: str, algorithm: str) -> None:
    if not isinstance(material, (bytes, bytearray, memoryview)):
        raise InvalidKeyMaterial(f"{what} must be bytes")
    if len(material) != expected:
        raise InvalidKeyMaterial(
            f"{what} must be {expected} bytes for {algorithm}, got {len(material)}"
        )


class HybridCipher:
    """
    Hybrid post-quantum encryption: ML-KEM + AEAD.

    Usage:
        cipher = HybridCipher()

        keypair = cipher.generate_keypair("ML-KEM-768")
        envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"data")
        plaintext = cipher.open(keypair.private_key, envelope)

        # With a key store
        cipher = HybridCipher(keystore=KeyStore("/srv/pqc-keys"))
        cipher.generate_keypair("ML-KEM-768", name="alice")
        envelope = cipher.seal_for("alice", b"data")
        plaintext = cipher.open_as("alice", envelope)

    Security Notes:
        - seal() is non-deterministic by construction
        - open() never returns partial plaintext
    """

    __slots__ = ("_provider", "_registry", "_keystore", "_default_algorithm")

    def __init__(
        self,
        provider: Optional[CryptoProvider] = None,
        registry: AlgorithmRegistry = DEFAULT_REGISTRY,
        keystore: Optional[KeyStore] = None,
        default_algorithm: AlgorithmLike = AlgorithmId.ML_KEM_768,
    ) -> None:
        """
        Initialize the hybrid cipher.

        Args:
            provider: Cryptographic provider (default: DefaultProvider on kyber-py)
            registry: Algorithm parameters used for all size checks
            keystore: Optional store for the name-based helpers
            default_algorithm: Used by seal_for() when nothing else decides
        """
        self._provider = provider or DefaultProvider()
        self._registry = registry
        self._keystore = keystore
        self._default_algorithm = registry.resolve(default_algorithm).algorithm

    @classmethod
    def from_config(cls, config: Optional[PqSealConfig] = None) -> HybridCipher:
        """Build a cipher with the configured backend, key store and default algorithm."""
        config = config or PqSealConfig.get_instance()
        return cls(
            provider=DefaultProvider(create_kem_backend(config.crypto.kem_backend)),
            keystore=KeyStore(config.paths.key_dir),
            default_algorithm=config.crypto.default_algorithm,
        )

    @property
    def provider(self) -> CryptoProvider:
        return self._provider

    @property
    def registry(self) -> AlgorithmRegistry:
        return self._registry

    @property
    def keystore(self) -> Optional[KeyStore]:
        return self._keystore

    def _require_keystore(self) -> KeyStore:
        if self._keystore is None:
            raise ValueError("HybridCipher has no key store configured")
        return self._keystore

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def generate_keypair(
        self,
        algorithm: AlgorithmLike,
        name: Optional[str] = None,
        encoding: PublicKeyEncoding = PublicKeyEncoding.RAW,
        key_id: Optional[str] = None,
    ) -> KeyPair:
        """
        Generate a keypair, optionally persisting it under name.

        Raises:
            UnknownAlgorithm: If the algorithm is not registered
            InvalidKeyMaterial: If the provider returns mis-sized keys
        """
        params = self._registry.resolve(algorithm)
        keypair = self._provider.generate(params, key_id=key_id)

        if keypair.algorithm != params.algorithm:
            raise InvalidKeyMaterial("Provider returned a keypair for another algorithm")
        _require_size(keypair.public_key, params.public_key_size, "Public key", params.algorithm)
        _require_size(keypair.private_key, params.private_key_size, "Private key", params.algorithm)

        if name is not None:
            self._require_keystore().save(name, keypair, encoding)

        _log.debug("Generated %s keypair %s", params.algorithm, keypair.key_id)
        return keypair

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def seal(
        self,
        public_key: bytes,
        algorithm: AlgorithmLike,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> Envelope:
        """
        Encrypt plaintext to the holder of public_key.

        Args:
            public_key: Recipient's KEM public key
            algorithm: Algorithm identifier
            plaintext: Data to encrypt (may be empty)
            aad: Associated data, authenticated but not encrypted

        Returns:
            Envelope whose ciphertext is len(plaintext) + tag bytes long

        Raises:
            UnknownAlgorithm: If the algorithm is not registered
            InvalidKeyMaterial: If public_key has the wrong size or is
                rejected by the KEM
        """
        params = self._registry.resolve(algorithm)
        _require_size(public_key, params.public_key_size, "Public key", params.algorithm)

        encapsulation = self._provider.encapsulate(params, bytes(public_key))
        if len(encapsulation.kem_ciphertext) != params.ciphertext_size:
            raise InvalidKeyMaterial("Provider returned a mis-sized KEM ciphertext")

        shared_secret = bytearray(encapsulation.shared_secret)
        with ZeroizeContext(shared_secret):
            key = derive_symmetric_key(shared_secret, params, encapsulation.kem_ciphertext)
            with ZeroizeContext(key):
                nonce = self._provider.generate_nonce(params)
                if len(nonce) != params.nonce_size:
                    raise InvalidKeyMaterial("Provider returned a mis-sized nonce")
                ciphertext = self._provider.aead_encrypt(params, key, nonce, plaintext, aad)

        _log.debug("Sealed %d bytes with %s", len(plaintext), params.algorithm)
        return build_envelope(
            params.algorithm, encapsulation.kem_ciphertext, nonce, ciphertext
        )

    def open(
        self,
        private_key: bytes,
        envelope: EnvelopeLike,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt an envelope with the recipient's private key.

        Args:
            private_key: Recipient's KEM private key
            envelope: Envelope, or its binary wire form
            aad: Associated data (must match the value used to seal)

        Returns:
            The decrypted plaintext

        Raises:
            UnknownAlgorithm: If the envelope's algorithm is not registered
            InvalidKeyMaterial: If private_key has the wrong size
            MalformedEnvelope: If the envelope is malformed or mis-sized
            DecapsulationFailed: If the KEM rejects the ciphertext
            AuthenticationFailed: If the tag does not verify
        """
        if not isinstance(envelope, Envelope):
            envelope = decode_envelope(bytes(envelope), self._registry)

        params = self._registry.resolve(envelope.algorithm)
        _require_size(private_key, params.private_key_size, "Private key", params.algorithm)
        validate_envelope(envelope, params)

        shared_secret = bytearray(self._decapsulate(params, bytes(private_key), envelope))
        with ZeroizeContext(shared_secret):
            key = derive_symmetric_key(shared_secret, params, envelope.kem_ciphertext)
            with ZeroizeContext(key):
                try:
                    plaintext = self._provider.aead_decrypt(
                        params, key, envelope.nonce, envelope.ciphertext, aad
                    )
                except AuthenticationFailed:
                    _log.warning("Authentication failed for %s envelope", params.algorithm)
                    raise

        return plaintext

    def _decapsulate(
        self, params: AlgorithmParams, private_key: bytes, envelope: Envelope
    ) -> bytes:
        try:
            return self._provider.decapsulate(params, private_key, envelope.kem_ciphertext)
        except DecapsulationFailed:
            _log.warning("Decapsulation failed for %s envelope", params.algorithm)
            raise

    # ------------------------------------------------------------------
    # Name-based helpers
    # ------------------------------------------------------------------

    def seal_for(
        self,
        name: str,
        plaintext: bytes,
        algorithm: Optional[AlgorithmLike] = None,
        aad: Optional[bytes] = None,
    ) -> Envelope:
        """
        Seal to a public key resolved from the key store.

        The algorithm is, in order: the argument, the one recorded in a
        structured key file, the cipher's default. A recorded id this
        cipher's registry does not know is treated as absent.

        Raises:
            KeyNotFound / KeyFormatError: From the key store
            InvalidKeyMaterial: If the argument contradicts the stored algorithm
        """
        record = self._require_keystore().load_public_key_record(name)

        recorded = record.algorithm
        if recorded is not None and recorded not in self._registry:
            _log.debug("Ignoring unregistered algorithm %s recorded for %s", recorded, name)
            recorded = None

        if algorithm is not None:
            chosen = self._registry.resolve(algorithm).algorithm
            if recorded is not None and recorded != chosen:
                raise InvalidKeyMaterial(
                    f"Key {name} is stored for {recorded}, not {chosen}"
                )
        else:
            chosen = recorded or self._default_algorithm

        return self.seal(record.data, chosen, plaintext, aad)

    def open_as(
        self,
        name: str,
        envelope: EnvelopeLike,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Open an envelope with the private key stored under name.

        Raises:
            KeyNotFound: If no private key is stored under name
            plus everything open() raises
        """
        private_key = self._require_keystore().load_private_key(name)
        return self.open(private_key, envelope, aad)

    def __repr__(self) -> str:
        return f"HybridCipher(provider={self._provider!r}, default={self._default_algorithm})"

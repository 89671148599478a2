"""
Algorithm Registry
==================

Maps an algorithm identifier to the parameters every other component
needs: KEM and AEAD names, and the exact size of each key, ciphertext
and secret. Pure lookup, no I/O.

Size Table (FIPS 203):
    ML-KEM-512:  pk 800,  sk 1632, ct 768,  ss 32
    ML-KEM-768:  pk 1184, sk 2400, ct 1088, ss 32
    ML-KEM-1024: pk 1568, sk 3168, ct 1568, ss 32

All registered AEADs use 256-bit keys, 96-bit nonces and 128-bit tags.

Every size is checked against these parameters before it is trusted.
A mismatch fails closed; nothing is truncated or padded.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Final, Iterator, Optional, Union

from cryptography.hazmat.primitives import hashes

from pqseal.core.errors import UnknownAlgorithm

AES_256_GCM: Final[str] = "AES-256-GCM"
CHACHA20_POLY1305: Final[str] = "ChaCha20-Poly1305"

AEAD_KEY_SIZE: Final[int] = 32  # 256 bits
AEAD_NONCE_SIZE: Final[int] = 12  # 96 bits
AEAD_TAG_SIZE: Final[int] = 16  # 128 bits

SHARED_SECRET_SIZE: Final[int] = 32

# Longest identifier the binary envelope can carry (u8 length prefix)
MAX_ALGORITHM_ID_LENGTH: Final[int] = 255


class AlgorithmId(str, Enum):
    """Registered algorithm identifiers. The value is the wire identifier."""

    ML_KEM_512 = "ML-KEM-512"
    ML_KEM_768 = "ML-KEM-768"
    ML_KEM_1024 = "ML-KEM-1024"
    ML_KEM_768_CHACHA20 = "ML-KEM-768+ChaCha20-Poly1305"
    ML_KEM_1024_CHACHA20 = "ML-KEM-1024+ChaCha20-Poly1305"

    def __str__(self) -> str:
        return self.value


AlgorithmLike = Union[AlgorithmId, str]


@dataclass(frozen=True, slots=True)
class AlgorithmParams:
    """
    Immutable parameter set for one algorithm identifier.

    Attributes:
        algorithm: Wire identifier (e.g. "ML-KEM-768")
        kem_name: KEM parameter set understood by the provider
        aead_name: AEAD understood by the provider
        public_key_size: Encapsulation key length in bytes
        private_key_size: Decapsulation key length in bytes
        ciphertext_size: KEM ciphertext length in bytes
        shared_secret_size: KEM shared secret length in bytes
        kdf_hash: Hash name used by HKDF ("SHA256" or "SHA384")
    """

    algorithm: str
    kem_name: str
    aead_name: str
    public_key_size: int
    private_key_size: int
    ciphertext_size: int
    shared_secret_size: int = SHARED_SECRET_SIZE
    aead_key_size: int = AEAD_KEY_SIZE
    nonce_size: int = AEAD_NONCE_SIZE
    tag_size: int = AEAD_TAG_SIZE
    kdf_hash: str = "SHA256"

    def __post_init__(self) -> None:
        if not self.algorithm or len(self.algorithm) > MAX_ALGORITHM_ID_LENGTH:
            raise ValueError("Algorithm identifier must be 1-255 characters")
        if not self.algorithm.isascii():
            raise ValueError("Algorithm identifier must be ASCII")
        for field_name in (
            "public_key_size",
            "private_key_size",
            "ciphertext_size",
            "shared_secret_size",
            "aead_key_size",
            "nonce_size",
            "tag_size",
        ):
            if getattr(self, field_name) <= 0:
                raise ValueError(f"{field_name} must be positive")
        if self.shared_secret_size < self.aead_key_size:
            raise ValueError("shared_secret_size must be >= aead_key_size")
        if self.kdf_hash not in _KDF_HASHES:
            raise ValueError(f"Unsupported KDF hash: {self.kdf_hash}")

    def kdf_hash_algorithm(self) -> hashes.HashAlgorithm:
        """Return a fresh cryptography hash instance for HKDF."""
        return _KDF_HASHES[self.kdf_hash]()


_KDF_HASHES: Final[dict[str, type[hashes.HashAlgorithm]]] = {
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}


_BUILTIN_PARAMS: Final[tuple[AlgorithmParams, ...]] = (
    AlgorithmParams(
        algorithm=AlgorithmId.ML_KEM_512.value,
        kem_name="ML-KEM-512",
        aead_name=AES_256_GCM,
        public_key_size=800,
        private_key_size=1632,
        ciphertext_size=768,
    ),
    AlgorithmParams(
        algorithm=AlgorithmId.ML_KEM_768.value,
        kem_name="ML-KEM-768",
        aead_name=AES_256_GCM,
        public_key_size=1184,
        private_key_size=2400,
        ciphertext_size=1088,
    ),
    AlgorithmParams(
        algorithm=AlgorithmId.ML_KEM_1024.value,
        kem_name="ML-KEM-1024",
        aead_name=AES_256_GCM,
        public_key_size=1568,
        private_key_size=3168,
        ciphertext_size=1568,
        kdf_hash="SHA384",
    ),
    AlgorithmParams(
        algorithm=AlgorithmId.ML_KEM_768_CHACHA20.value,
        kem_name="ML-KEM-768",
        aead_name=CHACHA20_POLY1305,
        public_key_size=1184,
        private_key_size=2400,
        ciphertext_size=1088,
    ),
    AlgorithmParams(
        algorithm=AlgorithmId.ML_KEM_1024_CHACHA20.value,
        kem_name="ML-KEM-1024",
        aead_name=CHACHA20_POLY1305,
        public_key_size=1568,
        private_key_size=3168,
        ciphertext_size=1568,
        kdf_hash="SHA384",
    ),
)


class AlgorithmRegistry:
    """
    Lookup table from algorithm identifier to AlgorithmParams.

    Usage:
        registry = AlgorithmRegistry()
        params = registry.resolve("ML-KEM-768")
        params.public_key_size  # 1184

    Agility:
        New parameter sets can be added with register(). An identifier
        can never be re-bound to different parameters, so envelopes and
        keys already carrying it keep their meaning.
    """

    __slots__ = ("_params", "_lock")

    def __init__(self, params: Optional[tuple[AlgorithmParams, ...]] = None) -> None:
        self._params: dict[str, AlgorithmParams] = {}
        self._lock = threading.Lock()
        for entry in _BUILTIN_PARAMS if params is None else params:
            self.register(entry)

    @staticmethod
    def _key(algorithm: AlgorithmLike) -> str:
        if isinstance(algorithm, AlgorithmId):
            return algorithm.value
        if isinstance(algorithm, str):
            return algorithm
        raise UnknownAlgorithm(algorithm)

    def register(self, params: AlgorithmParams) -> None:
        """
        Register a parameter set.

        Raises:
            ValueError: If the identifier is already bound to different params
        """
        with self._lock:
            existing = self._params.get(params.algorithm)
            if existing is not None and existing != params:
                raise ValueError(
                    f"Algorithm {params.algorithm} is already registered "
                    "with different parameters"
                )
            self._params[params.algorithm] = params

    def resolve(self, algorithm: AlgorithmLike) -> AlgorithmParams:
        """
        Resolve an identifier to its parameters.

        Raises:
            UnknownAlgorithm: If the identifier is not registered
        """
        params = self._params.get(self._key(algorithm))
        if params is None:
            raise UnknownAlgorithm(algorithm)
        return params

    def algorithms(self) -> tuple[str, ...]:
        """Registered identifiers in registration order."""
        return tuple(self._params)

    def __contains__(self, algorithm: object) -> bool:
        if not isinstance(algorithm, str):
            return False
        return self._key(algorithm) in self._params

    def __iter__(self) -> Iterator[AlgorithmParams]:
        return iter(tuple(self._params.values()))

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"AlgorithmRegistry({len(self._params)} algorithms)"


DEFAULT_REGISTRY: Final[AlgorithmRegistry] = AlgorithmRegistry()

"""
ML-KEM Key Encapsulation Backends
=================================

Post-quantum key encapsulation (NIST FIPS 203, formerly CRYSTALS-Kyber)
behind a small backend interface so the lattice arithmetic stays an
opaque capability.

Backends:
    - KyberPyBackend: kyber-py (pure Python reference), default
    - OqsBackend: liboqs-python (Open Quantum Safe), optional extra

Algorithm Details (ML-KEM-768):
    - Public key: 1184 bytes
    - Secret key: 2400 bytes
    - Ciphertext: 1088 bytes
    - Shared secret: 32 bytes

Implicit Rejection:
    Decapsulating a well-formed but wrong ciphertext returns a
    pseudorandom secret instead of an error. Backends must not add
    checks that turn this into an observable failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Final, Tuple

from kyber_py.ml_kem import ML_KEM_512, ML_KEM_768, ML_KEM_1024

from pqseal.core.crypto.registry import AlgorithmParams

KYBER_PY: Final[str] = "kyber-py"
LIBOQS: Final[str] = "liboqs"


@dataclass(frozen=True, slots=True)
class EncapsulationResult:
    """
    Result of key encapsulation.

    Attributes:
        kem_ciphertext: Encapsulated key ciphertext (send to recipient)
        shared_secret: Secret for key derivation (never persisted)
    """

    kem_ciphertext: bytes
    shared_secret: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing secret material."""
        return f"EncapsulationResult(ct_len={len(self.kem_ciphertext)})"


class KemBackend(ABC):
    """Abstract base for ML-KEM implementations."""

    name: str = "abstract"

    @abstractmethod
    def keygen(self, params: AlgorithmParams) -> Tuple[bytes, bytes]:
        """Generate keypair. Returns (public_key, private_key)."""
        ...

    @abstractmethod
    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> Tuple[bytes, bytes]:
        """Encapsulate. Returns (kem_ciphertext, shared_secret)."""
        ...

    @abstractmethod
    def decapsulate(
        self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes
    ) -> bytes:
        """Decapsulate. Returns shared_secret."""
        ...

    def supports(self, params: AlgorithmParams) -> bool:
        """Whether this backend implements the algorithm's KEM."""
        return False


class KyberPyBackend(KemBackend):
    """
    kyber-py backend.

    Pure Python, so slow, but dependency-free beyond the wheel itself.
    Raises ValueError from the library on malformed keys/ciphertexts.
    """

    name = KYBER_PY

    _SCHEMES: Final[dict[str, Any]] = {
        "ML-KEM-512": ML_KEM_512,
        "ML-KEM-768": ML_KEM_768,
        "ML-KEM-1024": ML_KEM_1024,
    }

    def _scheme(self, params: AlgorithmParams) -> Any:
        try:
            return self._SCHEMES[params.kem_name]
        except KeyError:
            raise ValueError(f"kyber-py does not implement {params.kem_name}") from None

    def supports(self, params: AlgorithmParams) -> bool:
        return params.kem_name in self._SCHEMES

    def keygen(self, params: AlgorithmParams) -> Tuple[bytes, bytes]:
        ek, dk = self._scheme(params).keygen()
        return bytes(ek), bytes(dk)

    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> Tuple[bytes, bytes]:
        shared_secret, ciphertext = self._scheme(params).encaps(public_key)
        return bytes(ciphertext), bytes(shared_secret)

    def decapsulate(
        self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes
    ) -> bytes:
        return bytes(self._scheme(params).decaps(private_key, kem_ciphertext))


class OqsBackend(KemBackend):
    """
    liboqs-python backend (Open Quantum Safe).

    Requires the native liboqs library; install with the "oqs" extra.
    """

    name = LIBOQS

    def __init__(self) -> None:
        import oqs

        self._oqs = oqs
        self._enabled = frozenset(oqs.get_enabled_kem_mechanisms())

    def _mechanism(self, params: AlgorithmParams) -> str:
        if params.kem_name not in self._enabled:
            raise ValueError(f"liboqs does not enable {params.kem_name}")
        return params.kem_name

    def supports(self, params: AlgorithmParams) -> bool:
        return params.kem_name in self._enabled

    def keygen(self, params: AlgorithmParams) -> Tuple[bytes, bytes]:
        with self._oqs.KeyEncapsulation(self._mechanism(params)) as kem:
            public_key = kem.generate_keypair()
            private_key = kem.export_secret_key()
        return bytes(public_key), bytes(private_key)

    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> Tuple[bytes, bytes]:
        with self._oqs.KeyEncapsulation(self._mechanism(params)) as kem:
            ciphertext, shared_secret = kem.encap_secret(public_key)
        return bytes(ciphertext), bytes(shared_secret)

    def decapsulate(
        self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes
    ) -> bytes:
        with self._oqs.KeyEncapsulation(
            self._mechanism(params), secret_key=private_key
        ) as kem:
            return bytes(kem.decap_secret(kem_ciphertext))


def create_kem_backend(name: str) -> KemBackend:
    """
    Build a KEM backend by configuration name.

    Args:
        name: "kyber-py" or "liboqs"

    Raises:
        ValueError: For an unknown backend name
        ImportError: If the liboqs binding is not installed
    """
    if name == KYBER_PY:
        return KyberPyBackend()
    if name == LIBOQS:
        return OqsBackend()
    raise ValueError(f"Unknown KEM backend: {name}")

"""
Error Taxonomy
==============

Every failure in the hybrid encryption core surfaces as one of these
typed exceptions. None of them is ever downgraded to a default value.

Hierarchy:
    PqSealError
    ├── KeyStoreError
    │   ├── KeyNotFound
    │   └── KeyFormatError
    ├── InvalidKeyMaterial
    ├── UnknownAlgorithm
    ├── MalformedEnvelope
    └── DecryptionError
        ├── DecapsulationFailed
        └── AuthenticationFailed

Trust boundary rule:
    DecryptionError subclasses carry a fixed, generic message. Callers
    exposing errors to untrusted parties should catch DecryptionError
    and report a single "decryption failed" condition.
"""

from __future__ import annotations

from typing import Final

_GENERIC_DECRYPTION_MESSAGE: Final[str] = "Decryption failed"


class PqSealError(Exception):
    """Base class for all pqseal errors."""
    pass


class KeyStoreError(PqSealError):
    """Base class for key storage failures."""
    pass


class KeyNotFound(KeyStoreError):
    """No key record exists for the requested name."""

    def __init__(self, name: str, kind: str = "public") -> None:
        super().__init__(f"{kind.capitalize()} key not found: {name}")
        self.name = name
        self.kind = kind


class KeyFormatError(KeyStoreError):
    """A key record exists but cannot be decoded."""
    pass


class InvalidKeyMaterial(PqSealError):
    """Key or secret length disagrees with the resolved algorithm."""
    pass


class UnknownAlgorithm(PqSealError):
    """The algorithm identifier is not registered."""

    def __init__(self, algorithm: object) -> None:
        super().__init__(f"Unknown algorithm: {algorithm!s}")
        self.algorithm = algorithm


class MalformedEnvelope(PqSealError):
    """The envelope could not be parsed or violates its algorithm's sizes."""
    pass


class DecryptionError(PqSealError):
    """Generic decryption failure. Messages never say why."""

    def __init__(self) -> None:
        super().__init__(_GENERIC_DECRYPTION_MESSAGE)


class DecapsulationFailed(DecryptionError):
    """The KEM provider rejected the ciphertext or private key."""
    pass


class AuthenticationFailed(DecryptionError):
    """The AEAD tag did not verify."""
    pass

"""
Key Material Model
==================

A KeyPair is produced by one provider generate() call for one algorithm.
Its halves are never mixed across algorithms.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    Immutable KEM keypair.

    Attributes:
        public_key: Used for encapsulation (can be shared)
        private_key: Used for decapsulation (must be kept secret)
        algorithm: Algorithm identifier both halves were generated for
        key_id: Identifier for this keypair
    """

    public_key: bytes
    private_key: bytes
    algorithm: str
    key_id: str

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return (
            f"KeyPair(algorithm={self.algorithm}, key_id={self.key_id}, "
            f"pk_len={len(self.public_key)})"
        )

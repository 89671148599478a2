"""
ChaCha20-Poly1305 Authenticated Encryption
==========================================

Alternative AEAD for the "+ChaCha20-Poly1305" algorithm identifiers.

Security Properties:
    - 256-bit key
    - 96-bit nonce
    - 128-bit Poly1305 authentication tag
    - IETF RFC 8439 compliant

WARNING:
    - Never reuse (key, nonce) pairs
"""

from __future__ import annotations

import secrets
from typing import Final, Optional

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.exceptions import InvalidTag

from pqseal.core.errors import AuthenticationFailed

# Constants per RFC 8439
CHACHA_KEY_SIZE: Final[int] = 32  # 256 bits
CHACHA_NONCE_SIZE: Final[int] = 12  # 96 bits (IETF variant)
CHACHA_TAG_SIZE: Final[int] = 16  # 128 bits Poly1305


class ChaCha20Cipher:
    """
    ChaCha20-Poly1305 AEAD cipher (RFC 8439).

    Same call shape as AesGcmCipher so the provider can dispatch on
    the algorithm's AEAD name alone.

    Security Notes:
        - ChaCha20 is constant-time in software (no lookup tables)
        - Combined with Poly1305 provides IND-CCA2 security
    """

    __slots__ = ()

    name: Final[str] = "ChaCha20-Poly1305"
    key_size: Final[int] = CHACHA_KEY_SIZE
    nonce_size: Final[int] = CHACHA_NONCE_SIZE
    tag_size: Final[int] = CHACHA_TAG_SIZE

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a cryptographically secure random nonce.

        Returns:
            12 bytes of cryptographic random data
        """
        return secrets.token_bytes(CHACHA_NONCE_SIZE)

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes | bytearray,
        nonce: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Encrypt plaintext using ChaCha20-Poly1305.

        Returns:
            Ciphertext with the Poly1305 tag appended

        Raises:
            ValueError: If key or nonce is the wrong size
        """
        if len(key) != CHACHA_KEY_SIZE:
            raise ValueError(f"Key must be exactly {CHACHA_KEY_SIZE} bytes")
        if len(nonce) != CHACHA_NONCE_SIZE:
            raise ValueError(f"Nonce must be exactly {CHACHA_NONCE_SIZE} bytes")

        return ChaCha20Poly1305(key).encrypt(nonce, plaintext, aad)

    def decrypt(
        self,
        ciphertext: bytes,
        key: bytes | bytearray,
        nonce: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt ciphertext using ChaCha20-Poly1305 with integrity verification.

        Raises:
            ValueError: If key or nonce is the wrong size
            AuthenticationFailed: If the tag does not verify
        """
        if len(key) != CHACHA_KEY_SIZE:
            raise ValueError(f"Key must be exactly {CHACHA_KEY_SIZE} bytes")
        if len(nonce) != CHACHA_NONCE_SIZE:
            raise ValueError(f"Nonce must be exactly {CHACHA_NONCE_SIZE} bytes")
        if len(ciphertext) < CHACHA_TAG_SIZE:
            raise AuthenticationFailed()

        try:
            return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag:
            raise AuthenticationFailed() from None

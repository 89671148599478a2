"""
AES-256-GCM Authenticated Encryption
====================================

Thin AEAD wrapper used by the default provider.

Security Properties:
    - 256-bit key (128-bit security level)
    - 96-bit nonce (NIST recommended)
    - 128-bit authentication tag
    - Authenticated Additional Data (AAD) support

NIST SP 800-38D Compliance:
    - GCM mode with 96-bit IV
    - Unique nonce for each encryption under same key

WARNING:
    - Never reuse (key, nonce) pairs
    - The nonce is supplied by the caller; draw it with generate_nonce()
"""

from __future__ import annotations

import secrets
from typing import Final, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag

from pqseal.core.errors import AuthenticationFailed

# Sizes fixed by NIST SP 800-38D for the 96-bit IV profile
AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
AES_TAG_SIZE: Final[int] = 16  # 128 bits


class AesGcmCipher:
    """
    AEAD used by the AES-256-GCM algorithm ids (ML-KEM-512/768/1024).

    Usage:
        cipher = AesGcmCipher()
        nonce = cipher.generate_nonce()

        ciphertext = cipher.encrypt(plaintext, key, nonce, aad=b"context")
        plaintext = cipher.decrypt(ciphertext, key, nonce, aad=b"context")

    Security Notes:
        - Keys come from the hybrid key derivation, never from here
        - Integrity is verified before any plaintext is returned
    """

    __slots__ = ()

    name: Final[str] = "AES-256-GCM"
    key_size: Final[int] = AES_KEY_SIZE
    nonce_size: Final[int] = AES_NONCE_SIZE
    tag_size: Final[int] = AES_TAG_SIZE

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a cryptographically secure random nonce.

        Returns:
            12 bytes of cryptographic random data

        Security:
            96-bit nonces with random generation have negligible collision
            probability for up to 2^32 encryptions under same key.
        """
        return secrets.token_bytes(AES_NONCE_SIZE)

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes | bytearray,
        nonce: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Encrypt and append the 16-byte tag.

        Args:
            plaintext: Data to encrypt (may be empty)
            key: 32-byte key
            nonce: 12-byte nonce, fresh for this call
            aad: Additional Authenticated Data (authenticated but not encrypted)

        Returns:
            Ciphertext with the 16-byte tag appended

        Raises:
            ValueError: If key or nonce is the wrong size
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(nonce) != AES_NONCE_SIZE:
            raise ValueError(f"Nonce must be exactly {AES_NONCE_SIZE} bytes")

        return AESGCM(key).encrypt(nonce, plaintext, aad)

    def decrypt(
        self,
        ciphertext: bytes,
        key: bytes | bytearray,
        nonce: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Verify the tag and decrypt.

        Args:
            ciphertext: Ciphertext with the tag appended
            key: 32-byte key derived for this envelope
            nonce: Nonce carried in the envelope
            aad: Associated data given to encrypt(), byte for byte

        Returns:
            Decrypted plaintext bytes

        Raises:
            ValueError: If key or nonce is the wrong size
            AuthenticationFailed: If the tag does not verify
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(nonce) != AES_NONCE_SIZE:
            raise ValueError(f"Nonce must be exactly {AES_NONCE_SIZE} bytes")
        if len(ciphertext) < AES_TAG_SIZE:
            raise AuthenticationFailed()

        try:
            return AESGCM(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag:
            raise AuthenticationFailed() from None

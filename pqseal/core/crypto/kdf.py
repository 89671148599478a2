"""
Key Derivation Functions
========================

Turns a KEM shared secret into the AEAD key for one seal/open call.

Derivation:
    key = HKDF-<hash>(
        ikm  = shared_secret,
        salt = SHA-256(kem_ciphertext),
        info = b"pqseal/v1/aead-key/" || algorithm id,
        L    = AEAD key size,
    )

The info label gives domain separation per algorithm identifier, so a
secret can never be reused as a key for a different AEAD. The salt
binds the key to the exact encapsulation that produced the secret.
"""

from __future__ import annotations

import hashlib
from typing import Final

from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from pqseal.core.crypto.registry import AlgorithmParams
from pqseal.core.errors import InvalidKeyMaterial

KDF_LABEL: Final[bytes] = b"pqseal/v1/aead-key/"


def expand_key_hkdf(
    key_material: bytes | bytearray,
    length: int,
    hash_algorithm,
    info: bytes = b"",
    salt: bytes | None = None,
) -> bytes:
    """
    Expand key material using HKDF.

    Args:
        key_material: Input key material
        length: Output length
        hash_algorithm: cryptography hash instance
        info: Context/application info
        salt: Optional salt

    Returns:
        Expanded key bytes
    """
    hkdf = HKDF(
        algorithm=hash_algorithm,
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(bytes(key_material))


def derive_symmetric_key(
    shared_secret: bytes | bytearray,
    params: AlgorithmParams,
    kem_ciphertext: bytes,
) -> bytearray:
    """
    Derive the AEAD key for one envelope.

    Args:
        shared_secret: KEM output, exactly params.shared_secret_size bytes
        params: Resolved algorithm parameters
        kem_ciphertext: The KEM ciphertext carried in the envelope

    Returns:
        Mutable key buffer (caller zeroizes it after use)

    Raises:
        InvalidKeyMaterial: If the shared secret has the wrong length
    """
    if len(shared_secret) != params.shared_secret_size:
        raise InvalidKeyMaterial(
            f"Shared secret must be {params.shared_secret_size} bytes "
            f"for {params.algorithm}"
        )

    return bytearray(
        expand_key_hkdf(
            shared_secret,
            length=params.aead_key_size,
            hash_algorithm=params.kdf_hash_algorithm(),
            info=KDF_LABEL + params.algorithm.encode("ascii"),
            salt=hashlib.sha256(kem_ciphertext).digest(),
        )
    )

"""
Envelope Codec
==============

The self-contained unit of transport/storage for one sealed message:
algorithm identifier, KEM ciphertext, AEAD nonce and AEAD ciphertext
(with the tag appended).

Binary Format (little-endian):
    MAGIC (4) | VERSION (1) |
    ALG_LEN (1) | ALG (ascii) |
    KEM_CT_LEN (2) | KEM_CT |
    NONCE_LEN (1) | NONCE |
    CT_LEN (4) | CIPHERTEXT

JSON Format:
    {"version": 1, "algorithm": "...", "kem_ciphertext": "<b64>",
     "nonce": "<b64>", "ciphertext": "<b64>"}

Decoding is strict. Truncation, trailing bytes or any field whose length
disagrees with the resolved algorithm raises MalformedEnvelope; an
unregistered algorithm raises UnknownAlgorithm.
"""

from __future__ import annotations

import binascii
import json
import struct
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import Any, Final

from pqseal.core.crypto.registry import (
    DEFAULT_REGISTRY,
    AlgorithmLike,
    AlgorithmParams,
    AlgorithmRegistry,
)
from pqseal.core.errors import MalformedEnvelope

# Version for format compatibility
ENVELOPE_VERSION: Final[int] = 1
MAGIC_BYTES: Final[bytes] = b"PQSE"  # pqseal Envelope

_MAX_KEM_CT_LEN: Final[int] = 0xFFFF
_MAX_CT_LEN: Final[int] = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class Envelope:
    """
    Immutable container for one hybrid-encrypted payload.

    Contains everything needed for decryption except the private key.
    Safe to serialize, store and transmit.
    """

    algorithm: str
    kem_ciphertext: bytes
    nonce: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        """Serialize to the canonical binary format."""
        return encode_envelope(self)

    @classmethod
    def from_bytes(
        cls, data: bytes, registry: AlgorithmRegistry = DEFAULT_REGISTRY
    ) -> "Envelope":
        """
        Deserialize from the canonical binary format.

        Raises:
            MalformedEnvelope: If data is malformed or truncated
            UnknownAlgorithm: If the algorithm is not registered
        """
        return decode_envelope(data, registry)

    def to_json(self) -> str:
        """Serialize to JSON string with base64-encoded binary data."""
        return json.dumps({
            "version": ENVELOPE_VERSION,
            "algorithm": self.algorithm,
            "kem_ciphertext": b64encode(self.kem_ciphertext).decode("ascii"),
            "nonce": b64encode(self.nonce).decode("ascii"),
            "ciphertext": b64encode(self.ciphertext).decode("ascii"),
        })

    @classmethod
    def from_json(
        cls, json_str: str | bytes, registry: AlgorithmRegistry = DEFAULT_REGISTRY
    ) -> "Envelope":
        """
        Deserialize from JSON string.

        Raises:
            MalformedEnvelope: If JSON, base64 or field sizes are invalid
            UnknownAlgorithm: If the algorithm is not registered
        """
        try:
            data = json.loads(json_str)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedEnvelope("Envelope is not valid JSON") from exc
        if not isinstance(data, dict):
            raise MalformedEnvelope("Envelope JSON must be an object")

        if data.get("version") != ENVELOPE_VERSION:
            raise MalformedEnvelope(f"Unsupported envelope version: {data.get('version')!r}")

        algorithm = data.get("algorithm")
        if not isinstance(algorithm, str):
            raise MalformedEnvelope("Envelope field 'algorithm' missing or not a string")

        envelope = cls(
            algorithm=algorithm,
            kem_ciphertext=_b64_field(data, "kem_ciphertext"),
            nonce=_b64_field(data, "nonce"),
            ciphertext=_b64_field(data, "ciphertext"),
        )
        validate_envelope(envelope, registry.resolve(algorithm))
        return envelope

    def __repr__(self) -> str:
        """Safe representation."""
        return (
            f"Envelope({self.algorithm}, "
            f"kem_ct_len={len(self.kem_ciphertext)}, "
            f"ct_len={len(self.ciphertext)})"
        )


def _b64_field(data: dict[str, Any], name: str) -> bytes:
    value = data.get(name)
    if not isinstance(value, str):
        raise MalformedEnvelope(f"Envelope field '{name}' missing or not a string")
    try:
        return b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedEnvelope(f"Envelope field '{name}' is not valid base64") from exc


def validate_envelope(envelope: Envelope, params: AlgorithmParams) -> None:
    """
    Check every envelope field against the resolved algorithm.

    Raises:
        MalformedEnvelope: On any size disagreement
    """
    if envelope.algorithm != params.algorithm:
        raise MalformedEnvelope("Envelope algorithm does not match parameters")
    if len(envelope.kem_ciphertext) != params.ciphertext_size:
        raise MalformedEnvelope(
            f"KEM ciphertext must be {params.ciphertext_size} bytes for {params.algorithm}"
        )
    if len(envelope.nonce) != params.nonce_size:
        raise MalformedEnvelope(
            f"Nonce must be {params.nonce_size} bytes for {params.algorithm}"
        )
    if len(envelope.ciphertext) < params.tag_size:
        raise MalformedEnvelope("Ciphertext shorter than authentication tag")


class _Reader:
    """Bounds-checked cursor over an encoded envelope."""

    __slots__ = ("_data", "_offset")

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._offset = 0

    def take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise MalformedEnvelope("Envelope is truncated")
        chunk = bytes(self._data[self._offset:end])
        self._offset = end
        return chunk

    def unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def finish(self) -> None:
        if self._offset != len(self._data):
            raise MalformedEnvelope("Trailing bytes after envelope")


def encode_envelope(envelope: Envelope) -> bytes:
    """
    Serialize an envelope to the binary wire format.

    Raises:
        MalformedEnvelope: If a field is too long for its length prefix
    """
    try:
        alg_bytes = envelope.algorithm.encode("ascii")
    except UnicodeEncodeError as exc:
        raise MalformedEnvelope("Algorithm identifier is not ASCII") from exc
    if not 0 < len(alg_bytes) <= 0xFF:
        raise MalformedEnvelope("Algorithm identifier must be 1-255 bytes")
    if len(envelope.kem_ciphertext) > _MAX_KEM_CT_LEN:
        raise MalformedEnvelope("KEM ciphertext too long")
    if len(envelope.nonce) > 0xFF:
        raise MalformedEnvelope("Nonce too long")
    if len(envelope.ciphertext) > _MAX_CT_LEN:
        raise MalformedEnvelope("Ciphertext too long")

    parts = [
        MAGIC_BYTES,
        struct.pack("<B", ENVELOPE_VERSION),
        struct.pack("<B", len(alg_bytes)),
        alg_bytes,
        struct.pack("<H", len(envelope.kem_ciphertext)),
        envelope.kem_ciphertext,
        struct.pack("<B", len(envelope.nonce)),
        envelope.nonce,
        struct.pack("<I", len(envelope.ciphertext)),
        envelope.ciphertext,
    ]

    return b"".join(parts)


def decode_envelope(
    data: bytes, registry: AlgorithmRegistry = DEFAULT_REGISTRY
) -> Envelope:
    """
    Parse the binary wire format.

    Raises:
        MalformedEnvelope: If data is malformed, truncated or mis-sized
        UnknownAlgorithm: If the algorithm is not registered
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise MalformedEnvelope("Envelope must be bytes")

    reader = _Reader(bytes(data))

    if reader.take(len(MAGIC_BYTES)) != MAGIC_BYTES:
        raise MalformedEnvelope("Invalid envelope: bad magic bytes")

    version = reader.unpack("<B")
    if version != ENVELOPE_VERSION:
        raise MalformedEnvelope(f"Unsupported envelope version: {version}")

    alg_len = reader.unpack("<B")
    try:
        algorithm = reader.take(alg_len).decode("ascii")
    except UnicodeDecodeError as exc:
        raise MalformedEnvelope("Algorithm identifier is not ASCII") from exc
    if not algorithm:
        raise MalformedEnvelope("Algorithm identifier is empty")

    # Resolve before reading variable fields so sizes are known
    params = registry.resolve(algorithm)

    kem_ciphertext = reader.take(reader.unpack("<H"))
    nonce = reader.take(reader.unpack("<B"))
    ciphertext = reader.take(reader.unpack("<I"))
    reader.finish()

    envelope = Envelope(
        algorithm=params.algorithm,
        kem_ciphertext=kem_ciphertext,
        nonce=nonce,
        ciphertext=ciphertext,
    )
    validate_envelope(envelope, params)
    return envelope


def build_envelope(
    algorithm: AlgorithmLike,
    kem_ciphertext: bytes,
    nonce: bytes,
    ciphertext: bytes,
) -> Envelope:
    """Construct an envelope, normalizing the algorithm to its wire string."""
    return Envelope(
        algorithm=str(algorithm),
        kem_ciphertext=bytes(kem_ciphertext),
        nonce=bytes(nonce),
        ciphertext=bytes(ciphertext),
    )

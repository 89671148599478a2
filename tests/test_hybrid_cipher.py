from __future__ import annotations

import json
import logging
from base64 import b64encode
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import pytest

from pqseal.core.config import CryptoConfig, PathConfig, PqSealConfig
from pqseal.core.crypto.envelope import Envelope
from pqseal.core.crypto.hybrid_engine import HybridCipher
from pqseal.core.crypto.kem import EncapsulationResult
from pqseal.core.crypto.provider import CryptoProvider, DefaultProvider
from pqseal.core.crypto.registry import DEFAULT_REGISTRY, AlgorithmId, AlgorithmParams
from pqseal.core.errors import (
    AuthenticationFailed,
    DecapsulationFailed,
    DecryptionError,
    InvalidKeyMaterial,
    KeyNotFound,
    MalformedEnvelope,
    UnknownAlgorithm,
)
from pqseal.core.keys.keypair import KeyPair
from pqseal.core.keys.keystore import KeyStore, PublicKeyEncoding

ALGORITHMS = [algorithm.value for algorithm in AlgorithmId]

KeypairFactory = Callable[[str], KeyPair]


def _flip(data: bytes, index: int = 0) -> bytes:
    buf = bytearray(data)
    buf[index] ^= 0x01
    return bytes(buf)


class _RecordingProvider(CryptoProvider):
    """Provider that records every call and refuses to do any work."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _record(self, name: str):
        self.calls.append(name)
        raise AssertionError(f"provider.{name} must not be reached")

    def generate(self, params, key_id=None):
        return self._record("generate")

    def encapsulate(self, params, public_key):
        return self._record("encapsulate")

    def decapsulate(self, params, private_key, kem_ciphertext):
        return self._record("decapsulate")

    def aead_encrypt(self, params, key, nonce, plaintext, aad=None):
        return self._record("aead_encrypt")

    def aead_decrypt(self, params, key, nonce, ciphertext, aad=None):
        return self._record("aead_decrypt")


class _StubKemProvider(DefaultProvider):
    """Real AEADs, canned KEM results."""

    def __init__(
        self,
        kem_ciphertext: Optional[bytes] = None,
        shared_secret: bytes = b"\x11" * 32,
        decapsulate_error: bool = False,
        nonce: Optional[bytes] = None,
    ) -> None:
        super().__init__()
        self._nonce = nonce
        self._kem_ciphertext = kem_ciphertext
        self._shared_secret = shared_secret
        self._decapsulate_error = decapsulate_error

    def encapsulate(self, params: AlgorithmParams, public_key: bytes) -> EncapsulationResult:
        ct = self._kem_ciphertext
        if ct is None:
            ct = b"\x22" * params.ciphertext_size
        return EncapsulationResult(kem_ciphertext=ct, shared_secret=self._shared_secret)

    def decapsulate(self, params: AlgorithmParams, private_key: bytes, kem_ciphertext: bytes) -> bytes:
        if self._decapsulate_error:
            raise DecapsulationFailed()
        return self._shared_secret

    def generate_nonce(self, params: AlgorithmParams) -> bytes:
        if self._nonce is None:
            return super().generate_nonce(params)
        return self._nonce


# ----------------------------------------------------------------------
# Round trips
# ----------------------------------------------------------------------


@pytest.mark.parametrize("algorithm", ALGORITHMS)
@pytest.mark.parametrize("plaintext", [b"", b"hello", bytes(range(256)) * 64])
def test_seal_open_round_trip(
    cipher: HybridCipher, keypair_for: KeypairFactory, algorithm: str, plaintext: bytes
) -> None:
    keypair = keypair_for(algorithm)
    envelope = cipher.seal(keypair.public_key, algorithm, plaintext)

    assert envelope.algorithm == algorithm
    assert len(envelope.ciphertext) == len(plaintext) + 16
    assert cipher.open(keypair.private_key, envelope) == plaintext


def test_quantum_safe_scenario(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"quantum-safe")

    assert len(envelope.ciphertext) == 12 + 16
    assert len(envelope.kem_ciphertext) == 1088
    assert len(envelope.nonce) == 12
    assert cipher.open(keypair.private_key, envelope) == b"quantum-safe"


def test_open_accepts_wire_forms(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-512")
    envelope = cipher.seal(keypair.public_key, AlgorithmId.ML_KEM_512, b"payload")

    assert cipher.open(keypair.private_key, envelope.to_bytes()) == b"payload"
    assert cipher.open(keypair.private_key, bytearray(envelope.to_bytes())) == b"payload"
    assert cipher.open(keypair.private_key, Envelope.from_json(envelope.to_json())) == b"payload"


def test_seal_is_not_deterministic(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    first = cipher.seal(keypair.public_key, "ML-KEM-768", b"same")
    second = cipher.seal(keypair.public_key, "ML-KEM-768", b"same")

    assert first.kem_ciphertext != second.kem_ciphertext
    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext


def test_aad_round_trip_and_mismatch(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"data", aad=b"file-42")

    assert cipher.open(keypair.private_key, envelope, aad=b"file-42") == b"data"
    with pytest.raises(AuthenticationFailed):
        cipher.open(keypair.private_key, envelope, aad=b"file-43")
    with pytest.raises(AuthenticationFailed):
        cipher.open(keypair.private_key, envelope)


# ----------------------------------------------------------------------
# Tampering and wrong keys
# ----------------------------------------------------------------------


@pytest.mark.parametrize("algorithm", ["ML-KEM-768", "ML-KEM-768+ChaCha20-Poly1305"])
@pytest.mark.parametrize("index", [0, -1])
def test_ciphertext_bit_flip(
    cipher: HybridCipher, keypair_for: KeypairFactory, algorithm: str, index: int
) -> None:
    keypair = keypair_for(algorithm)
    envelope = cipher.seal(keypair.public_key, algorithm, b"integrity matters")
    tampered = replace(envelope, ciphertext=_flip(envelope.ciphertext, index))

    with pytest.raises(AuthenticationFailed):
        cipher.open(keypair.private_key, tampered)


def test_nonce_bit_flip(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"data")
    with pytest.raises(AuthenticationFailed):
        cipher.open(keypair.private_key, replace(envelope, nonce=_flip(envelope.nonce)))


def test_kem_ciphertext_bit_flip(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"data")
    tampered = replace(envelope, kem_ciphertext=_flip(envelope.kem_ciphertext, 100))

    # Implicit rejection yields an unrelated secret, so the tag fails
    with pytest.raises(DecryptionError) as excinfo:
        cipher.open(keypair.private_key, tampered)
    assert str(excinfo.value) == "Decryption failed"


def test_wrong_private_key(
    cipher: HybridCipher, keypair_for: KeypairFactory, other_keypair_768: KeyPair
) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"for keypair only")
    with pytest.raises(DecryptionError):
        cipher.open(other_keypair_768.private_key, envelope)


def test_algorithm_relabel_fails(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-768")
    envelope = cipher.seal(keypair.public_key, "ML-KEM-768", b"data")
    # Same sizes, different AEAD and KDF label
    relabelled = replace(envelope, algorithm="ML-KEM-768+ChaCha20-Poly1305")
    with pytest.raises(AuthenticationFailed):
        cipher.open(keypair.private_key, relabelled)


def test_private_key_of_other_level(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    envelope = cipher.seal(keypair_for("ML-KEM-768").public_key, "ML-KEM-768", b"data")
    with pytest.raises(InvalidKeyMaterial):
        cipher.open(keypair_for("ML-KEM-512").private_key, envelope)


def test_error_messages_are_generic() -> None:
    assert str(AuthenticationFailed()) == str(DecapsulationFailed()) == "Decryption failed"


# ----------------------------------------------------------------------
# Validation before any provider call
# ----------------------------------------------------------------------


@pytest.mark.parametrize("size", [0, 1183, 1185, 800])
def test_seal_rejects_mis_sized_public_key(size: int) -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal(b"\x00" * size, "ML-KEM-768", b"data")
    assert provider.calls == []


def test_seal_rejects_unknown_algorithm() -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    with pytest.raises(UnknownAlgorithm):
        cipher.seal(b"\x00" * 1184, "ML-KEM-4096", b"data")
    assert provider.calls == []


def test_open_rejects_mis_sized_private_key() -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    envelope = Envelope("ML-KEM-768", b"\x00" * 1088, b"\x00" * 12, b"\x00" * 16)
    with pytest.raises(InvalidKeyMaterial):
        cipher.open(b"\x00" * 2399, envelope)
    assert provider.calls == []


@pytest.mark.parametrize(
    "envelope",
    [
        Envelope("ML-KEM-768", b"\x00" * 1087, b"\x00" * 12, b"\x00" * 16),
        Envelope("ML-KEM-768", b"\x00" * 1088, b"\x00" * 11, b"\x00" * 16),
        Envelope("ML-KEM-768", b"\x00" * 1088, b"\x00" * 12, b"\x00" * 15),
    ],
)
def test_open_rejects_mis_sized_envelope(envelope: Envelope) -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    with pytest.raises(MalformedEnvelope):
        cipher.open(b"\x00" * 2400, envelope)
    assert provider.calls == []


def test_open_rejects_unknown_envelope_algorithm() -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    envelope = Envelope("ML-KEM-4096", b"\x00" * 1088, b"\x00" * 12, b"\x00" * 16)
    with pytest.raises(UnknownAlgorithm):
        cipher.open(b"\x00" * 2400, envelope)
    assert provider.calls == []


def test_open_rejects_garbage_bytes() -> None:
    provider = _RecordingProvider()
    cipher = HybridCipher(provider=provider)
    with pytest.raises(MalformedEnvelope):
        cipher.open(b"\x00" * 2400, b"not an envelope")
    assert provider.calls == []


# ----------------------------------------------------------------------
# Provider contract
# ----------------------------------------------------------------------


def test_mis_sized_provider_kem_ciphertext() -> None:
    cipher = HybridCipher(provider=_StubKemProvider(kem_ciphertext=b"\x22" * 10))
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal(b"\x00" * 1184, "ML-KEM-768", b"data")


def test_mis_sized_shared_secret() -> None:
    cipher = HybridCipher(provider=_StubKemProvider(shared_secret=b"\x11" * 16))
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal(b"\x00" * 1184, "ML-KEM-768", b"data")


def test_seal_takes_nonce_from_provider() -> None:
    cipher = HybridCipher(provider=_StubKemProvider(nonce=b"\x33" * 12))
    envelope = cipher.seal(b"\x00" * 1184, "ML-KEM-768", b"data")
    assert envelope.nonce == b"\x33" * 12
    assert cipher.open(b"\x00" * 2400, envelope) == b"data"


def test_mis_sized_provider_nonce() -> None:
    cipher = HybridCipher(provider=_StubKemProvider(nonce=b"\x33" * 8))
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal(b"\x00" * 1184, "ML-KEM-768", b"data")


@pytest.mark.parametrize("algorithm", ALGORITHMS)
def test_default_provider_nonce(provider: DefaultProvider, algorithm: str) -> None:
    params = DEFAULT_REGISTRY.resolve(algorithm)
    assert len(provider.generate_nonce(params)) == params.nonce_size
    assert provider.generate_nonce(params) != provider.generate_nonce(params)


def test_decapsulation_failure_propagates_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    sealer = HybridCipher(provider=_StubKemProvider())
    envelope = sealer.seal(b"\x00" * 1184, "ML-KEM-768", b"data")

    opener = HybridCipher(provider=_StubKemProvider(decapsulate_error=True))
    with caplog.at_level(logging.WARNING, logger="pqseal.cipher"):
        with pytest.raises(DecapsulationFailed):
            opener.open(b"\x00" * 2400, envelope)
    assert "Decapsulation failed" in caplog.text


def test_kem_rejecting_public_key(cipher: HybridCipher) -> None:
    # Correct length, but coefficients out of range fail the modulus check
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal(b"\xff" * 1184, "ML-KEM-768", b"data")


def test_logs_carry_no_secrets(
    cipher: HybridCipher, keypair_for: KeypairFactory, caplog: pytest.LogCaptureFixture
) -> None:
    keypair = keypair_for("ML-KEM-768")
    plaintext = b"top secret payload"
    with caplog.at_level(logging.DEBUG, logger="pqseal"):
        envelope = cipher.seal(keypair.public_key, "ML-KEM-768", plaintext)
        cipher.open(keypair.private_key, envelope)
        with pytest.raises(AuthenticationFailed):
            cipher.open(keypair.private_key, envelope, aad=b"wrong")

    assert "top secret" not in caplog.text
    assert envelope.nonce.hex() not in caplog.text
    assert keypair.private_key[:16].hex() not in caplog.text


def test_concurrent_seal_open(cipher: HybridCipher, keypair_for: KeypairFactory) -> None:
    keypair = keypair_for("ML-KEM-512")

    def work(i: int) -> bytes:
        message = f"message {i}".encode()
        envelope = cipher.seal(keypair.public_key, "ML-KEM-512", message)
        return cipher.open(keypair.private_key, envelope)

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(work, range(8)))
    assert results == [f"message {i}".encode() for i in range(8)]


# ----------------------------------------------------------------------
# Key generation and name-based helpers
# ----------------------------------------------------------------------


def test_generate_keypair_sizes(cipher: HybridCipher) -> None:
    keypair = cipher.generate_keypair("ML-KEM-512", key_id="fixed-id")
    assert len(keypair.public_key) == 800
    assert len(keypair.private_key) == 1632
    assert keypair.algorithm == "ML-KEM-512"
    assert keypair.key_id == "fixed-id"


def test_generate_keypair_unknown_algorithm(cipher: HybridCipher) -> None:
    with pytest.raises(UnknownAlgorithm):
        cipher.generate_keypair("ML-KEM-2048")


def test_generate_and_persist(cipher: HybridCipher, keystore: KeyStore) -> None:
    keypair = cipher.generate_keypair("ML-KEM-512", name="alice")
    assert keystore.load_public_key("alice") == keypair.public_key
    assert keystore.load_private_key("alice") == keypair.private_key
    assert keystore.list_keys() == {"alice"}


def test_generate_with_name_requires_keystore(provider: DefaultProvider) -> None:
    cipher = HybridCipher(provider=provider)
    with pytest.raises(ValueError):
        cipher.generate_keypair("ML-KEM-512", name="alice")


def test_seal_for_uses_recorded_algorithm(cipher: HybridCipher) -> None:
    cipher.generate_keypair("ML-KEM-512", name="bob", encoding=PublicKeyEncoding.STRUCTURED)
    envelope = cipher.seal_for("bob", b"hi bob")
    assert envelope.algorithm == "ML-KEM-512"
    assert cipher.open_as("bob", envelope) == b"hi bob"


def test_seal_for_raw_key_uses_default(
    keystore: KeyStore, provider: DefaultProvider, keypair_for: KeypairFactory
) -> None:
    keystore.save("carol", keypair_for("ML-KEM-512"))
    cipher = HybridCipher(provider=provider, keystore=keystore, default_algorithm="ML-KEM-512")
    envelope = cipher.seal_for("carol", b"hi carol")
    assert envelope.algorithm == "ML-KEM-512"
    assert cipher.open_as("carol", envelope.to_bytes()) == b"hi carol"


def test_seal_for_explicit_algorithm(
    cipher: HybridCipher, keystore: KeyStore, keypair_for: KeypairFactory
) -> None:
    keystore.save("dan", keypair_for("ML-KEM-768"))
    envelope = cipher.seal_for("dan", b"x", algorithm=AlgorithmId.ML_KEM_768_CHACHA20)
    assert envelope.algorithm == "ML-KEM-768+ChaCha20-Poly1305"
    assert cipher.open_as("dan", envelope) == b"x"


def test_seal_for_conflicting_algorithm(cipher: HybridCipher) -> None:
    cipher.generate_keypair("ML-KEM-512", name="erin", encoding=PublicKeyEncoding.STRUCTURED)
    with pytest.raises(InvalidKeyMaterial):
        cipher.seal_for("erin", b"x", algorithm="ML-KEM-768")


def test_seal_for_ignores_unregistered_recorded_algorithm(
    cipher: HybridCipher, key_dir: Path, keypair_for: KeypairFactory
) -> None:
    keypair = keypair_for("ML-KEM-768")
    (key_dir / "carol.pub.json").write_text(json.dumps({
        "public_key": b64encode(keypair.public_key).decode(),
        "algorithm": "Kyber768",
    }))
    (key_dir / "carol.key").write_bytes(keypair.private_key)

    envelope = cipher.seal_for("carol", b"x", algorithm="ML-KEM-768")
    assert envelope.algorithm == "ML-KEM-768"
    assert cipher.open_as("carol", envelope) == b"x"

    # With no argument the cipher default applies
    assert cipher.seal_for("carol", b"y").algorithm == "ML-KEM-768"


def test_seal_for_missing_key(cipher: HybridCipher) -> None:
    with pytest.raises(KeyNotFound):
        cipher.seal_for("nobody", b"x")


def test_open_as_missing_private_key(
    cipher: HybridCipher, keystore: KeyStore, key_dir: Path, keypair_for: KeypairFactory
) -> None:
    keypair = keypair_for("ML-KEM-768")
    keystore.save("frank", keypair)
    envelope = cipher.seal_for("frank", b"x")
    (key_dir / "frank.key").unlink()
    with pytest.raises(KeyNotFound):
        cipher.open_as("frank", envelope)


def test_from_config(tmp_path: Path) -> None:
    key_dir = tmp_path / "keys"
    key_dir.mkdir()
    config = PqSealConfig(
        paths=PathConfig(key_dir=key_dir, log_dir=tmp_path / "logs"),
        crypto=CryptoConfig(default_algorithm="ML-KEM-1024"),
    )
    cipher = HybridCipher.from_config(config)
    assert cipher.keystore is not None
    assert cipher.keystore.directory == key_dir
    assert "ML-KEM-1024" in repr(cipher)


def test_from_config_unknown_default(tmp_path: Path) -> None:
    config = PqSealConfig(
        paths=PathConfig(key_dir=tmp_path, log_dir=tmp_path),
        crypto=CryptoConfig(default_algorithm="ML-KEM-4096"),
    )
    with pytest.raises(UnknownAlgorithm):
        HybridCipher.from_config(config)

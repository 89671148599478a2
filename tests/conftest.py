from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest

from pqseal.core.config import PqSealConfig
from pqseal.core.crypto.hybrid_engine import HybridCipher
from pqseal.core.crypto.provider import DefaultProvider
from pqseal.core.crypto.registry import DEFAULT_REGISTRY, AlgorithmId
from pqseal.core.keys.keypair import KeyPair
from pqseal.core.keys.keystore import KeyStore


@pytest.fixture(scope="session")
def provider() -> DefaultProvider:
    return DefaultProvider()


@pytest.fixture(scope="session")
def keypair_for(provider: DefaultProvider) -> Callable[[str], KeyPair]:
    # kyber-py is pure Python; generate each parameter set once per session.
    cache: dict[str, KeyPair] = {}

    def _get(algorithm: str) -> KeyPair:
        if algorithm not in cache:
            cache[algorithm] = provider.generate(DEFAULT_REGISTRY.resolve(algorithm))
        return cache[algorithm]

    return _get


@pytest.fixture(scope="session")
def other_keypair_768(provider: DefaultProvider) -> KeyPair:
    return provider.generate(DEFAULT_REGISTRY.resolve(AlgorithmId.ML_KEM_768))


@pytest.fixture
def key_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "keys"
    directory.mkdir()
    return directory


@pytest.fixture
def keystore(key_dir: Path) -> KeyStore:
    return KeyStore(key_dir)


@pytest.fixture
def cipher(provider: DefaultProvider, keystore: KeyStore) -> HybridCipher:
    return HybridCipher(provider=provider, keystore=keystore)


@pytest.fixture(autouse=True)
def _reset_config() -> Iterator[None]:
    PqSealConfig.reset_instance()
    yield
    PqSealConfig.reset_instance()

"""
Key material and its on-disk storage.
"""

from pqseal.core.keys.keypair import KeyPair
from pqseal.core.keys.keystore import KeyStore, PublicKeyEncoding, StoredKeyRecord

__all__ = ["KeyPair", "KeyStore", "PublicKeyEncoding", "StoredKeyRecord"]

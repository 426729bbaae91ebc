"""Symmetric AES-GCM codec for encrypting values before they are committed.

The database consumes it only as two callables, `encrypt(bytes) -> bytes` and
`decrypt(bytes) -> bytes`, so any other cipher with the same shape can be used.

Layout of a ciphertext: 32-byte IV followed by the AES-GCM output (which
carries the tag). The IV is SHA-256 of an IV source; by default the source is
HMAC-SHA256(key, plaintext), which makes encryption deterministic. Identical
plaintexts then map to identical commits, which deduplication and
compare-and-swap by old value rely on.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

IV_LEN = 32
KEY_LEN = 32
PBKDF2_ITERATIONS = 100_000


def pbkdf2(password: str, salt: bytes, *, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


class AesGcmCodec:
    def __init__(
        self,
        password: str,
        salt: bytes,
        iv_source: Callable[[bytes], bytes] | None = None,
    ) -> None:
        self._key = pbkdf2(password, salt)
        self._aead = AESGCM(self._key)
        self._iv_source = iv_source

    def _iv(self, data: bytes) -> bytes:
        if self._iv_source is not None:
            source = self._iv_source(data)
        else:
            source = hmac.new(self._key, data, hashlib.sha256).digest()
        return hashlib.sha256(source).digest()

    def encrypt(self, data: bytes) -> bytes:
        iv = self._iv(bytes(data))
        return iv + self._aead.encrypt(iv, bytes(data), None)

    def decrypt(self, data: bytes) -> bytes:
        iv, cipher = data[:IV_LEN], data[IV_LEN:]
        return self._aead.decrypt(bytes(iv), bytes(cipher), None)

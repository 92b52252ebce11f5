"""Key Material Resolver.

Normalizes operator-supplied key material into a fixed-size AES key.

Resolution order (most specific first):
1. Hexadecimal that decodes to exactly ``key_length`` bytes: used directly
2. Standard base64 that decodes to exactly ``key_length`` bytes: used directly
3. Anything else: SHA-256 over the UTF-8 bytes, truncated to ``key_length``

The cascade is total. A hex or base64 candidate of the wrong decoded length
is not an error, it falls through to the derivation branch. The only failure
is missing material.
"""

import base64
import binascii
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cryptography.hazmat.primitives import hashes

from atrest.core.logging import emit, get_logger

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


class CryptoError(Exception):
    """Base exception for the encryption core."""
    pass


class ConfigurationError(CryptoError):
    """Key material is missing or the resolver is misconfigured."""
    pass


class KeyEncoding(str, Enum):
    """How the key material was interpreted."""

    HEX = "hex"
    BASE64 = "base64"
    DERIVED = "sha256"


@dataclass(frozen=True)
class ResolvedKey:
    """Result of key resolution."""

    key: bytes = field(repr=False)
    encoding: KeyEncoding
    key_length: int


class KeyMaterialResolver:
    """Maps a configuration string to a fixed-length key.

    Deterministic: the same string always yields the same key, so data
    encrypted before a restart still decrypts after it.
    """

    SUPPORTED_KEY_LENGTHS = (16, 24, 32)

    def __init__(self, key_length: int = 32, logger: Any = None):
        if key_length not in self.SUPPORTED_KEY_LENGTHS:
            raise ConfigurationError(
                f"Key length must be one of {self.SUPPORTED_KEY_LENGTHS} bytes, got {key_length}"
            )
        self.key_length = key_length
        self._logger = logger if logger is not None else get_logger(__name__)

    def resolve(self, key_material: str | None) -> bytes:
        """Resolve key material to exactly ``key_length`` bytes.

        Raises:
            ConfigurationError: If no key material was supplied
        """
        return self.resolve_with_source(key_material).key

    def resolve_with_source(self, key_material: str | None) -> ResolvedKey:
        """Resolve key material and report which branch produced the key."""
        if not isinstance(key_material, str) or not key_material:
            emit(self._logger, "error", "No encryption key material configured")
            raise ConfigurationError("No encryption key material configured")

        key = self._decode_hex(key_material)
        if key is not None:
            encoding = KeyEncoding.HEX
        else:
            key = self._decode_base64(key_material)
            if key is not None:
                encoding = KeyEncoding.BASE64
            else:
                key = self._derive(key_material)
                encoding = KeyEncoding.DERIVED

        emit(self._logger, "debug", "Resolved encryption key", encoding=encoding.value)
        return ResolvedKey(key=key, encoding=encoding, key_length=self.key_length)

    def _decode_hex(self, key_material: str) -> bytes | None:
        # bytes.fromhex tolerates whitespace, so check the alphabet first
        if len(key_material) != self.key_length * 2 or not _HEX_RE.fullmatch(key_material):
            return None
        return bytes.fromhex(key_material)

    def _decode_base64(self, key_material: str) -> bytes | None:
        try:
            decoded = base64.b64decode(key_material, validate=True)
        except (binascii.Error, ValueError):
            return None
        if len(decoded) != self.key_length:
            return None
        return decoded

    def _derive(self, key_material: str) -> bytes:
        digest = hashes.Hash(hashes.SHA256())
        digest.update(key_material.encode("utf-8", errors="surrogatepass"))
        return digest.finalize()[: self.key_length]


def generate_key_material(encoding: str = "hex", key_length: int = 32) -> str:
    """Generate random key material that resolves without derivation.

    Args:
        encoding: "hex" or "base64"
        key_length: Key size in bytes
    """
    key = os.urandom(key_length)
    if encoding == KeyEncoding.HEX.value:
        return key.hex()
    if encoding == KeyEncoding.BASE64.value:
        return base64.b64encode(key).decode("ascii")
    raise ValueError(f"Unsupported key encoding: {encoding}")

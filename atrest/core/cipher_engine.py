"""Authenticated encryption engine.

AES-256-GCM over UTF-8 strings with hex-encoded envelopes:
- nonce: 12 random bytes per call (24 hex chars)
- tag: 16 bytes (32 hex chars)
- ciphertext: same length as the plaintext bytes

Decryption fails closed. Every failure, whether malformed hex, wrong field
lengths, a tampered field, a wrong nonce or a wrong key, surfaces as the same
``DecryptionError("Decryption failed")``.
"""

import os
import re
from dataclasses import dataclass
from typing import Any, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from atrest.config import Settings, get_settings
from atrest.core.key_resolver import CryptoError, KeyMaterialResolver
from atrest.core.logging import emit, get_logger

_HEX_RE = re.compile(r"(?:[0-9a-fA-F]{2})*")

DECRYPTION_FAILED = "Decryption failed"
ENCRYPTION_FAILED = "Encryption failed"


class DecryptionError(CryptoError):
    """Failed to decrypt data.

    The message is always "Decryption failed" regardless of cause.
    """

    def __init__(self):
        super().__init__(DECRYPTION_FAILED)


class EncryptionError(CryptoError):
    """Failed to encrypt data."""

    def __init__(self):
        super().__init__(ENCRYPTION_FAILED)


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Hex-encoded output of one encrypt call.

    All three fields must come from the same call; mixing fields from
    different calls fails authentication.
    """

    ciphertext: str
    tag: str
    nonce: str

    def to_dict(self) -> dict[str, str]:
        return {"ciphertext": self.ciphertext, "tag": self.tag, "nonce": self.nonce}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedEnvelope":
        try:
            return cls(
                ciphertext=data["ciphertext"],
                tag=data["tag"],
                nonce=data["nonce"],
            )
        except (KeyError, TypeError):
            raise DecryptionError() from None


class CipherEngine:
    """AES-256-GCM encryption with a key resolved once at construction.

    Instances hold no mutable state, so one engine can serve concurrent
    encrypt/decrypt calls from many threads.

    Example:
        engine = CipherEngine(os.environ.get("ENCRYPTION_KEY"))
        envelope = engine.encrypt("secret")
        engine.decrypt(envelope.ciphertext, envelope.tag, envelope.nonce)
    """

    ALGORITHM = "AES-256-GCM"
    KEY_SIZE = 32    # 256 bits
    NONCE_SIZE = 12  # 96 bits recommended for GCM
    TAG_SIZE = 16    # 128 bits

    def __init__(
        self,
        key_material: str | None,
        associated_data: bytes | None = None,
        logger: Any = None,
    ):
        """
        Initialize the engine.

        Args:
            key_material: Key as hex, base64 or arbitrary text
            associated_data: Optional data authenticated with every message
            logger: Sink for warnings and errors (defaults to the module logger)

        Raises:
            ConfigurationError: If no key material was supplied
        """
        self._logger = logger if logger is not None else get_logger(__name__)
        resolver = KeyMaterialResolver(self.KEY_SIZE, logger=self._logger)
        self._cipher = AESGCM(resolver.resolve(key_material))
        self._associated_data = associated_data or None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, logger: Any = None) -> "CipherEngine":
        """Build an engine from application settings."""
        settings = settings or get_settings()
        logger = logger if logger is not None else get_logger(__name__)
        if settings.ephemeral_key:
            emit(
                logger,
                "warning",
                "No ENCRYPTION_KEY provided, using generated key (not suitable for production)",
            )
        return cls(
            settings.encryption_key,
            associated_data=settings.associated_data,
            logger=logger,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(algorithm={self.ALGORITHM!r})"

    def encrypt(self, plaintext: str) -> EncryptedEnvelope:
        """Encrypt a string.

        Args:
            plaintext: Text to encrypt (empty string allowed)

        Returns:
            EncryptedEnvelope with lowercase hex fields

        Raises:
            EncryptionError: If the plaintext is not a string or cannot be encoded
        """
        try:
            if not isinstance(plaintext, str):
                raise TypeError("plaintext must be str")
            data = plaintext.encode("utf-8")
            nonce = self._generate_nonce()
            sealed = self._cipher.encrypt(nonce, data, self._associated_data)
        except (TypeError, ValueError, OverflowError) as e:
            emit(self._logger, "error", ENCRYPTION_FAILED, reason=type(e).__name__)
            raise EncryptionError() from None

        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[: -self.TAG_SIZE], sealed[-self.TAG_SIZE :]
        return EncryptedEnvelope(
            ciphertext=ciphertext.hex(),
            tag=tag.hex(),
            nonce=nonce.hex(),
        )

    def decrypt(self, ciphertext: str, tag: str, nonce: str) -> str:
        """Verify and decrypt hex-encoded fields.

        No plaintext is returned unless the tag verifies.

        Raises:
            DecryptionError: On any format or authentication failure
        """
        ciphertext_bytes = self._decode_field(ciphertext)
        tag_bytes = self._decode_field(tag)
        nonce_bytes = self._decode_field(nonce)

        if ciphertext_bytes is None or tag_bytes is None or nonce_bytes is None:
            raise self._failure("malformed_hex")
        if len(nonce_bytes) != self.NONCE_SIZE or len(tag_bytes) != self.TAG_SIZE:
            raise self._failure("invalid_length")

        try:
            data = self._cipher.decrypt(
                nonce_bytes, ciphertext_bytes + tag_bytes, self._associated_data
            )
        except InvalidTag:
            raise self._failure("authentication") from None

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise self._failure("encoding") from None

    def decrypt_envelope(self, envelope: EncryptedEnvelope) -> str:
        """Decrypt an envelope returned by ``encrypt``."""
        return self.decrypt(envelope.ciphertext, envelope.tag, envelope.nonce)

    def _generate_nonce(self) -> bytes:
        return os.urandom(self.NONCE_SIZE)

    @staticmethod
    def _decode_field(value: Any) -> bytes | None:
        if not isinstance(value, str) or not _HEX_RE.fullmatch(value):
            return None
        return bytes.fromhex(value)

    def _failure(self, reason: str) -> DecryptionError:
        emit(self._logger, "warning", DECRYPTION_FAILED, reason=reason)
        return DecryptionError()

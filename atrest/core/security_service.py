"""Security service.

One entry point for the application's secret-handling needs:
- Symmetric encryption of sensitive strings (delegates to CipherEngine)
- Password hashing (PBKDF2-SHA256, OWASP 2024 work factor)
- API key generation, hashing and format checks
- Webhook payload signing and verification (HMAC-SHA256)
- Password policy checks
- Random secrets, two-factor secrets, backup codes and masking helpers
- Audit identifiers and digests
"""

import base64
import hmac
import json
import os
import re
import secrets
import time
import uuid
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from atrest.config import Settings, get_settings
from atrest.core.cipher_engine import CipherEngine, EncryptedEnvelope
from atrest.core.key_resolver import CryptoError, generate_key_material
from atrest.core.logging import emit, get_logger, mask_value


class PasswordHashError(CryptoError):
    """Password hashing failed."""
    pass


_LOWERCASE_RE = re.compile(r"[a-z]")
_UPPERCASE_RE = re.compile(r"[A-Z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>\/?]")


class SecurityService:
    """Encryption plus the stateless helpers around it.

    Example:
        service = SecurityService()
        envelope = service.encrypt("0xprivate-key")
        service.decrypt(envelope.ciphertext, envelope.tag, envelope.nonce)
    """

    PASSWORD_SALT_SIZE = 16
    PASSWORD_HASH_SIZE = 32
    API_KEY_BYTES = 32
    WEBHOOK_SIGNATURE_PREFIX = "sha256="
    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 128
    TWO_FACTOR_SECRET_BYTES = 20

    def __init__(
        self,
        settings: Settings | None = None,
        engine: CipherEngine | None = None,
        logger: Any = None,
    ):
        self.settings = settings or get_settings()
        self._logger = logger if logger is not None else get_logger(__name__)
        self.engine = engine or CipherEngine.from_settings(self.settings, logger=self._logger)
        # 32 random bytes -> 43 unpadded urlsafe base64 characters
        self._api_key_re = re.compile(
            rf"^{re.escape(self.settings.api_key_prefix)}_[A-Za-z0-9\-_]{{43}}$"
        )

    # ==========================================================================
    # SYMMETRIC ENCRYPTION
    # ==========================================================================

    def encrypt(self, text: str) -> EncryptedEnvelope:
        return self.engine.encrypt(text)

    def decrypt(self, ciphertext: str, tag: str, nonce: str) -> str:
        return self.engine.decrypt(ciphertext, tag, nonce)

    def generate_encryption_key(self, encoding: str = "hex") -> str:
        """Generate a new 32-byte key in a form the resolver uses directly.

        Args:
            encoding: "hex" or "base64"
        """
        return generate_key_material(encoding, CipherEngine.KEY_SIZE)

    # ==========================================================================
    # PASSWORD HASHING
    # ==========================================================================

    def hash_password(self, password: str) -> str:
        """Hash a password with PBKDF2-SHA256.

        Output format: $pbkdf2-sha256$iterations$salt$hash
        """
        iterations = self.settings.password_iterations
        try:
            salt = os.urandom(self.PASSWORD_SALT_SIZE)
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.PASSWORD_HASH_SIZE,
                salt=salt,
                iterations=iterations,
            )
            key = kdf.derive(password.encode("utf-8"))
        except (TypeError, ValueError, AttributeError) as e:
            emit(self._logger, "error", "Password hashing failed", reason=type(e).__name__)
            raise PasswordHashError("Password hashing failed") from None

        salt_b64 = base64.b64encode(salt).decode("ascii")
        hash_b64 = base64.b64encode(key).decode("ascii")
        return f"$pbkdf2-sha256${iterations}${salt_b64}${hash_b64}"

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """Check a password against a stored hash; malformed hashes never match."""
        try:
            parts = hashed_password.split("$")
            if len(parts) != 5 or parts[1] != "pbkdf2-sha256":
                return False

            iterations = int(parts[2])
            salt = base64.b64decode(parts[3], validate=True)
            expected_hash = base64.b64decode(parts[4], validate=True)
            if iterations < 1 or len(expected_hash) != self.PASSWORD_HASH_SIZE:
                return False

            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=len(expected_hash),
                salt=salt,
                iterations=iterations,
            )
            computed = kdf.derive(password.encode("utf-8"))
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            emit(self._logger, "error", "Password verification failed", reason=type(e).__name__)
            return False

        return hmac.compare_digest(computed, expected_hash)

    def validate_password(self, password: str) -> tuple[bool, list[str]]:
        """Check a password against the strength policy.

        Returns:
            (is_valid, errors) where errors lists every rule the password breaks
        """
        errors = []
        if len(password) < self.PASSWORD_MIN_LENGTH:
            errors.append(f"Password must be at least {self.PASSWORD_MIN_LENGTH} characters long")
        if len(password) > self.PASSWORD_MAX_LENGTH:
            errors.append(f"Password must be less than {self.PASSWORD_MAX_LENGTH} characters")
        if not _LOWERCASE_RE.search(password):
            errors.append("Password must contain at least one lowercase letter")
        if not _UPPERCASE_RE.search(password):
            errors.append("Password must contain at least one uppercase letter")
        if not _DIGIT_RE.search(password):
            errors.append("Password must contain at least one number")
        if not _SPECIAL_RE.search(password):
            errors.append("Password must contain at least one special character")

        return not errors, errors

    # ==========================================================================
    # API KEYS
    # ==========================================================================

    def generate_api_key(self) -> str:
        key = base64.urlsafe_b64encode(secrets.token_bytes(self.API_KEY_BYTES))
        return f"{self.settings.api_key_prefix}_{key.decode('ascii').rstrip('=')}"

    def hash_api_key(self, api_key: str) -> str:
        """SHA-256 hex digest, for storing API keys without the key itself."""
        digest = hashes.Hash(hashes.SHA256())
        digest.update(api_key.encode("utf-8"))
        return digest.finalize().hex()

    def validate_api_key_format(self, api_key: str) -> bool:
        return isinstance(api_key, str) and bool(self._api_key_re.match(api_key))

    # ==========================================================================
    # WEBHOOK SIGNATURES
    # ==========================================================================

    def generate_webhook_secret(self) -> str:
        return secrets.token_hex(32)

    def sign_webhook_payload(self, payload: str, secret: str) -> str:
        """HMAC-SHA256 of the UTF-8 payload, hex encoded."""
        mac = crypto_hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
        mac.update(payload.encode("utf-8"))
        return mac.finalize().hex()

    def verify_webhook_signature(self, payload: str, signature: str, secret: str) -> bool:
        """Verify a webhook signature, with or without a "sha256=" prefix."""
        try:
            if signature.startswith(self.WEBHOOK_SIGNATURE_PREFIX):
                signature = signature[len(self.WEBHOOK_SIGNATURE_PREFIX):]
            provided = bytes.fromhex(signature)
            expected = bytes.fromhex(self.sign_webhook_payload(payload, secret))
        except (TypeError, ValueError, AttributeError) as e:
            emit(self._logger, "warning", "Webhook signature verification failed", reason=type(e).__name__)
            return False

        return hmac.compare_digest(expected, provided)

    # ==========================================================================
    # RANDOM SECRETS
    # ==========================================================================

    def generate_secure_random_string(self, length: int = 32) -> str:
        """Hex string carrying ``length`` random bytes."""
        return secrets.token_hex(length)

    def generate_backup_codes(self, count: int = 10) -> list[str]:
        """One-time recovery codes formatted XXXX-XXXX."""
        codes = []
        for _ in range(count):
            code = secrets.token_hex(4).upper()
            codes.append(f"{code[:4]}-{code[4:]}")
        return codes

    def generate_two_factor_secret(self) -> str:
        """Base32 TOTP seed (20 random bytes, 32 characters)."""
        return base64.b32encode(secrets.token_bytes(self.TWO_FACTOR_SECRET_BYTES)).decode("ascii")

    # ==========================================================================
    # AUDIT
    # ==========================================================================

    def generate_audit_id(self) -> str:
        return f"audit_{int(time.time() * 1000)}_{uuid.uuid4()}"

    def hash_for_audit(self, data: Any) -> str:
        """SHA-256 hex digest of a string, or of the compact JSON form of anything else."""
        if not isinstance(data, str):
            data = json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)
        digest = hashes.Hash(hashes.SHA256())
        digest.update(data.encode("utf-8", "surrogatepass"))
        return digest.finalize().hex()

    # ==========================================================================
    # UTILITIES
    # ==========================================================================

    @staticmethod
    def constant_time_equals(a: str, b: str) -> bool:
        return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

    @staticmethod
    def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
        return mask_value(data, visible_chars)

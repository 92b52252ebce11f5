"""atrest - authenticated encryption for secrets at rest.

Protects sensitive strings (credentials, private keys, configuration values)
with AES-256-GCM:
- Key material accepted as hex, base64 or arbitrary text
- Fresh random nonce per encryption
- Tamper detection with a single uniform failure
- Password hashing, API keys and webhook signatures around it
"""

from atrest.core.key_resolver import (
    ConfigurationError,
    CryptoError,
    KeyEncoding,
    KeyMaterialResolver,
    ResolvedKey,
    generate_key_material,
)
from atrest.core.cipher_engine import (
    CipherEngine,
    DecryptionError,
    EncryptedEnvelope,
    EncryptionError,
)
from atrest.core.security_service import (
    PasswordHashError,
    SecurityService,
)

__version__ = "0.1.0"

__all__ = [
    # Key material
    "KeyMaterialResolver",
    "KeyEncoding",
    "ResolvedKey",
    "generate_key_material",
    # Encryption
    "CipherEngine",
    "EncryptedEnvelope",
    # Service
    "SecurityService",
    # Errors
    "CryptoError",
    "ConfigurationError",
    "DecryptionError",
    "EncryptionError",
    "PasswordHashError",
]

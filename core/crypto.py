"""
core/crypto.py — Cryptography Engine
======================================
Central place for ALL hashing, encryption and token operations.
Every module imports from here: never roll your own crypto elsewhere.

Provides:
- SHA-256 content digests          (ledger blocks, file integrity)
- Salted password hashing          (swappable, see CryptoEngine.password_hasher)
- AES encryption of file blobs     (via Fernet)
- JWT access token creation / verification
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from jose import jwt
from config import settings

logger = logging.getLogger("medchain.crypto")

PasswordHasher = Callable[[str, str], str]


# ── Pure hashing helpers ──────────────────────────────────────────────────────
def digest(data: Union[bytes, str]) -> str:
    """
    SHA-256 hex digest. Strings are UTF-8 encoded first.
    Deterministic and side-effect free: the ledger depends on this.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def random_salt(length: int = None) -> str:
    """Hex string of `length` random bytes from a CSPRNG."""
    return secrets.token_hex(length or settings.SALT_BYTES)


def hash_password(password: str, salt_hex: str) -> str:
    """digest("<salt>:<password>"): simple and reproducible."""
    return digest(f"{salt_hex}:{password}")


class CryptoEngine:
    """
    Singleton crypto engine: initialized once in main.py,
    then used across all modules via:  from core.crypto import crypto_engine
    """

    def __init__(self, password_hasher: PasswordHasher = hash_password):
        self._fernet: Optional[Fernet] = None
        self._ready = False
        # Swap for an iterated / memory-hard KDF without touching callers.
        self.password_hasher = password_hasher

    def initialize(self, key: str = None):
        """Called once on app startup (main.py lifespan)."""
        key = key or settings.ENCRYPTION_KEY
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY is not set in .env! "
                "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        self._ready = True
        logger.info("Crypto engine initialized.")

    def is_ready(self) -> str:
        return "ok" if self._ready else "not initialized"

    # ── Passwords ──────────────────────────────────────────────────────────
    def new_salt(self) -> str:
        return random_salt()

    def hash_password(self, password: str, salt_hex: str) -> str:
        return self.password_hasher(password, salt_hex)

    def verify_password(self, password: str, salt_hex: str, stored_hash: str) -> bool:
        computed = self.hash_password(password, salt_hex)
        return hmac.compare_digest(computed, stored_hash)

    # ── Encryption ─────────────────────────────────────────────────────────
    def encrypt_bytes(self, plaintext: bytes) -> bytes:
        """Encrypts raw bytes (uploaded report files) for storage at rest."""
        if not self._ready:
            raise RuntimeError("CryptoEngine not initialized. Call initialize() first.")
        return self._fernet.encrypt(plaintext)

    def decrypt_bytes(self, ciphertext: bytes) -> bytes:
        """Decrypts a previously encrypted blob. Raises InvalidToken on a bad key."""
        if not self._ready:
            raise RuntimeError("CryptoEngine not initialized.")
        return self._fernet.decrypt(ciphertext)

    # ── JWT Tokens ─────────────────────────────────────────────────────────
    def create_access_token(self, subject: str, extra_data: dict = None) -> str:
        """
        Create a signed JWT token for a user.
        subject = user ID.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "exp": now + timedelta(minutes=settings.JWT_EXPIRY_MINUTES),
            "iat": now,
        }
        if extra_data:
            payload.update(extra_data)
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict:
        """Verify and decode a JWT. Raises JWTError if invalid/expired."""
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


# Singleton instance: import this everywhere
crypto_engine = CryptoEngine()

__all__ = [
    "digest", "random_salt", "hash_password",
    "CryptoEngine", "crypto_engine", "InvalidToken",
]

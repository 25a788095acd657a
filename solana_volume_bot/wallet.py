"""
Wallet Module - Key Management
==============================
Encrypted storage of the funding keypair and ephemeral signer generation.

Security Features:
- PBKDF2-HMAC-SHA256 key derivation (600k iterations)
- Fernet (AES-128-CBC) encryption
- Unique salt per encryption
- File permissions 0o600 (owner-only)
- Rate limiting of failed password attempts
"""

import os
import json
import base64
import secrets
from pathlib import Path
from typing import Optional, Dict, List, Tuple
from dataclasses import dataclass
from datetime import datetime, timedelta

import base58
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from solders.keypair import Keypair

from .utils import logger

SECRET_KEY_LENGTH = 64


def keypair_from_base58(secret: str) -> Keypair:
    """Build a keypair from a base58-encoded 64-byte secret key."""
    raw = base58.b58decode(secret.strip())
    if len(raw) != SECRET_KEY_LENGTH:
        raise ValueError(f"Secret key must be {SECRET_KEY_LENGTH} bytes, got {len(raw)}")
    return Keypair.from_bytes(raw)


def keypair_to_base58(keypair: Keypair) -> str:
    return base58.b58encode(bytes(keypair)).decode("ascii")


def validate_secret_key(secret: str) -> bool:
    """Validate base58 secret key format."""
    if not secret:
        return False
    try:
        keypair_from_base58(secret)
        return True
    except Exception:
        return False


def generate_signers(count: int) -> List[Keypair]:
    """Fresh single-use signers; never reused after the bundle they sign."""
    return [Keypair() for _ in range(count)]


@dataclass
class RateLimitEntry:
    """Tracks password attempt rate limiting."""
    MAX_ATTEMPTS = 5
    LOCKOUT = timedelta(minutes=30)

    attempts: int = 0
    first_attempt: Optional[datetime] = None
    locked_until: Optional[datetime] = None

    def is_locked(self) -> bool:
        if self.locked_until is None:
            return False
        return datetime.now() < self.locked_until

    def record_attempt(self):
        now = datetime.now()
        if self.first_attempt is None or (now - self.first_attempt) > timedelta(hours=1):
            # Reset after 1 hour
            self.attempts = 1
            self.first_attempt = now
        else:
            self.attempts += 1

        if self.attempts >= self.MAX_ATTEMPTS:
            self.locked_until = now + self.LOCKOUT

    def reset(self):
        self.attempts = 0
        self.first_attempt = None
        self.locked_until = None


class SecureKeyManager:
    """
    Manages encryption and decryption of the funding secret key.

    Uses PBKDF2-HMAC-SHA256 with 600,000 iterations for key derivation,
    and Fernet (AES-128-CBC) for encryption.
    """

    KEY_FILE = ".bot_wallet.enc"
    ITERATIONS = 600_000

    def __init__(self, key_file: Optional[str] = None):
        self.key_file = Path(key_file or self.KEY_FILE)
        self._rate_limits: Dict[str, RateLimitEntry] = {}

    def _check_rate_limit(self, key: str) -> Tuple[bool, Optional[str]]:
        entry = self._rate_limits.get(key, RateLimitEntry())

        if entry.is_locked():
            remaining = (entry.locked_until - datetime.now()).seconds
            return False, f"Too many failed attempts. Locked for {remaining} seconds."

        self._rate_limits[key] = entry
        return True, None

    def _record_success(self, key: str):
        if key in self._rate_limits:
            self._rate_limits[key].reset()

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive encryption key from password using PBKDF2.

        Args:
            password: User password
            salt: Random salt (16 bytes)

        Returns:
            URL-safe base64-encoded key for Fernet
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def encrypt_and_save(self, secret_key: str, password: str) -> bool:
        """
        Encrypt and save a base58 secret key.

        Returns:
            True if successful
        """
        if not validate_secret_key(secret_key):
            logger.error("Invalid secret key format")
            return False

        salt = secrets.token_bytes(16)
        f = Fernet(self._derive_key(password, salt))
        encrypted = f.encrypt(secret_key.strip().encode())

        keypair = keypair_from_base58(secret_key)
        data = {
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": encrypted.decode(),
            "public_key": str(keypair.pubkey()),
            "version": 1,
            "created": datetime.now().isoformat(),
            "iterations": self.ITERATIONS
        }

        self.key_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.key_file, 'w') as fh:
            json.dump(data, fh)

        # Set owner-only permissions (Unix)
        os.chmod(self.key_file, 0o600)
        return True

    def load_and_decrypt(self, password: str) -> Optional[str]:
        """
        Load and decrypt the secret key.

        Returns:
            Decrypted base58 secret key, or None if locked, missing or wrong password
        """
        rate_key = str(self.key_file)

        allowed, error = self._check_rate_limit(rate_key)
        if not allowed:
            logger.warning(error)
            return None

        if not self.key_file.exists():
            logger.error("No wallet file found. Run init first.")
            return None

        try:
            with open(self.key_file, 'r') as fh:
                data = json.load(fh)

            salt = base64.b64decode(data["salt"])
            f = Fernet(self._derive_key(password, salt))
            decrypted = f.decrypt(data["encrypted_key"].encode())
        except Exception as e:
            self._rate_limits[rate_key].record_attempt()
            logger.error(f"Error decrypting key: {type(e).__name__}")
            return None

        self._record_success(rate_key)
        return decrypted.decode()

    def load_keypair(self, password: str) -> Optional[Keypair]:
        secret = self.load_and_decrypt(password)
        if secret is None:
            return None
        return keypair_from_base58(secret)

    def public_key(self) -> Optional[str]:
        """Public key stored alongside the ciphertext, readable without a password."""
        if not self.key_file.exists():
            return None
        with open(self.key_file, 'r') as fh:
            return json.load(fh).get("public_key")

    def exists(self) -> bool:
        return self.key_file.exists()

    def delete(self) -> bool:
        if self.key_file.exists():
            self.key_file.unlink()
        return True

"""
Encrypted local storage for chat client.

A small key-value store for PGP keys, channel toggles and settings, kept in
SQLite and encrypted on disk with a key derived from the user's password.
"""

import os
import json
import sqlite3
from typing import Any, Optional
from pathlib import Path
from datetime import datetime, timezone
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PASSWORD_CHECK = "password_check"
PASSWORD_CHECK_VALUE = b"autopgp"


class EncryptedStorage:
    """
    Manages encrypted local storage for chat data.

    All values are JSON-encoded and encrypted with a key derived from the
    user's password. Implements the get/set key-value interface the PGP
    plugin persists its state through.
    """

    def __init__(self, username: str, storage_dir: str = "client_data"):
        """
        Initialize encrypted storage.

        Args:
            username: Username for this storage
            storage_dir: Directory to store encrypted data
        """
        self.username = username
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.db_path = self.storage_dir / f"{username}.db"
        self.salt_path = self.storage_dir / f"{username}.salt"
        self.encryption_key: Optional[bytes] = None
        self.db: Optional[sqlite3.Connection] = None

    def derive_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive encryption key from password using PBKDF2.

        Args:
            password: User's password
            salt: Salt for key derivation

        Returns:
            32-byte encryption key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        return kdf.derive(password.encode())

    def unlock(self, password: str) -> bool:
        """
        Unlock storage with password.

        Creates the store on first use.

        Args:
            password: User's password

        Returns:
            True if unlocked successfully, False if the password is wrong
        """
        if not self.salt_path.exists():
            salt = os.urandom(16)
            with open(self.salt_path, "wb") as f:
                f.write(salt)
        else:
            with open(self.salt_path, "rb") as f:
                salt = f.read()

        self.encryption_key = self.derive_key(password, salt)
        self._init_database()

        try:
            check = self._get_metadata(PASSWORD_CHECK)
        except InvalidTag:
            self.close()
            self.encryption_key = None
            return False

        if check is None:
            self._set_metadata(PASSWORD_CHECK, PASSWORD_CHECK_VALUE)
        return True

    @property
    def is_unlocked(self) -> bool:
        return self.db is not None and self.encryption_key is not None

    def _init_database(self):
        """Initialize SQLite database"""
        self.db = sqlite3.connect(str(self.db_path))
        cursor = self.db.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                encrypted_value BLOB NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                encrypted_value BLOB NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        self.db.commit()

    def _encrypt(self, data: bytes, aad: bytes) -> bytes:
        """Encrypt data with storage key, bound to its row key"""
        if not self.encryption_key:
            raise ValueError("Storage not unlocked")

        nonce = os.urandom(12)
        aesgcm = AESGCM(self.encryption_key)
        ciphertext = aesgcm.encrypt(nonce, data, aad)
        return nonce + ciphertext

    def _decrypt(self, encrypted_data: bytes, aad: bytes) -> bytes:
        """Decrypt data with storage key"""
        if not self.encryption_key:
            raise ValueError("Storage not unlocked")

        nonce = encrypted_data[:12]
        ciphertext = encrypted_data[12:]

        aesgcm = AESGCM(self.encryption_key)
        return aesgcm.decrypt(nonce, ciphertext, aad)

    def get(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Args:
            key: Value name

        Returns:
            The stored value, or None if absent
        """
        if not self.db:
            raise ValueError("Storage not unlocked")

        cursor = self.db.cursor()
        cursor.execute("SELECT encrypted_value FROM kv WHERE key = ?", (key,))
        result = cursor.fetchone()

        if not result:
            return None
        return json.loads(self._decrypt(result[0], key.encode()).decode())

    def set(self, key: str, value: Any):
        """
        Write a value.

        Args:
            key: Value name
            value: JSON-serializable value
        """
        if not self.db:
            raise ValueError("Storage not unlocked")

        encrypted = self._encrypt(json.dumps(value).encode(), key.encode())
        timestamp = datetime.now(timezone.utc).isoformat()

        cursor = self.db.cursor()
        cursor.execute(
            "INSERT OR REPLACE INTO kv (key, encrypted_value, updated_at) VALUES (?, ?, ?)",
            (key, encrypted, timestamp)
        )
        self.db.commit()

    def _get_metadata(self, key: str) -> Optional[bytes]:
        """Get metadata value"""
        cursor = self.db.cursor()
        cursor.execute("SELECT encrypted_value FROM metadata WHERE key = ?", (key,))
        result = cursor.fetchone()

        if result:
            return self._decrypt(result[0], key.encode())
        return None

    def _set_metadata(self, key: str, value: bytes):
        cursor = self.db.cursor()
        cursor.execute(
            "INSERT OR REPLACE INTO metadata (key, encrypted_value) VALUES (?, ?)",
            (key, self._encrypt(value, key.encode()))
        )
        self.db.commit()

    def close(self):
        """Close database connection"""
        if self.db:
            self.db.close()
            self.db = None

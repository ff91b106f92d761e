"""
Core Security Module - Seguridad
Field encryption for personal data and Argon2 hashing for passwords and PINs.
"""

import os
import base64
import json
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, InvalidHash

from workforce.core.timeutils import utcnow


class EncryptionManager:
    """
    Field-level encryption with Fernet.

    The data key lives in a file encrypted with a key derived from the master
    password (PBKDF2-SHA256).
    """

    KEYS_FILE = "encryption_keys.dat"
    SALT_SIZE = 16
    KDF_ITERATIONS = 480000

    def __init__(self, master_key: str, keys_dir: Optional[str] = None, kdf_iterations: Optional[int] = None):
        if not master_key:
            raise ValueError("Se requiere la clave maestra para inicializar el cifrado")

        self.master_key = master_key
        self.keys_dir = Path(keys_dir) if keys_dir else Path(".")
        self.keys_file = self.keys_dir / self.KEYS_FILE
        self.kdf_iterations = kdf_iterations or self.KDF_ITERATIONS

        if self.keys_file.exists():
            self._key = self._load_key()
        else:
            self._key = Fernet.generate_key()
            self._save_key()
        self.fernet = Fernet(self._key)

    def _derive_key_from_master(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.kdf_iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(self.master_key.encode()))

    def _save_key(self) -> None:
        """Write salt + encrypted data key to the keys file."""
        self.keys_dir.mkdir(parents=True, exist_ok=True)

        salt = os.urandom(self.SALT_SIZE)
        key_fernet = Fernet(self._derive_key_from_master(salt))

        keys_data = {
            "version": 1,
            "key": self._key.decode(),
            "saved_at": utcnow().isoformat(),
        }
        encrypted_data = key_fernet.encrypt(json.dumps(keys_data).encode())

        with open(self.keys_file, "wb") as f:
            f.write(salt)
            f.write(encrypted_data)

    def _load_key(self) -> bytes:
        with open(self.keys_file, "rb") as f:
            salt = f.read(self.SALT_SIZE)
            encrypted_data = f.read()

        key_fernet = Fernet(self._derive_key_from_master(salt))

        try:
            keys_data = json.loads(key_fernet.decrypt(encrypted_data).decode())
        except InvalidToken:
            raise ValueError("Clave maestra inválida: no se pudieron descifrar las claves")

        return keys_data["key"].encode()

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a string; empty values pass through."""
        if not plaintext:
            return plaintext
        return self.fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """
        Decrypt a string produced by encrypt().

        Raises:
            ValueError: if the token was not produced with this key
        """
        if not ciphertext:
            return ciphertext
        try:
            return self.fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            raise ValueError("No se pudo descifrar el dato")

    @staticmethod
    def redact_sensitive(value: Optional[str], show_last: int = 4) -> str:
        """
        Mask a value leaving the last characters visible.

        >>> EncryptionManager.redact_sensitive("30123456")
        '****3456'
        """
        if not value:
            return ""
        if len(value) <= show_last:
            return "*" * len(value)
        return "*" * (len(value) - show_last) + value[-show_last:]


class PasswordManager:
    """
    Argon2id hashing for passwords and kiosk PINs.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ):
        """
        Args:
            time_cost: Number of iterations
            memory_cost: Memory usage in KiB
            parallelism: Number of parallel threads
        """
        self.hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    def hash_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Return True when the plaintext matches the stored hash."""
        try:
            self.hasher.verify(password_hash, password)
            return True
        except (VerifyMismatchError, InvalidHash):
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        return self.hasher.check_needs_rehash(password_hash)

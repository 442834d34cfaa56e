"""Summary encryption using AES-256-GCM.

Token layout (base64): ``salt(16) | nonce(12) | ciphertext+tag``.

With a passphrase, the key is derived per salt with PBKDF2-SHA256, so tokens
survive restarts. Without one, a random key is generated once and kept in a
key file (owner read/write only) that later processes load again.
"""

import asyncio
import base64
import binascii
import os
from pathlib import Path
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from src.core.exceptions import DecryptionFailure, ErrorType, BrainError
from src.core.logging import get_logger

logger = get_logger(__name__)

SALT_LENGTH = 16
NONCE_LENGTH = 12
KEY_LENGTH = 32  # AES-256
KEY_FILE_MODE = 0o600


def load_or_create_key(key_path: Union[str, Path]) -> bytes:
    """Read the stored AES key, generating and storing one on first use.

    Args:
        key_path: File holding the base64-encoded key

    Returns:
        Raw 32-byte key

    Raises:
        BrainError: If the file exists but does not hold a valid key
    """
    path = Path(key_path)

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        key = AESGCM.generate_key(bit_length=256)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, KEY_FILE_MODE)
        except FileExistsError:
            # Another process created it first; use that one
            return load_or_create_key(path)
        with os.fdopen(fd, 'w', encoding='ascii') as f:
            f.write(base64.b64encode(key).decode('ascii'))
        logger.info("encryption_key_created", path=str(path))
        return key

    try:
        key = base64.b64decode(path.read_text(encoding='ascii').strip(), validate=True)
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise BrainError(ErrorType.ENCRYPTION_ERROR, f"Unreadable encryption key file: {path}", e) from e

    if len(key) != KEY_LENGTH:
        raise BrainError(ErrorType.ENCRYPTION_ERROR, f"Encryption key file has the wrong length: {path}")

    logger.debug("encryption_key_loaded", path=str(path))
    return key


class CryptoService:
    """Encrypt and decrypt memory summaries.

    Security Features:
    - AES-256-GCM authenticated encryption
    - PBKDF2 key derivation with 100k iterations (passphrase mode)
    - Random salt per instance, random nonce per message
    """

    def __init__(self, pbkdf2_iterations: int = 100_000):
        self.pbkdf2_iterations = pbkdf2_iterations
        self.algorithm = 'AES-256-GCM'
        self._passphrase: Optional[bytes] = None
        self._key: Optional[bytes] = None
        self._salt: Optional[bytes] = None
        self._derived: Dict[bytes, bytes] = {}

    def initialize(self, passphrase: Optional[str] = None, key: Optional[bytes] = None) -> None:
        """Set up the encryption key.

        Args:
            passphrase: Derive keys from this secret (stable across restarts)
            key: Raw 32-byte key; ignored when a passphrase is given
        """
        self._salt = os.urandom(SALT_LENGTH)
        self._derived.clear()

        if passphrase:
            self._passphrase = passphrase.encode('utf-8')
            self._key = None
            mode = "passphrase"
        else:
            if key is not None and len(key) != KEY_LENGTH:
                raise BrainError(ErrorType.ENCRYPTION_ERROR, "Encryption key must be 32 bytes")
            self._passphrase = None
            self._key = key or AESGCM.generate_key(bit_length=256)
            mode = "provided_key" if key else "random_key"

        logger.info("encryption_initialized", mode=mode, algorithm=self.algorithm)

    def is_initialized(self) -> bool:
        return self._key is not None or self._passphrase is not None

    def _derive(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.pbkdf2_iterations,
        )
        return kdf.derive(self._passphrase)

    async def _key_for(self, salt: bytes) -> bytes:
        if self._passphrase is None:
            return self._key
        if salt not in self._derived:
            # PBKDF2 is CPU-bound; keep it off the event loop
            self._derived[salt] = await asyncio.to_thread(self._derive, salt)
        return self._derived[salt]

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt text into a base64 token.

        Raises:
            BrainError: If the service is not initialized
        """
        if not self.is_initialized():
            raise BrainError(ErrorType.ENCRYPTION_ERROR, "Encryption key not initialized")

        key = await self._key_for(self._salt)
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode('utf-8'), None)
        return base64.b64encode(self._salt + nonce + ciphertext).decode('ascii')

    async def decrypt(self, token: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            DecryptionFailure: On a missing key, malformed token, wrong key or tampering
        """
        if not self.is_initialized():
            raise DecryptionFailure("Encryption key not initialized")

        try:
            raw = base64.b64decode(token.encode('ascii'), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise DecryptionFailure("Ciphertext is not valid base64", e) from e

        if len(raw) <= SALT_LENGTH + NONCE_LENGTH:
            raise DecryptionFailure("Ciphertext is too short")

        salt = raw[:SALT_LENGTH]
        nonce = raw[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
        ciphertext = raw[SALT_LENGTH + NONCE_LENGTH:]
        key = await self._key_for(salt)

        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
            return plaintext.decode('utf-8')
        except (InvalidTag, UnicodeDecodeError) as e:
            raise DecryptionFailure("Failed to decrypt data", e) from e

"""
Encrypted wallet storage.

The wallet secret is serialized to JSON and sealed with AES-256-GCM under a
key derived from the passphrase with PBKDF2-HMAC-SHA256. Only the sealed
blob ever touches disk, as a single JSON slot:

    {"iv": base64, "salt": base64, "data": base64, "iterations": int}
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import secrets
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from baseline_wallet.errors import DecryptionFailed, StorageError

DEFAULT_ITERATIONS = 200_000
IV_SIZE = 12
SALT_SIZE = 16
KEY_SIZE = 32

# Owner read/write only
SECURE_FILE_MODE = 0o600


@dataclass(frozen=True)
class EncryptedBlob:
    iv: bytes
    salt: bytes
    ciphertext: bytes
    kdf_iterations: int = DEFAULT_ITERATIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "data": base64.b64encode(self.ciphertext).decode("ascii"),
            "iterations": self.kdf_iterations,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EncryptedBlob:
        """
        Parse the stored slot format.

        Raises:
            ValueError: Missing fields, bad base64 or wrong IV/salt sizes
        """
        try:
            iv = base64.b64decode(data["iv"], validate=True)
            salt = base64.b64decode(data["salt"], validate=True)
            ciphertext = base64.b64decode(data["data"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise ValueError(f"Invalid encrypted wallet: {e}") from e

        if len(iv) != IV_SIZE or len(salt) != SALT_SIZE:
            raise ValueError("Invalid encrypted wallet: bad IV or salt length")

        iterations = data.get("iterations") or DEFAULT_ITERATIONS
        if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations < 1:
            raise ValueError("Invalid encrypted wallet: bad iteration count")

        return cls(iv=iv, salt=salt, ciphertext=ciphertext, kdf_iterations=iterations)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> EncryptedBlob:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Invalid encrypted wallet: expected an object")
        return cls.from_dict(data)


def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_payload(
    passphrase: str, payload: Any, iterations: int = DEFAULT_ITERATIONS
) -> EncryptedBlob:
    """Encrypt a JSON-serializable payload. IV and salt are fresh on every call."""
    iv = secrets.token_bytes(IV_SIZE)
    salt = secrets.token_bytes(SALT_SIZE)
    key = derive_key(passphrase, salt, iterations)

    plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(iv, plaintext, None)

    return EncryptedBlob(iv=iv, salt=salt, ciphertext=ciphertext, kdf_iterations=iterations)


def decrypt_payload(passphrase: str, blob: EncryptedBlob) -> Any:
    """
    Decrypt a blob produced by encrypt_payload.

    Raises:
        DecryptionFailed: Wrong passphrase or corrupted blob (indistinguishable)
    """
    key = derive_key(passphrase, blob.salt, blob.kdf_iterations)
    try:
        plaintext = AESGCM(key).decrypt(blob.iv, blob.ciphertext, None)
        return json.loads(plaintext.decode("utf-8"))
    except (InvalidTag, ValueError) as e:
        raise DecryptionFailed() from e


class WalletStore:
    """
    Single-slot durable storage for the encrypted wallet.

    The slot is replaced wholesale on every write, never patched.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.is_file()

    def persist(self, blob: EncryptedBlob) -> None:
        """Atomically replace the stored blob."""
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(blob.to_json())
                        f.flush()
                        os.fsync(f.fileno())
                    os.chmod(tmp_name, SECURE_FILE_MODE)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                logger.error(f"Failed to persist wallet to {self.path}: {e}")
                raise StorageError(f"Unable to write wallet file {self.path}") from e

        logger.debug(f"Persisted encrypted wallet to {self.path}")

    def load(self) -> EncryptedBlob | None:
        """Return the stored blob, or None if absent or unparsable."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Unable to read wallet file {self.path}") from e

        try:
            return EncryptedBlob.from_json(raw)
        except ValueError as e:
            logger.warning(f"Ignoring unparsable wallet file {self.path}: {e}")
            return None

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Unable to remove wallet file {self.path}") from e
        logger.info("Cleared stored wallet")

import base64
import binascii
import getpass
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

# Versioned header; the scheme and the scope the ciphertext is bound to.
ENCRYPTION_HEADER = "ENC:FERNET:CURRENT-USER-MACHINE:v1"
_SALT = b"bulk-repo-sync.secrets.v1"
_KDF_ITERATIONS = 200_000
_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _machine_id() -> str:
    for candidate in _MACHINE_ID_FILES:
        try:
            value = Path(candidate).read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return value
    return f"{uuid.getnode():012x}"


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        # No login name and no passwd entry (e.g. some containers)
        return str(os.getuid()) if hasattr(os, "getuid") else "unknown"


def current_scope() -> str:
    """The user/machine pair secrets are bound to."""
    return f"{_user_name()}@{_machine_id()}"


class SecretCodec:
    """
    Reversible at-rest encoding for secrets.

    The key is derived from the current user and machine, so a value copied to
    another account or host no longer decodes. Decoding never raises: anything
    that cannot be decoded comes back unchanged, which callers detect with
    `is_encoded`.
    """

    def __init__(self, scope: Optional[str] = None):
        kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=_SALT, iterations=_KDF_ITERATIONS)
        key = base64.urlsafe_b64encode(kdf.derive((scope or current_scope()).encode("utf-8")))
        self._fernet = Fernet(key)

    @staticmethod
    def is_encoded(value: Optional[str]) -> bool:
        return bool(value) and value.startswith(ENCRYPTION_HEADER)

    def encode(self, plaintext: Optional[str]) -> Optional[str]:
        if not plaintext or self.is_encoded(plaintext):
            return plaintext
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        payload = base64.b64encode(token).decode("ascii")
        return f"{ENCRYPTION_HEADER}\n{payload}"

    def decode(self, value: Optional[str]) -> Optional[str]:
        if not value or not self.is_encoded(value):
            return value

        payload = value[len(ENCRYPTION_HEADER):].strip()
        try:
            token = base64.b64decode(payload, validate=True)
            return self._fernet.decrypt(token).decode("utf-8")
        except (InvalidToken, binascii.Error, UnicodeDecodeError, ValueError):
            logger.warning("Stored secret could not be decrypted for this user/machine. It must be entered again.")
            return value

"""Encrypted on-disk persistence of the signed-in identity."""

import base64
import json
import os
import platform
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from feedsync.core.exceptions import SessionError
from feedsync.models.data_models import Identity
from feedsync.utils.config import SESSION_DIR, SESSION_FILE_NAME, SESSION_KEY_FILE_NAME
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)


def _secure(path: Path) -> None:
    try:
        path.chmod(0o600)
    except OSError:
        pass  # Windows doesn't support chmod


class SessionStore:
    """
    Keeps the access token between runs, encrypted with a machine-bound key.

    Acts as an identity provider for Session.resolve().
    """

    def __init__(self, session_dir: Optional[Path] = None):
        self.session_dir = Path(session_dir) if session_dir is not None else SESSION_DIR
        self.session_file = self.session_dir / SESSION_FILE_NAME
        self._key: Optional[bytes] = None

    def _get_encryption_key(self) -> bytes:
        """
        Derive the encryption key from machine identifiers and a stored salt.

        The salt is created on first use and kept next to the session file.
        """
        if self._key is not None:
            return self._key

        self.session_dir.mkdir(parents=True, exist_ok=True)
        salt_file = self.session_dir / SESSION_KEY_FILE_NAME

        if salt_file.exists():
            salt = salt_file.read_bytes()
        else:
            salt = os.urandom(16)
            salt_file.write_bytes(salt)
            _secure(salt_file)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        machine_id = f"{platform.node()}{platform.machine()}{platform.system()}".encode()
        self._key = base64.urlsafe_b64encode(kdf.derive(machine_id))
        return self._key

    def save(self, identity: Identity) -> None:
        payload = json.dumps({
            "user_id": identity.user_id,
            "access_token": identity.access_token,
            "email": identity.email,
            "metadata": identity.metadata,
        }).encode("utf-8")

        fernet = Fernet(self._get_encryption_key())
        self.session_file.write_bytes(fernet.encrypt(payload))
        _secure(self.session_file)
        logger.info(f"Session saved for {identity.user_id}")

    def load(self) -> Optional[Identity]:
        """
        Read the stored identity.

        Returns:
            Identity, or None when nothing is stored

        Raises:
            SessionError: If the stored session cannot be decrypted or parsed
        """
        if not self.session_file.exists():
            return None

        fernet = Fernet(self._get_encryption_key())
        try:
            data = json.loads(fernet.decrypt(self.session_file.read_bytes()))
        except InvalidToken as e:
            raise SessionError("Stored session could not be decrypted") from e
        except ValueError as e:
            raise SessionError("Stored session is corrupt") from e

        if not data.get("user_id") or not data.get("access_token"):
            raise SessionError("Stored session is incomplete")

        return Identity(
            user_id=data["user_id"],
            access_token=data["access_token"],
            email=data.get("email"),
            metadata=data.get("metadata") or {},
        )

    def clear(self) -> None:
        if self.session_file.exists():
            self.session_file.unlink()
            logger.debug("Stored session removed")

    async def get_identity(self) -> Optional[Identity]:
        return self.load()

"""Lazily created, long-lived key material in a file or sqlite backend.

Both backends persist one base64-encoded 32-byte key per label and expose an
exclusive-create primitive, so two first callers racing on the same label end
up sharing a single key:

- :class:`FileBackend` writes the key to a temporary file in the key directory
  and hard-links it into place; ``os.link`` fails if the target exists, and a
  reader only ever sees a complete file.
- :class:`StoreBackend` inserts into the ``keys`` table whose ``name`` column
  is unique; the losing insert is ignored.

:class:`KeyProvider` builds the ``get_or_create`` flow on top of either one.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional

from ..core.exceptions import KeyUnavailableError, StorageError
from ..database.connection import DatabaseConnection
from ..database.models import KeyModel
from .rng import random_bytes

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # 256-bit keys


class KeySource(Enum):
    # where standard (non-passphrase) keys live
    FILE = "drive"
    STORE = "database"


class KeyRole(Enum):
    # role suffix appended to the scheme word to build a label
    ENCRYPTION = "a"
    AUTHENTICATION = "b"


def key_label(scheme: str, role: Optional[KeyRole] = None) -> str:
    """Build a key label such as ``"foura"`` from a scheme word and role."""
    return scheme + (role.value if role else "")


def _encode_key(key: bytes) -> str:
    return base64.b64encode(key).decode("ascii")


def _decode_key(label: str, text: str) -> bytes:
    try:
        key = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyUnavailableError(f"key '{label}' is not valid base64") from e
    if not key:
        raise KeyUnavailableError(f"key '{label}' is empty")
    if len(key) != KEY_LENGTH:
        raise KeyUnavailableError(
            f"key '{label}' is {len(key)} bytes, expected {KEY_LENGTH}"
        )
    return key


class FileBackend:
    """One key per labeled file under a fixed per-installation directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()

    def _path(self, label: str) -> Path:
        if not label or os.sep in label or (os.altsep and os.altsep in label) or label.startswith("."):
            raise ValueError(f"invalid key label: {label!r}")
        return self.root / label

    def exists(self, label: str) -> bool:
        return self._path(label).is_file()

    def read(self, label: str) -> Optional[str]:
        """Return the stored text for ``label`` or None when absent."""
        try:
            return self._path(label).read_text(encoding="ascii")
        except FileNotFoundError:
            return None

    def write(self, label: str, text: str) -> bool:
        """
        Create ``label`` with ``text`` unless it already exists.

        Returns True when this call created the file, False when another
        writer got there first. The content is fully written and flushed
        before it becomes visible under its final name.
        """
        target = self._path(label)
        self.root.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{label}.", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                return False
            return True
        finally:
            os.unlink(tmp_name)


class StoreBackend:
    """One key per labeled row in the ``keys`` table."""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.db.initialize()
        self.key_model = KeyModel(db)

    def exists(self, label: str) -> bool:
        return self.read(label) is not None

    def read(self, label: str) -> Optional[str]:
        return self.key_model.get_by_name(label)

    def write(self, label: str, text: str) -> bool:
        return self.key_model.insert(label, text)


class KeyProvider:
    """Return a named key from a backend, creating it on first use."""

    def __init__(self, backend: FileBackend | StoreBackend):
        self.backend = backend

    def get(self, label: str) -> bytes:
        """Return the key stored under ``label``; never creates one."""
        try:
            text = self.backend.read(label)
        except (OSError, UnicodeDecodeError, StorageError) as e:
            logger.error("Key '%s' could not be read: %s", label, e)
            raise KeyUnavailableError(f"key '{label}' could not be read: {e}") from e

        if text is None:
            logger.error("Key '%s' does not exist", label)
            raise KeyUnavailableError(f"key '{label}' does not exist")

        try:
            return _decode_key(label, text)
        except KeyUnavailableError as e:
            logger.error("Key '%s' is unusable: %s", label, e)
            raise

    def get_or_create(self, label: str) -> bytes:
        """
        Return the key for ``label``, generating and storing a fresh random
        32-byte key first if none exists.

        Creation goes through the backend's exclusive-create primitive and the
        stored value is then re-read, so concurrent first callers converge on
        whichever key won the race.
        """
        try:
            present = self.backend.exists(label)
        except (OSError, StorageError) as e:
            logger.error("Key '%s' could not be looked up: %s", label, e)
            raise KeyUnavailableError(f"key '{label}' could not be looked up: {e}") from e

        if not present:
            new_key = random_bytes(KEY_LENGTH)
            try:
                created = self.backend.write(label, _encode_key(new_key))
            except (OSError, StorageError) as e:
                logger.error("Key '%s' could not be created: %s", label, e)
                raise KeyUnavailableError(f"key '{label}' could not be created: {e}") from e
            if created:
                logger.info("Created new key '%s'", label)

        return self.get(label)

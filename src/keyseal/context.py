"""Small helper to build a KeySeal context from explicit settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from keyseal.database.connection import DatabaseConnection
from keyseal.security.envelope import EnvelopeCodec
from keyseal.security.keystore import FileBackend, StoreBackend


@dataclass
class KeySealContext:
    """Container for the runtime objects a caller needs."""

    key_dir: Path
    file_backend: FileBackend
    codec: EnvelopeCodec
    db: Optional[DatabaseConnection] = None
    store_backend: Optional[StoreBackend] = None

    def close(self) -> None:
        if self.db is not None:
            self.db.close()


def build_context(
    key_dir: str | Path,
    db_path: Optional[str | Path] = None,
) -> KeySealContext:
    """
    Wire the key backends and the envelope codec.

    ``key_dir`` is the per-installation directory the file backend keeps one
    key file per label in. When ``db_path`` is given, a sqlite key store is
    initialized there and the ``database`` key source becomes available.
    Nothing is read from the environment.
    """
    key_dir = Path(key_dir).expanduser()
    file_backend = FileBackend(key_dir)

    db = None
    store_backend = None
    if db_path is not None:
        db = DatabaseConnection(db_path)
        db.initialize()
        store_backend = StoreBackend(db)

    codec = EnvelopeCodec(file_backend, store_backend)
    return KeySealContext(
        key_dir=key_dir,
        file_backend=file_backend,
        codec=codec,
        db=db,
        store_backend=store_backend,
    )

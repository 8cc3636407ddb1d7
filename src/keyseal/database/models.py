"""ORM-style helpers for the key table."""

import sqlite3

from .connection import DatabaseConnection
from ..core.exceptions import StorageError


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        """Initialize with a DatabaseConnection."""
        self.db = db


class KeyModel(BaseModel):
    """DB model for named key rows."""

    def get_by_name(self, name):
        """Return the stored value for ``name`` or None."""
        query = "SELECT value FROM keys WHERE name = ?"
        try:
            row = self.db.fetch_one(query, (name,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read key '{name}': {e}") from e
        return row["value"] if row else None

    def insert(self, name, value):
        """
        Insert a key row.

        Returns True when this call created the row and False when a row with
        the same name already existed (unique constraint on ``name``).
        """
        query = "INSERT INTO keys (name, value) VALUES (?, ?)"
        try:
            self.db.execute(query, (name, value))
        except sqlite3.IntegrityError as e:
            # only a unique-name collision means "already exists"
            if self.get_by_name(name) is not None:
                return False
            raise StorageError(f"Failed to insert key '{name}': {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to insert key '{name}': {e}") from e
        return True

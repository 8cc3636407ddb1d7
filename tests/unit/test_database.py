"""Unit tests covering ``DatabaseConnection`` and the key model."""

import sqlite3
from unittest.mock import patch

import pytest

from keyseal.core.exceptions import StorageError
from keyseal.database.connection import DatabaseConnection
from keyseal.database.models import KeyModel


@pytest.fixture()
def temp_db(tmp_path):
    """Provide a temporary, initialized ``DatabaseConnection`` instance."""
    db = DatabaseConnection(tmp_path / "keyseal.db")
    db.initialize()
    try:
        yield db
    finally:
        db.close()


def test_initialize_is_idempotent(temp_db):
    """Re-running schema initialization keeps existing key rows."""
    KeyModel(temp_db).insert("foura", "c2VjcmV0")
    temp_db.initialize()

    reopened = DatabaseConnection(temp_db.db_path)
    reopened.initialize()
    try:
        assert KeyModel(reopened).get_by_name("foura") == "c2VjcmV0"
    finally:
        reopened.close()


def test_initialize_creates_parent_directory(tmp_path):
    db = DatabaseConnection(tmp_path / "nested" / "dir" / "keys.db")
    db.initialize()
    assert (tmp_path / "nested" / "dir" / "keys.db").exists()
    db.close()


def test_key_model_insert_and_get(temp_db):
    keys = KeyModel(temp_db)
    assert keys.get_by_name("foura") is None

    assert keys.insert("foura", "c2VjcmV0") is True
    assert keys.get_by_name("foura") == "c2VjcmV0"


def test_key_model_duplicate_insert_keeps_first_value(temp_db):
    """The unique name constraint makes a second insert a no-op."""
    keys = KeyModel(temp_db)
    assert keys.insert("fourb", "Zmlyc3Q=") is True
    assert keys.insert("fourb", "c2Vjb25k") is False
    assert keys.get_by_name("fourb") == "Zmlyc3Q="


def test_key_model_wraps_sqlite_errors(temp_db):
    keys = KeyModel(temp_db)
    with patch.object(DatabaseConnection, "fetch_one", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StorageError, match="disk I/O error"):
            keys.get_by_name("foura")

    with patch.object(DatabaseConnection, "execute", side_effect=sqlite3.OperationalError("database is locked")):
        with pytest.raises(StorageError, match="database is locked"):
            keys.insert("foura", "eA==")


def test_key_model_other_integrity_errors_are_not_duplicates(temp_db):
    """A constraint failure with no existing row is a storage failure."""
    keys = KeyModel(temp_db)
    with pytest.raises(StorageError):
        keys.insert("foura", None)

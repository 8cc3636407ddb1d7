"""Concurrent first use of a key label must converge on one key."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from keyseal.database.connection import DatabaseConnection
from keyseal.security.envelope import EnvelopeCodec
from keyseal.security.keystore import FileBackend, KeyProvider, StoreBackend

WORKERS = 8


def _race(get_key):
    barrier = threading.Barrier(WORKERS)

    def worker(_):
        barrier.wait()
        return get_key()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(worker, range(WORKERS)))


@pytest.mark.integration
def test_concurrent_first_use_file_backend(tmp_path):
    backend = FileBackend(tmp_path / "keys")
    keys = _race(lambda: KeyProvider(backend).get_or_create("foura"))

    assert len(set(keys)) == 1
    assert sorted(p.name for p in (tmp_path / "keys").iterdir()) == ["foura"]


@pytest.mark.integration
def test_concurrent_first_use_store_backend(tmp_path):
    db = DatabaseConnection(tmp_path / "keyseal.db")
    backend = StoreBackend(db)
    try:
        keys = _race(lambda: KeyProvider(backend).get_or_create("foura"))
        assert len(set(keys)) == 1
        row = db.fetch_one("SELECT COUNT(*) AS n FROM keys WHERE name = ?", ("foura",))
        assert row["n"] == 1
    finally:
        db.close()


@pytest.mark.integration
def test_concurrent_encrypt_then_decrypt(tmp_path):
    """Envelopes written by racing first callers all decrypt afterwards."""
    codec = EnvelopeCodec(FileBackend(tmp_path / "keys"))
    counter = iter(range(WORKERS))
    lock = threading.Lock()

    def encrypt_one():
        with lock:
            n = next(counter)
        return n, codec.encrypt(f"value-{n}")

    results = _race(encrypt_one)

    for n, envelope in results:
        assert codec.decrypt(envelope) == f"value-{n}".encode("utf-8")

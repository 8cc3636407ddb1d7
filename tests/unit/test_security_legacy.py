"""
Unit tests for the retired-scheme decoders.

Legacy envelopes are built here the way older releases wrote them so the
decoders are exercised on real bytes.
"""

import base64
import hashlib
import hmac
import os

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from keyseal.context import build_context
from keyseal.core.exceptions import (
    AuthenticationFailedError,
    KeyUnavailableError,
    MalformedEnvelopeError,
)
from keyseal.security.envelope import EnvelopeCodec
from keyseal.security.keystore import FileBackend

KEY_A = bytes(range(32))
KEY_B = bytes(range(32, 64))
KEY_ONE = bytes(range(64, 96))


# ==============================================================================
# Helpers
# ==============================================================================

def _aes_cbc(plaintext, key, iv):
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _legacy_two(plaintext, enc_key, mac_key, version="002"):
    iv = os.urandom(16)
    ciphertext = _aes_cbc(plaintext, enc_key, iv)
    tag = hmac.new(mac_key, iv + ciphertext, hashlib.sha256).digest()
    return version + base64.b64encode(tag + iv + ciphertext).decode("ascii")


def _legacy_one(plaintext, key):
    iv = os.urandom(16)
    return "001" + base64.b64encode(iv + _aes_cbc(plaintext, key, iv)).decode("ascii")


def _write_key(key_dir, label, key):
    key_dir.mkdir(parents=True, exist_ok=True)
    (key_dir / label).write_text(base64.b64encode(key).decode("ascii"))


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def key_dir(tmp_path):
    return tmp_path / "methods"


@pytest.fixture
def codec(key_dir):
    return EnvelopeCodec(FileBackend(key_dir))


@pytest.fixture
def legacy_keys(key_dir):
    _write_key(key_dir, "twoa", KEY_A)
    _write_key(key_dir, "twob", KEY_B)
    _write_key(key_dir, "one", KEY_ONE)


# ==============================================================================
# Tests: versions 2 and 3
# ==============================================================================

@pytest.mark.parametrize("version", ["002", "003"])
def test_decrypt_v2_v3_with_drive_keys(codec, legacy_keys, version):
    envelope = _legacy_two(b"legacy value", KEY_A, KEY_B, version=version)
    assert codec.decrypt(envelope) == b"legacy value"


def test_decrypt_v2_with_passphrase(codec):
    """A v2 passphrase is hashed once and used for both roles."""
    key = hashlib.sha256(b"hunter2").digest()
    envelope = _legacy_two(b"exported file", key, key)
    assert codec.decrypt(envelope, passphrase="hunter2") == b"exported file"


def test_decrypt_v2_tampered(codec, legacy_keys):
    envelope = _legacy_two(b"legacy value", KEY_A, KEY_B)
    raw = bytearray(base64.b64decode(envelope[3:]))
    raw[-1] ^= 0x01
    tampered = "002" + base64.b64encode(bytes(raw)).decode("ascii")

    with pytest.raises(AuthenticationFailedError):
        codec.decrypt(tampered)


def test_decrypt_v2_wrong_passphrase(codec):
    key = hashlib.sha256(b"right").digest()
    envelope = _legacy_two(b"exported file", key, key)
    with pytest.raises(AuthenticationFailedError):
        codec.decrypt(envelope, passphrase="wrong")


def test_decrypt_v2_missing_key_is_not_created(codec, key_dir):
    envelope = _legacy_two(b"legacy value", KEY_A, KEY_B)
    with pytest.raises(KeyUnavailableError):
        codec.decrypt(envelope)
    assert not (key_dir / "twoa").exists()
    assert not (key_dir / "twob").exists()


def test_decrypt_v2_ignores_database_source(tmp_path, key_dir, legacy_keys):
    """Legacy keys always come from the key directory."""
    ctx = build_context(key_dir, tmp_path / "keyseal.db")
    try:
        envelope = _legacy_two(b"legacy value", KEY_A, KEY_B)
        assert ctx.codec.decrypt(envelope, key_source="database") == b"legacy value"
    finally:
        ctx.close()


# ==============================================================================
# Tests: version 1
# ==============================================================================

def test_decrypt_v1_with_drive_key(codec, legacy_keys):
    assert codec.decrypt(_legacy_one(b"oldest value", KEY_ONE)) == b"oldest value"


def test_decrypt_v1_with_passphrase(codec):
    key = hashlib.sha256(b"hunter2").hexdigest()[:32].encode("ascii")
    envelope = _legacy_one(b"oldest export", key)
    assert codec.decrypt(envelope, passphrase=b"hunter2") == b"oldest export"


def test_decrypt_v1_tolerates_wrapped_base64(codec, legacy_keys):
    envelope = _legacy_one(b"oldest value", KEY_ONE)
    wrapped = envelope[:20] + "\n" + envelope[20:]
    assert codec.decrypt(wrapped) == b"oldest value"


def test_decrypt_v1_has_no_integrity_check(codec, legacy_keys):
    """Corrupting a v1 body yields garbage, not an authentication error."""
    plaintext = b"x" * 40  # three blocks; the padding block stays intact
    envelope = _legacy_one(plaintext, KEY_ONE)
    raw = bytearray(base64.b64decode(envelope[3:]))
    raw[16] ^= 0x01  # first ciphertext block
    tampered = "001" + base64.b64encode(bytes(raw)).decode("ascii")

    out = codec.decrypt(tampered)
    assert out != plaintext
    assert len(out) == len(plaintext)


def test_decrypt_v1_short_body(codec, legacy_keys):
    envelope = "001" + base64.b64encode(b"\x00" * 20).decode("ascii")
    with pytest.raises(MalformedEnvelopeError, match="too short"):
        codec.decrypt(envelope)


def test_decrypt_v1_missing_key(codec, key_dir):
    with pytest.raises(KeyUnavailableError):
        codec.decrypt(_legacy_one(b"oldest value", KEY_ONE))
    assert not (key_dir / "one").exists()


def test_codec_has_no_legacy_encrypt(codec):
    """New values are only ever written with the current scheme."""
    assert codec.encrypt(b"value").startswith("004")

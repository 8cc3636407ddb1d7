"""Key derivation: provisioned key pairs and passphrase-derived key pairs."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import KeyDerivationError
from .keystore import KeyProvider, KeyRole, key_label
from .rng import random_bytes

logger = logging.getLogger(__name__)

SALT_LENGTH = 32
PBKDF2_ITERATIONS = 100_000
PRE_KEY_LENGTH = 32
DERIVED_KEY_LENGTH = 32

# HKDF info labels; distinct so the two keys are independent
ENCRYPTION_INFO = b"aes-256-encryption"
AUTHENTICATION_INFO = b"sha-384-authentication"


@dataclass
class DerivedKeyPair:
    """Encryption key and MAC key for a single encrypt/decrypt call."""

    encryption_key: bytearray
    mac_key: bytearray

    @classmethod
    def from_keys(cls, encryption_key: bytes, mac_key: bytes) -> "DerivedKeyPair":
        if not encryption_key or not mac_key:
            raise KeyDerivationError("derived key is empty")
        if not any(encryption_key) or not any(mac_key):
            raise KeyDerivationError("derived key is all zero")
        return cls(bytearray(encryption_key), bytearray(mac_key))

    def wipe(self) -> None:
        """Overwrite both keys in place (best-effort; library copies may remain)."""
        for buf in (self.encryption_key, self.mac_key):
            for i in range(len(buf)):
                buf[i] = 0


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return random_bytes(length)


def _to_bytes(passphrase: bytes | str) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def derive_passphrase_keys(passphrase: bytes | str, salt: bytes) -> DerivedKeyPair:
    """
    Turn a passphrase and salt into two independent 32-byte keys.

    PBKDF2-HMAC-SHA384 (100,000 iterations) produces a 32-byte pre-key which
    HKDF-SHA384 then expands twice, salted with ``salt`` and separated by the
    info labels :data:`ENCRYPTION_INFO` and :data:`AUTHENTICATION_INFO`.
    Deterministic for identical (passphrase, salt).
    """
    password = _to_bytes(passphrase)
    if not password:
        raise KeyDerivationError("passphrase is empty")
    if len(salt) != SALT_LENGTH:
        raise KeyDerivationError(f"salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    pbkdf2 = PBKDF2HMAC(
        algorithm=hashes.SHA384(),
        length=PRE_KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    pre_key = pbkdf2.derive(password)

    def expand(info: bytes) -> bytes:
        hkdf = HKDF(algorithm=hashes.SHA384(), length=DERIVED_KEY_LENGTH, salt=salt, info=info)
        return hkdf.derive(pre_key)

    try:
        return DerivedKeyPair.from_keys(expand(ENCRYPTION_INFO), expand(AUTHENTICATION_INFO))
    except KeyDerivationError as e:
        logger.error("Passphrase key derivation failed: %s", e)
        raise


def provisioned_keys(provider: KeyProvider, scheme: str, create: bool = True) -> DerivedKeyPair:
    """
    Fetch the encryption and authentication keys for ``scheme`` from
    ``provider``. Labels are scoped per scheme (``"foura"``/``"fourb"``) so
    scheme versions never share key material.
    """
    fetch = provider.get_or_create if create else provider.get
    enc_key = fetch(key_label(scheme, KeyRole.ENCRYPTION))
    mac_key = fetch(key_label(scheme, KeyRole.AUTHENTICATION))
    try:
        return DerivedKeyPair.from_keys(enc_key, mac_key)
    except KeyDerivationError as e:
        logger.error("Provisioned keys for scheme '%s' are unusable: %s", scheme, e)
        raise


def sha256_passphrase_key(passphrase: bytes | str) -> bytes:
    """Raw SHA-256 digest of the passphrase (legacy v2/v3 single key)."""
    return hashlib.sha256(_to_bytes(passphrase)).digest()


def hex_passphrase_key(passphrase: bytes | str) -> bytes:
    """
    Legacy v1 key: the hex SHA-256 digest, cut to the 32-byte AES-256 key
    size the way the historical cipher call truncated it.
    """
    return hashlib.sha256(_to_bytes(passphrase)).hexdigest()[:32].encode("ascii")

"""Read-only decoders for retired envelope schemes.

There is deliberately no encrypt path here. These exist only so values
written by older releases stay readable:

- v2/v3: same ``tag || iv || ciphertext`` shape as v4 but HMAC-SHA256 (32-byte
  tag). A passphrase becomes a single SHA-256 key used for both roles.
- v1: ``iv || ciphertext`` with no tag at all. Corruption is not detected; it
  shows up as garbage or, at best, a padding failure.

Both read their provisioned keys from the file backend and never create them.
"""

import logging
from typing import Optional

from ..core.exceptions import MalformedEnvelopeError
from .crypto import IV_LENGTH, AuthenticatedCipher, cbc_decrypt
from .kdf import (
    DerivedKeyPair,
    hex_passphrase_key,
    provisioned_keys,
    sha256_passphrase_key,
)
from .keystore import KeyProvider, key_label

logger = logging.getLogger(__name__)

SHA256_CIPHER = AuthenticatedCipher("sha256")


def decrypt_v2(body: bytes, passphrase: Optional[bytes], provider: KeyProvider) -> bytes:
    """Decode a version 2 or 3 body (HMAC-SHA256, single-role passphrase key)."""
    if passphrase:
        key = sha256_passphrase_key(passphrase)
        keys = DerivedKeyPair.from_keys(key, key)
    else:
        keys = provisioned_keys(provider, "two", create=False)
    try:
        return SHA256_CIPHER.open(body, keys.encryption_key, keys.mac_key)
    finally:
        keys.wipe()


def decrypt_v1(body: bytes, passphrase: Optional[bytes], provider: KeyProvider) -> bytes:
    """Decode a version 1 body. No authentication is performed."""
    if passphrase:
        key = bytearray(hex_passphrase_key(passphrase))
    else:
        key = bytearray(provider.get(key_label("one")))

    if len(body) < 2 * IV_LENGTH:
        logger.error("Version 1 body too short: %d bytes", len(body))
        raise MalformedEnvelopeError(f"version 1 body too short: {len(body)} bytes")

    iv, ciphertext = body[:IV_LENGTH], body[IV_LENGTH:]
    try:
        return cbc_decrypt(ciphertext, key, iv)
    except MalformedEnvelopeError as e:
        logger.error("Version 1 body could not be decrypted: %s", e)
        raise
    finally:
        for i in range(len(key)):
            key[i] = 0

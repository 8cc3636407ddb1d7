"""AES-256-CBC with an HMAC tag, encrypt-then-MAC.

Body layout produced by :meth:`AuthenticatedCipher.seal` (all raw bytes):

- ``tag_length`` bytes: HMAC over ``iv || ciphertext`` with the MAC key
- 16 bytes: IV (one AES block, fresh per call)
- remaining bytes: AES-256-CBC ciphertext, PKCS#7 padded

The tag is checked in constant time before any decryption is attempted.
"""

import hashlib
import hmac
import logging

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import AuthenticationFailedError, MalformedEnvelopeError
from .rng import random_bytes

logger = logging.getLogger(__name__)

IV_LENGTH = algorithms.AES.block_size // 8
BLOCK_BITS = algorithms.AES.block_size


def cbc_encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def cbc_decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """Decrypt and unpad; a bad length or bad padding is a malformed body."""
    if not ciphertext or len(ciphertext) % IV_LENGTH:
        raise MalformedEnvelopeError("ciphertext is not a whole number of AES blocks")
    decryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise MalformedEnvelopeError("invalid padding after decryption") from e


class AuthenticatedCipher:
    """Encrypt-then-MAC construction parameterized by the HMAC digest."""

    def __init__(self, digest: str = "sha384"):
        self.digest = digest
        self.tag_length = hashlib.new(digest).digest_size

    @property
    def overhead(self) -> int:
        # smallest possible body: tag, IV and one padded block
        return self.tag_length + IV_LENGTH + IV_LENGTH

    def compute_tag(self, mac_key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
        return hmac.new(bytes(mac_key), iv + ciphertext, self.digest).digest()

    def seal(self, plaintext: bytes, enc_key: bytes, mac_key: bytes) -> bytes:
        """Encrypt ``plaintext`` and return ``tag || iv || ciphertext``."""
        iv = random_bytes(IV_LENGTH)
        ciphertext = cbc_encrypt(plaintext, enc_key, iv)
        tag = self.compute_tag(mac_key, iv, ciphertext)
        return tag + iv + ciphertext

    def open(self, body: bytes, enc_key: bytes, mac_key: bytes) -> bytes:
        """
        Verify and decrypt a ``tag || iv || ciphertext`` body.

        Raises :class:`AuthenticationFailedError` on a tag mismatch, in which
        case nothing is decrypted.
        """
        if len(body) < self.overhead:
            logger.error("Encrypted body too short: %d bytes", len(body))
            raise MalformedEnvelopeError(
                f"body too short: {len(body)} bytes, need at least {self.overhead}"
            )

        tag = body[: self.tag_length]
        iv = body[self.tag_length : self.tag_length + IV_LENGTH]
        ciphertext = body[self.tag_length + IV_LENGTH :]

        expected = self.compute_tag(mac_key, iv, ciphertext)
        if not hmac.compare_digest(tag, expected):
            logger.error("Decryption failed authentication (%s tag mismatch)", self.digest)
            raise AuthenticationFailedError("decryption failed authentication")

        try:
            return cbc_decrypt(ciphertext, enc_key, iv)
        except MalformedEnvelopeError as e:
            logger.error("Authenticated body could not be decrypted: %s", e)
            raise

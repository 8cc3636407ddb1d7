"""Versioned encryption envelopes: the public encrypt/decrypt entry point.

An envelope is ``VVV`` (three ASCII digits naming the scheme) followed by the
base64 text of the scheme body. New values are always written with the current
scheme; every scheme that was ever shipped stays in the decoder table so old
values remain readable. Entries are only ever added.

Current scheme (version 4) body::

    [salt 32B, passphrase mode only][HMAC-SHA384 tag 48B][IV 16B][AES-256-CBC ciphertext]
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Callable, Dict, Optional, Tuple, Union

from ..core.exceptions import (
    KeyUnavailableError,
    MalformedEnvelopeError,
    UnknownSchemeVersionError,
)
from .crypto import AuthenticatedCipher
from .kdf import SALT_LENGTH, derive_passphrase_keys, generate_salt, provisioned_keys
from .keystore import FileBackend, KeyProvider, KeySource, StoreBackend
from .legacy import decrypt_v1, decrypt_v2

logger = logging.getLogger(__name__)

CURRENT_VERSION = 4
VERSION_WIDTH = 3
CURRENT_SCHEME = "four"

CURRENT_CIPHER = AuthenticatedCipher("sha384")

_TAG_RE = re.compile(rb"^\d{3}")

Text = Union[str, bytes]


def _as_bytes(value: Text) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _as_envelope_bytes(envelope: Text) -> bytes:
    if isinstance(envelope, str):
        try:
            return envelope.encode("ascii")
        except UnicodeEncodeError as e:
            raise MalformedEnvelopeError("envelope contains non-ASCII characters") from e
    return bytes(envelope)


def _normalize_passphrase(passphrase: Optional[Text]) -> Optional[bytes]:
    # an empty passphrase means "use the provisioned keys"
    if not passphrase:
        return None
    return _as_bytes(passphrase)


def is_well_formed_envelope(value: Optional[Text]) -> bool:
    """True iff ``value`` starts with three ASCII digits."""
    if not value:
        return False
    head = value[:VERSION_WIDTH]
    if isinstance(head, str):
        head = head.encode("utf-8")
    return _TAG_RE.match(bytes(head)) is not None


def envelope_version(envelope: Text) -> int:
    """Return the scheme version encoded in the envelope's tag."""
    raw = _as_envelope_bytes(envelope)
    if _TAG_RE.match(raw) is None:
        logger.error("Envelope does not start with a three digit version tag")
        raise MalformedEnvelopeError("envelope does not start with a three digit version tag")
    return int(raw[:VERSION_WIDTH])


def _b64decode(body: bytes, strict: bool = True) -> bytes:
    try:
        return base64.b64decode(body, validate=strict)
    except (binascii.Error, ValueError) as e:
        logger.error("Envelope body is not valid base64")
        raise MalformedEnvelopeError("envelope body is not valid base64") from e


class EnvelopeCodec:
    """
    Encrypt to and decrypt from versioned envelopes.

    ``file_backend`` is required: it backs the ``KeySource.FILE`` source and
    holds the keys of the legacy schemes. ``store_backend`` enables
    ``KeySource.STORE``.
    """

    def __init__(
        self,
        file_backend: FileBackend,
        store_backend: Optional[StoreBackend] = None,
    ):
        self._providers: Dict[KeySource, KeyProvider] = {
            KeySource.FILE: KeyProvider(file_backend),
        }
        if store_backend is not None:
            self._providers[KeySource.STORE] = KeyProvider(store_backend)

        # version -> (decoder, strict base64)
        self._decoders: Dict[int, Tuple[Callable[..., bytes], bool]] = {
            4: (self._decrypt_four, True),
            3: (self._decrypt_two, True),
            2: (self._decrypt_two, True),
            1: (self._decrypt_one, False),
        }

    @property
    def supported_versions(self):
        return sorted(self._decoders)

    def provider(self, key_source: KeySource | str = KeySource.FILE) -> KeyProvider:
        try:
            source = KeySource(key_source)
        except ValueError as e:
            logger.error("Unknown key source %r", key_source)
            raise KeyUnavailableError(f"unknown key source {key_source!r}") from e
        if source not in self._providers:
            logger.error("Key source '%s' is not configured", source.value)
            raise KeyUnavailableError(f"key source '{source.value}' is not configured")
        return self._providers[source]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def encrypt(
        self,
        value: Text,
        passphrase: Optional[Text] = None,
        key_source: KeySource | str = KeySource.FILE,
    ) -> str:
        """Encrypt ``value`` with the current scheme and return envelope text."""
        plaintext = _as_bytes(value)
        secret = _normalize_passphrase(passphrase)

        if secret:
            salt = generate_salt()
            keys = derive_passphrase_keys(secret, salt)
            prefix = salt
        else:
            keys = provisioned_keys(self.provider(key_source), CURRENT_SCHEME)
            prefix = b""

        try:
            body = prefix + CURRENT_CIPHER.seal(plaintext, keys.encryption_key, keys.mac_key)
        finally:
            keys.wipe()

        return f"{CURRENT_VERSION:0{VERSION_WIDTH}d}" + base64.b64encode(body).decode("ascii")

    def decrypt(
        self,
        envelope: Optional[Text],
        passphrase: Optional[Text] = None,
        key_source: KeySource | str = KeySource.FILE,
    ) -> bytes:
        """
        Decrypt an envelope produced by any supported scheme.

        An empty envelope decrypts to ``b""`` without touching any key.
        """
        if not envelope:
            return b""

        raw = _as_envelope_bytes(envelope)
        version = envelope_version(raw)
        if version not in self._decoders:
            logger.error("Decryption failed: unknown encrypt/decrypt version %03d", version)
            raise UnknownSchemeVersionError(f"unknown envelope version {version:03d}")

        decoder, strict = self._decoders[version]
        body = _b64decode(raw[VERSION_WIDTH:], strict=strict)
        return decoder(body, _normalize_passphrase(passphrase), key_source)

    def needs_upgrade(self, envelope: Optional[Text]) -> bool:
        """True when ``envelope`` was written by an older scheme."""
        if not envelope:
            return False
        return envelope_version(envelope) != CURRENT_VERSION

    def upgrade(
        self,
        envelope: Optional[Text],
        passphrase: Optional[Text] = None,
        key_source: KeySource | str = KeySource.FILE,
    ) -> str:
        """
        Re-encrypt a legacy envelope with the current scheme.

        Current-scheme envelopes are returned unchanged; empty stays empty.
        """
        if not envelope:
            return ""
        if not self.needs_upgrade(envelope):
            return _as_envelope_bytes(envelope).decode("ascii")

        old_version = envelope_version(envelope)
        plaintext = self.decrypt(envelope, passphrase, key_source)
        upgraded = self.encrypt(plaintext, passphrase, key_source)
        logger.info("Upgraded envelope from version %03d to %03d", old_version, CURRENT_VERSION)
        return upgraded

    # ------------------------------------------------------------------
    # Per-version decoders
    # ------------------------------------------------------------------

    def _decrypt_four(self, body: bytes, passphrase: Optional[bytes], key_source: KeySource | str) -> bytes:
        if passphrase:
            if len(body) < SALT_LENGTH:
                logger.error("Version 4 body too short to contain a salt")
                raise MalformedEnvelopeError("body too short to contain a salt")
            salt, body = body[:SALT_LENGTH], body[SALT_LENGTH:]
            self._check_body_length(body)
            keys = derive_passphrase_keys(passphrase, salt)
        else:
            self._check_body_length(body)
            keys = provisioned_keys(self.provider(key_source), CURRENT_SCHEME)

        try:
            return CURRENT_CIPHER.open(body, keys.encryption_key, keys.mac_key)
        finally:
            keys.wipe()

    def _check_body_length(self, body: bytes) -> None:
        # reject truncated bodies before any key is fetched or derived
        if len(body) < CURRENT_CIPHER.overhead:
            logger.error("Version 4 body too short: %d bytes", len(body))
            raise MalformedEnvelopeError(
                f"body too short: {len(body)} bytes, need at least {CURRENT_CIPHER.overhead}"
            )

    def _decrypt_two(self, body: bytes, passphrase: Optional[bytes], key_source: KeySource | str) -> bytes:
        return decrypt_v2(body, passphrase, self._providers[KeySource.FILE])

    def _decrypt_one(self, body: bytes, passphrase: Optional[bytes], key_source: KeySource | str) -> bytes:
        return decrypt_v1(body, passphrase, self._providers[KeySource.FILE])

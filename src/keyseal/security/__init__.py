"""Security helpers: versioned envelopes, key provisioning and derivation.

This package provides:
- Versioned envelope encrypt/decrypt with a dispatch table of every scheme
- File- and sqlite-backed key provisioning with atomic first-use creation
- PBKDF2 + HKDF passphrase key derivation
- AES-256-CBC + HMAC encrypt-then-MAC
"""

from .envelope import (
    CURRENT_VERSION,
    EnvelopeCodec,
    envelope_version,
    is_well_formed_envelope,
)
from .keystore import FileBackend, KeyProvider, KeySource, StoreBackend
from .kdf import DerivedKeyPair, derive_passphrase_keys, generate_salt
from .rng import random_bytes

__all__ = [
    "CURRENT_VERSION",
    "EnvelopeCodec",
    "envelope_version",
    "is_well_formed_envelope",
    "FileBackend",
    "KeyProvider",
    "KeySource",
    "StoreBackend",
    "DerivedKeyPair",
    "derive_passphrase_keys",
    "generate_salt",
    "random_bytes",
]

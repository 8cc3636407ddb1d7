"""
Exceptions for KeySeal
Everything derives from KeySealError so callers have one general error catcher
"""


class KeySealError(Exception):
    # general container for errors
    pass


class StorageError(KeySealError):
    # raised when the sqlite key store fails in some way
    pass


class RandomUnavailableError(KeySealError):
    # raised when the OS CSPRNG cannot produce bytes
    pass


class KeyUnavailableError(KeySealError):
    # raised when a key cannot be read or created in its backend
    pass


class KeyDerivationError(KeySealError):
    # raised when derivation yields no usable key
    pass


class AuthenticationFailedError(KeySealError):
    # raised on a MAC mismatch; no plaintext is released
    pass


class UnknownSchemeVersionError(KeySealError):
    # raised when the version tag has no registered decoder
    pass


class MalformedEnvelopeError(KeySealError):
    # raised on bad base64, a bad tag or a truncated body
    pass

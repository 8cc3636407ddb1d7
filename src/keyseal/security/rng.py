"""Cryptographically secure random bytes for keys, salts and IVs."""

import logging
import os

from ..core.exceptions import RandomUnavailableError

logger = logging.getLogger(__name__)


def random_bytes(length: int) -> bytes:
    """
    Return ``length`` bytes from the OS CSPRNG.

    Any failure of the generator is fatal for the caller: it is logged and
    re-raised as :class:`RandomUnavailableError`, never papered over.
    """
    if length <= 0:
        raise ValueError("length must be positive")
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as e:
        logger.error("Random byte generation failed: %s", e)
        raise RandomUnavailableError(f"random byte generation failed: {e}") from e

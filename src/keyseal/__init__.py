"""KeySeal: versioned, self-describing encryption envelopes for values at rest."""

__version__ = "4.0.0"

"""Core module of KeySeal."""

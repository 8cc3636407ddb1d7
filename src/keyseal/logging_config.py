"""Lightweight logging setup for tools and scripts."""

import logging
import sys


def configure_logging(level: int = logging.INFO) -> None:
    # Configure root logger once; failures go to stderr, one line each.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

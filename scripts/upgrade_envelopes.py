"""
Re-encrypt legacy envelopes with the current scheme.

Reads one envelope per line from an input file, upgrades every line written by
an older scheme and writes the result to an output file (blank lines and
current-scheme lines are copied through unchanged).

This file exposes a small CLI so you can run:

    python scripts/upgrade_envelopes.py values.txt upgraded.txt --key-dir /srv/site/keys
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Tuple

from keyseal.context import build_context
from keyseal.logging_config import configure_logging
from keyseal.security.envelope import EnvelopeCodec
from keyseal.security.keystore import KeySource

logger = logging.getLogger("keyseal.upgrade")


def upgrade_lines(
    codec: EnvelopeCodec,
    in_path: Path,
    out_path: Path,
    passphrase: Optional[str] = None,
    key_source: KeySource = KeySource.FILE,
) -> Tuple[int, int]:
    """
    Upgrade every envelope in ``in_path`` into ``out_path``.

    Returns:
        (lines read, lines upgraded)
    """
    total = 0
    upgraded = 0
    with open(in_path, "r", encoding="ascii") as inf, open(out_path, "w", encoding="ascii") as outf:
        for line in inf:
            envelope = line.strip()
            total += 1
            if envelope and codec.needs_upgrade(envelope):
                envelope = codec.upgrade(envelope, passphrase, key_source)
                upgraded += 1
            outf.write(envelope + "\n")
    return total, upgraded


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Re-encrypt legacy envelopes with the current scheme."
    )
    parser.add_argument("input", type=Path, help="File with one envelope per line")
    parser.add_argument("output", type=Path, help="Where to write the upgraded envelopes")
    parser.add_argument("--key-dir", type=Path, required=True, help="Key directory of the installation")
    parser.add_argument("--db", type=Path, default=None, help="SQLite key store (for --key-source database)")
    parser.add_argument(
        "--key-source",
        choices=[s.value for s in KeySource],
        default=KeySource.FILE.value,
        help="Where the current scheme keys live",
    )
    parser.add_argument("--passphrase", default=None, help="Passphrase the values were encrypted with")
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    ctx = build_context(args.key_dir, args.db)
    try:
        total, upgraded = upgrade_lines(
            ctx.codec,
            args.input,
            args.output,
            passphrase=args.passphrase,
            key_source=KeySource(args.key_source),
        )
    finally:
        ctx.close()

    logger.info("Upgraded %d of %d lines", upgraded, total)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
cli.py

Command line entry point for a2lpipe.

Resolves addresses against one ELF using a single addr2line process:

    a2lpipe ./a.out 401136 0x401150
    nm --defined-only ./a.out | cut -d' ' -f1 | a2lpipe ./a.out

Addresses come from the command line or, when none are given, one per line
from stdin (blank lines and '#' comments are skipped).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from a2lpipe.errors import Addr2lineError
from a2lpipe.output_formatter import format_all, write_formatted_to_file
from a2lpipe.resolver import (
    PREFIX_OPTIONAL,
    PREFIX_POLICIES,
    Addr2line,
    Addr2lineOptions,
)
from a2lpipe.supervisor import DEFAULT_ADDR2LINE, DEFAULT_STARTUP_GRACE


LOG = logging.getLogger("a2lpipe")


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Resolve addresses to function/file/line with one long-lived addr2line.",
    )
    p.add_argument(
        "elf",
        metavar="ELF",
        help="Binary to resolve addresses against.",
    )
    p.add_argument(
        "addresses",
        metavar="ADDR",
        nargs="*",
        help="Addresses (hex, with or without 0x). Read from stdin if omitted.",
    )
    p.add_argument(
        "--addr2line-bin",
        default=DEFAULT_ADDR2LINE,
        help=f"addr2line executable to run (default: {DEFAULT_ADDR2LINE}).",
    )
    p.add_argument(
        "--demangle",
        "-C",
        action="store_true",
        help="Demangle C++ function names.",
    )
    p.add_argument(
        "--prefix-policy",
        choices=PREFIX_POLICIES,
        default=PREFIX_OPTIONAL,
        help=(
            "How to handle an ELF without usable DWARF when computing the "
            "common build directory prefix (default: %(default)s)."
        ),
    )
    p.add_argument(
        "--startup-grace",
        type=float,
        default=DEFAULT_STARTUP_GRACE,
        metavar="SECONDS",
        help="Time to wait for addr2line to fail on startup (default: %(default)s).",
    )
    p.add_argument(
        "--output",
        help="Write results to this file instead of stdout.",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


def read_addresses(stream: TextIO) -> List[str]:
    """
    Read one address per line, skipping blank lines and '#' comments.
    """
    out: List[str] = []
    for raw in stream:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        out.append(line)
    return out


def _wire_address(addr: str) -> str:
    # addr2line reads addresses as hex; keep what the user typed otherwise.
    if addr[:2] in ("0x", "0X"):
        return addr[2:]
    return addr


def run_resolution(
    elf: Path,
    addresses: Iterable[str],
    options: Addr2lineOptions,
    output: Optional[str],
) -> None:
    addrs = list(addresses)
    if not addrs:
        LOG.warning("No addresses to resolve.")
        return

    LOG.info("Resolving %d address(es) against %s", len(addrs), elf)
    with Addr2line.from_elf(elf, options) as a2l:
        results = []
        for addr in addrs:
            results.append((addr, a2l.resolve_string(_wire_address(addr))))

    if output:
        out_path = Path(output)
        LOG.info("Writing results to: %s", out_path)
        write_formatted_to_file(results, out_path)
        return

    print("\n".join(format_all(results)))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    elf = Path(args.elf)
    if not elf.is_file():
        LOG.error("ELF file does not exist: %s", elf)
        raise SystemExit(1)

    options = Addr2lineOptions(
        addr2line_bin=args.addr2line_bin,
        demangle=args.demangle,
        prefix_policy=args.prefix_policy,
        startup_grace=args.startup_grace,
    )

    addresses = args.addresses or read_addresses(sys.stdin)

    try:
        run_resolution(elf, addresses, options, args.output)
    except Addr2lineError as e:
        LOG.error("%s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()

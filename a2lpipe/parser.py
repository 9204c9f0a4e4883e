"""
parser.py

Parser for addr2line responses in function + inline mode (-f -i).

A response to one address is either the unknown sentinel

    ??
    ??:0

or one or more groups of two lines, innermost inlined frame first:

    <function>
    <file>:<line>

Only the last ':' of the second line separates the line number, so paths
like "C:\\src\\a.c:42" keep their drive letter.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple

from a2lpipe.errors import MalformedOutput, ParseError, TruncatedResponse


UNKNOWN_RESPONSE = b"??\n??:0"


@dataclass(frozen=True)
class Resolution:
    """One (possibly inlined) frame for a resolved address."""
    function: str
    file: str
    line: int


def split_file_line(file_line: bytes) -> Tuple[bytes, int]:
    """
    Split "<path>:<line>" on its last colon.
    """
    j = file_line.rfind(b":")
    if j < 0:
        raise ParseError(f"cannot find ':' in file name: {file_line!r}", file_line)
    digits = file_line[j + 1:]
    if not digits.isdigit():
        raise ParseError(f"cannot convert line number to int: {file_line!r}", file_line)
    return file_line[:j], int(digits)


def strip_prefix(path: bytes, prefix: bytes) -> bytes:
    if prefix and path.startswith(prefix):
        return path[len(prefix):]
    return path


def parse_response(chunk: bytes, prefix: bytes = b"") -> List[Resolution]:
    """
    Parse one newline-terminated response chunk into Resolution objects.

    Returns [] for the unknown sentinel. Raises MalformedOutput when the
    chunk is not newline-terminated and ParseError on a bad file:line line
    or a function line without its file:line partner (TruncatedResponse).
    """
    if not chunk.endswith(b"\n"):
        raise MalformedOutput(chunk)
    body = chunk[:-1]
    if body == UNKNOWN_RESPONSE:
        return []

    lines = body.split(b"\n")
    if len(lines) % 2:
        raise TruncatedResponse(f"dangling function line in response: {chunk!r}", lines[-1])

    results: List[Resolution] = []
    for i in range(0, len(lines), 2):
        path, line = split_file_line(lines[i + 1])
        path = strip_prefix(path, prefix)
        results.append(Resolution(
            function=lines[i].decode("utf-8", errors="replace"),
            file=os.fsdecode(path),
            line=line,
        ))
    return results


__all__ = [
    "UNKNOWN_RESPONSE",
    "Resolution",
    "split_file_line",
    "strip_prefix",
    "parse_response",
]

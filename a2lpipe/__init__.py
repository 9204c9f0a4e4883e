"""
a2lpipe: resolve addresses to function/file/line through one long-lived
addr2line process.

    from a2lpipe import Addr2line

    with Addr2line.from_elf("./a.out") as a2l:
        for frame in a2l.resolve(0x401136):
            print(frame.function, frame.file, frame.line)
"""

from a2lpipe.errors import (
    Addr2lineError,
    ChannelError,
    DebugInfoUnavailable,
    InvariantViolation,
    MalformedOutput,
    ParseError,
    PipeCreationFailure,
    ReadFailure,
    SessionClosed,
    StartupFailure,
    TruncatedResponse,
    WriteFailure,
)
from a2lpipe.parser import Resolution
from a2lpipe.prefix import common_prefix, compute_file_prefix, extract_comp_dirs
from a2lpipe.resolver import Addr2line, Addr2lineOptions, normalize_address
from a2lpipe.supervisor import build_command

__all__ = [
    "Addr2line",
    "Addr2lineOptions",
    "Resolution",
    "build_command",
    "common_prefix",
    "compute_file_prefix",
    "extract_comp_dirs",
    "normalize_address",
    "Addr2lineError",
    "ChannelError",
    "DebugInfoUnavailable",
    "InvariantViolation",
    "MalformedOutput",
    "ParseError",
    "PipeCreationFailure",
    "ReadFailure",
    "SessionClosed",
    "StartupFailure",
    "TruncatedResponse",
    "WriteFailure",
]

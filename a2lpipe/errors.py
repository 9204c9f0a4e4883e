"""
errors.py

Exception types raised by a2lpipe.

Every recoverable failure derives from Addr2lineError so that callers can
catch one base class. InvariantViolation is deliberately outside that
hierarchy: it signals a broken environment, not a failed lookup.
"""

from __future__ import annotations

from typing import Optional


class Addr2lineError(Exception):
    """Base class for all a2lpipe errors."""


class StartupFailure(Addr2lineError):
    """
    The symbolizer process could not be launched, or exited during the
    startup grace period.
    """

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class PipeCreationFailure(Addr2lineError):
    """One of the stdin/stdout/stderr pipes could not be created."""


class DebugInfoUnavailable(Addr2lineError):
    """The binary could not be opened or carries no parseable DWARF."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"no usable debug info in {path}: {reason}")
        self.path = path
        self.reason = reason


class ChannelError(Addr2lineError):
    """Base class for failures of a single query/response exchange."""


class WriteFailure(ChannelError):
    pass


class ReadFailure(ChannelError):
    pass


class MalformedOutput(ChannelError):
    """The response chunk did not end with a newline."""

    def __init__(self, chunk: bytes):
        super().__init__(f"malformed output, not ending with newline: {chunk!r}")
        self.chunk = chunk


class ParseError(ChannelError):
    def __init__(self, message: str, line: bytes = b""):
        super().__init__(message)
        self.line = line


class TruncatedResponse(ParseError):
    """The response ends with a function line whose location never arrived."""


class SessionClosed(ChannelError):
    """The session was closed or is desynchronized and must be recreated."""


class InvariantViolation(RuntimeError):
    pass


__all__ = [
    "Addr2lineError",
    "StartupFailure",
    "PipeCreationFailure",
    "DebugInfoUnavailable",
    "ChannelError",
    "WriteFailure",
    "ReadFailure",
    "MalformedOutput",
    "ParseError",
    "TruncatedResponse",
    "SessionClosed",
    "InvariantViolation",
]

"""
resolver.py

Long-lived addr2line session.

Responsibilities:
  - Compute the comp_dir prefix of the ELF (prefix.py) once.
  - Start addr2line once (supervisor.py) and keep its pipes.
  - For every address: write one line, do one bounded read, parse the
    response (parser.py) and strip the prefix.
  - Optional in-memory cache of answered queries.

The protocol has no request ids, so writes and reads must strictly
alternate. Nothing here locks: callers sharing an Addr2line across threads
must serialize resolve calls themselves.

Only startup has a timeout. If addr2line hangs or dies after startup, a
resolve call can block on the read forever.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Union

from a2lpipe.errors import (
    DebugInfoUnavailable,
    MalformedOutput,
    ParseError,
    ReadFailure,
    SessionClosed,
    TruncatedResponse,
    WriteFailure,
)
from a2lpipe.parser import Resolution, parse_response
from a2lpipe.prefix import compute_file_prefix, extract_comp_dirs
from a2lpipe.supervisor import (
    DEFAULT_ADDR2LINE,
    DEFAULT_STARTUP_GRACE,
    build_command,
    start_process,
)


LOG = logging.getLogger("resolver")

# addr2line flushes after each address; a response up to PIPE_BUF is
# written atomically and can be read in one call. Larger responses (deep
# inline chains) are not accumulated.
PIPE_BUF_SIZE = 1024

PREFIX_REQUIRE = "require"
PREFIX_OPTIONAL = "optional"
PREFIX_DISABLE = "disable"
PREFIX_POLICIES = (PREFIX_REQUIRE, PREFIX_OPTIONAL, PREFIX_DISABLE)


@dataclass
class Addr2lineOptions:
    """
    Settings for an Addr2line session.

    prefix_policy:
        What from_elf() does when the ELF has no usable DWARF:
          - 'require'  : raise DebugInfoUnavailable
          - 'optional' : log a warning and keep paths as reported
          - 'disable'  : do not read the DWARF at all
    """
    addr2line_bin: str = DEFAULT_ADDR2LINE
    demangle: bool = False
    prefix_policy: str = PREFIX_REQUIRE
    startup_grace: float = DEFAULT_STARTUP_GRACE
    read_size: int = PIPE_BUF_SIZE
    cache: bool = True
    close_timeout: float = 1.0

    def __post_init__(self) -> None:
        if self.prefix_policy not in PREFIX_POLICIES:
            raise ValueError(
                f"prefix_policy must be one of {', '.join(PREFIX_POLICIES)}, "
                f"got {self.prefix_policy!r}"
            )
        if self.read_size <= 0:
            raise ValueError(f"read_size must be positive, got {self.read_size}")


def normalize_address(addr: str) -> str:
    """
    Normalize an address string so that "0x1ffff", "0X1FFFF" and "1ffff"
    compare equal.

    The format is "0x" + lowercase hex without leading zeros (except "0").
    """
    s = addr.strip()
    if not s:
        return ""
    if s[:2] in ("0x", "0X"):
        s = s[2:]
    body = s.lstrip("0") or "0"
    return "0x" + body.lower()


def _file_prefix_for(elf: str, policy: str) -> bytes:
    if policy == PREFIX_DISABLE:
        return b""
    try:
        dirs = extract_comp_dirs(elf)
    except DebugInfoUnavailable as e:
        if policy == PREFIX_REQUIRE:
            raise
        LOG.warning("Prefix stripping disabled for %s: %s", elf, e.reason)
        return b""
    prefix = compute_file_prefix(dirs)
    LOG.info("File prefix for %s: %r (%d compile units)", elf, prefix, len(dirs))
    return prefix


class Addr2line:
    """
    A running addr2line process answering one address at a time.

    Build it with from_elf() or from_command(). After a WriteFailure,
    ReadFailure, MalformedOutput or TruncatedResponse (or a ParseError on a
    response that filled the read buffer) the pipes may be out of step with
    the process, so the session refuses further queries with SessionClosed;
    create a new one instead.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        file_prefix: bytes = b"",
        options: Optional[Addr2lineOptions] = None,
    ):
        self.options = options or Addr2lineOptions()
        self._proc = proc
        self._w = proc.stdin
        self._r = proc.stdout
        self._prefix = file_prefix
        self._cache: Dict[str, List[Resolution]] = {}
        self._closed = False
        self._broken: Optional[str] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_command(
        cls,
        cmd: Sequence[Union[str, "os.PathLike[str]"]],
        file_prefix: Union[bytes, str] = b"",
        options: Optional[Addr2lineOptions] = None,
    ) -> "Addr2line":
        """
        Start a caller-built command line. It must behave like
        `addr2line -f -i -e ELF`.
        """
        options = options or Addr2lineOptions()
        if isinstance(file_prefix, str):
            file_prefix = os.fsencode(file_prefix)
        proc = start_process(cmd, startup_grace=options.startup_grace)
        return cls(proc, file_prefix=file_prefix, options=options)

    @classmethod
    def from_elf(
        cls,
        elf: Union[str, "os.PathLike[str]"],
        options: Optional[Addr2lineOptions] = None,
    ) -> "Addr2line":
        """
        Compute the comp_dir prefix of elf and start addr2line against it.
        """
        options = options or Addr2lineOptions()
        elf_str = os.fspath(elf)
        prefix = _file_prefix_for(elf_str, options.prefix_policy)
        cmd = build_command(elf_str, options.addr2line_bin, options.demangle)
        return cls.from_command(cmd, file_prefix=prefix, options=options)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def file_prefix(self) -> str:
        return os.fsdecode(self._prefix)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve(self, addr: int) -> List[Resolution]:
        """Resolve a numeric address; it is sent as lowercase hex."""
        if addr < 0:
            raise ValueError(f"address must be non-negative, got {addr}")
        return self.resolve_string(f"{addr:x}")

    def resolve_string(self, addr: str) -> List[Resolution]:
        """
        Resolve an address given as text, sent to addr2line verbatim.
        Returns [] when addr2line knows nothing about it.
        """
        if "\n" in addr or "\r" in addr:
            raise ValueError(f"address must be a single line: {addr!r}")

        self._check_usable()
        if self.options.cache:
            cached = self._cache.get(addr)
            if cached is not None:
                return list(cached)

        self._send(addr)
        chunk = self._receive()
        try:
            results = parse_response(chunk, self._prefix)
        except (MalformedOutput, TruncatedResponse):
            self._broken = "incomplete response"
            raise
        except ParseError:
            # a full buffer may have cut the response; the rest is still queued
            if len(chunk) >= self.options.read_size:
                self._broken = "response filled the read buffer"
            raise

        LOG.debug("%s -> %d frame(s)", addr, len(results))
        if self.options.cache:
            self._cache[addr] = list(results)
        return results

    def resolve_many(self, addrs: Iterable[Union[int, str]]) -> Dict[Union[int, str], List[Resolution]]:
        """
        Resolve several addresses one after the other over this session.

        Keys of the returned dict are the inputs as given; an address that
        appears more than once is only sent once.
        """
        out: Dict[Union[int, str], List[Resolution]] = {}
        for addr in addrs:
            if addr in out:
                continue
            if isinstance(addr, int):
                out[addr] = self.resolve(addr)
            else:
                out[addr] = self.resolve_string(addr)
        return out

    def _check_usable(self) -> None:
        if self._closed:
            raise SessionClosed("addr2line session is closed")
        if self._broken is not None:
            raise SessionClosed(f"addr2line session is desynchronized ({self._broken})")

    def _send(self, addr: str) -> None:
        data = (addr + "\n").encode("ascii", errors="strict")
        try:
            written = self._w.write(data)
        except (OSError, ValueError) as e:
            self._broken = "write failed"
            raise WriteFailure(f"cannot write {addr!r} to addr2line (pid {self.pid}): {e}") from e
        if written != len(data):
            self._broken = "short write"
            raise WriteFailure(f"short write to addr2line (pid {self.pid}): {written} of {len(data)} bytes")

    def _receive(self) -> bytes:
        try:
            chunk = self._r.read(self.options.read_size)
        except (OSError, ValueError) as e:
            self._broken = "read failed"
            raise ReadFailure(f"cannot read from addr2line (pid {self.pid}): {e}") from e
        if not chunk:
            self._broken = "end of output"
            raise ReadFailure(
                f"addr2line (pid {self.pid}) closed its output, "
                f"exit status {self._proc.poll()}"
            )
        return chunk

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def close(self) -> Optional[int]:
        """
        Close the pipes and reap the process. addr2line exits on EOF; it is
        killed if it has not done so within options.close_timeout seconds.
        Returns the exit status. Calling close() again is harmless.
        """
        if self._closed:
            return self._proc.returncode
        self._closed = True

        for stream in (self._w, self._r):
            try:
                stream.close()
            except OSError as e:
                LOG.debug("Ignoring error while closing pipe of pid %d: %s", self.pid, e)

        try:
            rc = self._proc.wait(timeout=self.options.close_timeout)
        except subprocess.TimeoutExpired:
            LOG.warning("addr2line (pid %d) did not exit, killing it", self.pid)
            self._proc.kill()
            rc = self._proc.wait()

        LOG.info("addr2line (pid %d) exited with %s", self.pid, rc)
        return rc

    def __enter__(self) -> "Addr2line":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "running"
        return f"<Addr2line pid={self.pid} prefix={self.file_prefix!r} {state}>"


__all__ = [
    "PIPE_BUF_SIZE",
    "PREFIX_REQUIRE",
    "PREFIX_OPTIONAL",
    "PREFIX_DISABLE",
    "Addr2lineOptions",
    "Addr2line",
    "normalize_address",
]

"""
supervisor.py

Launch the addr2line process and detect early failures.

addr2line has no handshake: when it starts fine it simply waits for input.
Failures (missing binary, unreadable ELF, bad arguments) show up as an
immediate exit. So after spawning we race a short timer against a watcher
thread that drains stderr and waits for the exit:

  - watcher reports an exit first -> StartupFailure with the exit status
    and whatever was written to stderr;
  - timer fires first           -> the process is presumed ready.

Once the process is presumed ready the watcher is stopped and stderr is
closed. Anything the process writes to stderr afterwards is not observed.
"""

from __future__ import annotations

import errno
import logging
import os
import queue
import selectors
import subprocess
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from a2lpipe.errors import InvariantViolation, PipeCreationFailure, StartupFailure


LOG = logging.getLogger("supervisor")

DEFAULT_ADDR2LINE = "addr2line"

# Seconds to wait for an early exit before the process is presumed alive.
DEFAULT_STARTUP_GRACE = 0.02

# Poll interval of the watcher, bounds how long stopping it can take.
_WATCH_POLL = 0.005

_PIPE_ERRNOS = (errno.EMFILE, errno.ENFILE)


def build_command(
    elf: Union[str, "os.PathLike[str]"],
    addr2line_bin: str = DEFAULT_ADDR2LINE,
    demangle: bool = False,
) -> List[str]:
    """
    Command line for addr2line in function + inline mode (same as -fie).
    GNU addr2line flushes stdout after every address it reads from stdin.
    """
    cmd = [addr2line_bin, "-f", "-i"]
    if demangle:
        cmd.append("-C")
    cmd.extend(["-e", os.fspath(elf)])
    return cmd


@dataclass
class _EarlyExit:
    returncode: Optional[int]
    stderr: bytes


class _StartupWatcher(threading.Thread):
    """
    Drain the child's stderr until EOF, then wait for it to exit and post
    the outcome. Stops without touching the pipe again once stop() is set.
    """

    def __init__(self, proc: subprocess.Popen):
        super().__init__(name=f"a2lpipe-watch-{proc.pid}", daemon=True)
        self.proc = proc
        self.outcome: "queue.Queue[_EarlyExit]" = queue.Queue(maxsize=1)
        self._stopping = threading.Event()
        self._captured = bytearray()

    def stop(self) -> None:
        self._stopping.set()

    def run(self) -> None:
        fd = self.proc.stderr.fileno()
        eof = False
        with selectors.DefaultSelector() as sel:
            sel.register(fd, selectors.EVENT_READ)
            while not self._stopping.is_set():
                if not sel.select(timeout=_WATCH_POLL):
                    continue
                chunk = os.read(fd, 4096)
                if not chunk:
                    eof = True
                    break
                self._captured += chunk

        if not eof:
            return

        while not self._stopping.is_set():
            try:
                rc = self.proc.wait(timeout=_WATCH_POLL)
            except subprocess.TimeoutExpired:
                continue
            self.outcome.put(_EarlyExit(rc, bytes(self._captured)))
            return


def _describe_exit(returncode: Optional[int]) -> str:
    if returncode is None:
        return "unknown status"
    if returncode < 0:
        return f"killed by signal {-returncode}"
    return f"exit status {returncode}"


def _discard(proc: subprocess.Popen) -> None:
    for stream in (proc.stdin, proc.stdout, proc.stderr):
        if stream is not None:
            stream.close()
    if proc.poll() is None:
        proc.kill()
    proc.wait()


def start_process(
    cmd: Sequence[Union[str, "os.PathLike[str]"]],
    startup_grace: float = DEFAULT_STARTUP_GRACE,
) -> subprocess.Popen:
    """
    Spawn cmd with all three standard streams piped and wait startup_grace
    seconds for an early failure.

    Returns the running Popen with stdin/stdout open (unbuffered) and stderr
    closed. Raises StartupFailure or PipeCreationFailure.
    """
    argv = [os.fspath(a) for a in cmd]
    if not argv:
        raise StartupFailure("empty command")

    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
    except OSError as e:
        if e.errno in _PIPE_ERRNOS:
            raise PipeCreationFailure(f"cannot create pipes for {argv[0]}: {e}") from e
        raise StartupFailure(f"cannot start {argv[0]}: {e}") from e

    if proc.stdin is None or proc.stdout is None or proc.stderr is None:
        _discard(proc)
        raise PipeCreationFailure(f"missing standard stream pipe for {argv[0]}")

    LOG.info("Started %s (pid %d)", " ".join(argv), proc.pid)

    watcher = _StartupWatcher(proc)
    watcher.start()
    try:
        early = watcher.outcome.get(timeout=startup_grace)
    except queue.Empty:
        early = None

    if early is not None:
        watcher.join()
        _discard(proc)
        stderr_text = early.stderr.decode("utf-8", errors="replace").strip()
        LOG.debug("%s stderr: %s", argv[0], stderr_text)
        raise StartupFailure(
            f"{argv[0]} exited unexpectedly: {_describe_exit(early.returncode)}. "
            f"Stderr: {stderr_text!r}",
            returncode=early.returncode,
            stderr=stderr_text,
        )

    watcher.stop()
    watcher.join()

    try:
        proc.stderr.close()
    except OSError as e:
        raise InvariantViolation(f"stderr pipe cannot just refuse to close: {e}") from e

    LOG.debug("%s (pid %d) presumed ready after %.3fs", argv[0], proc.pid, startup_grace)
    return proc


__all__ = [
    "DEFAULT_ADDR2LINE",
    "DEFAULT_STARTUP_GRACE",
    "build_command",
    "start_process",
]

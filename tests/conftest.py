"""
Pytest configuration and fixtures for a2lpipe tests.

The real addr2line is replaced by a small Python script that answers
addresses from a fixed table, so most tests do not need binutils.
"""

import stat
import subprocess
import sys
from pathlib import Path

import pytest


# "@N@" in a response is replaced by the 1-based number of the query,
# "__exit__" makes the fake exit without answering.
FAKE_ADDR2LINE = '''#!{python}
import sys

RESPONSES = {responses!r}

n = 0
for line in sys.stdin.buffer:
    n += 1
    addr = line.strip().decode()
    out = RESPONSES.get(addr, "??\\n??:0\\n")
    if out == "__exit__":
        sys.exit(0)
    sys.stdout.buffer.write(out.replace("@N@", str(n)).encode())
    sys.stdout.buffer.flush()
'''


@pytest.fixture
def fake_addr2line(tmp_path):
    """
    Factory writing an executable fake addr2line serving the given
    address -> raw response table. Returns the script path.
    """
    counter = [0]

    def make(responses):
        counter[0] += 1
        script = tmp_path / f"fake_addr2line_{counter[0]}.py"
        script.write_text(FAKE_ADDR2LINE.format(python=sys.executable, responses=dict(responses)))
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return make


@pytest.fixture
def fake_command(fake_addr2line):
    """Factory returning an argv list running the fake via this interpreter."""

    def make(responses):
        return [sys.executable, str(fake_addr2line(responses))]

    return make


@pytest.fixture
def not_an_elf(tmp_path):
    path = tmp_path / "a.out"
    path.write_text("this is plain text and certainly not an ELF image\n")
    return path


@pytest.fixture
def sessions():
    """Collect Addr2line sessions and close them after the test."""
    opened = []
    yield opened
    for a2l in opened:
        a2l.close()


@pytest.fixture
def compiled_sample(tmp_path):
    """
    Compile a tiny C program with debug info and return (elf, symbols) where
    symbols maps defined symbol names to their nm address strings.
    """
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    (src_dir / "a.c").write_text(
        "#include <stdio.h>\n"
        "\n"
        "static inline int g() { return 3; }\n"
        "int f() { return g(); }\n"
        "\n"
        "int main() { return f(); }\n"
    )
    elf = src_dir / "a.out"
    subprocess.run(["gcc", "-ggdb3", "a.c", "-o", str(elf)], cwd=src_dir, check=True)

    nm = subprocess.run(
        ["nm", "--defined-only", str(elf)],
        stdout=subprocess.PIPE,
        check=True,
        text=True,
    )
    symbols = {}
    for line in nm.stdout.strip().splitlines():
        parts = line.split()
        if len(parts) == 3:
            symbols[parts[2]] = parts[0]
    return Path(elf), symbols

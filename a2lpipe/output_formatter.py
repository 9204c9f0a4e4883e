"""
output_formatter.py

Text rendering of resolved addresses.

Convention, one block per address:

    0xADDR in FUNC at FILE:LINE
        (inlined by) CALLER at FILE:LINE
        ...

The first line is the innermost frame as reported by addr2line; every
further frame is the function it was inlined into. An address without
any information prints as "ADDR in ?? at ??:0".

Integers and 0x-prefixed text are shown as lowercase 0x hex; any other
text is shown as the caller wrote it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

from a2lpipe.parser import Resolution
from a2lpipe.resolver import normalize_address


_INLINE_INDENT = "    "


def _display_address(addr: Union[int, str]) -> str:
    if isinstance(addr, int):
        return f"0x{addr:x}"
    if addr.strip()[:2] in ("0x", "0X"):
        return normalize_address(addr)
    return addr


def _loc(res: Resolution) -> str:
    return f"{res.file}:{res.line}"


def format_resolutions(addr: Union[int, str], resolutions: Sequence[Resolution]) -> List[str]:
    """
    Format the frames of a single address.
    """
    shown = _display_address(addr)
    if not resolutions:
        return [f"{shown} in ?? at ??:0"]

    first = resolutions[0]
    lines = [f"{shown} in {first.function} at {_loc(first)}"]
    for res in resolutions[1:]:
        lines.append(f"{_INLINE_INDENT}(inlined by) {res.function} at {_loc(res)}")
    return lines


def _items(results) -> Iterable[Tuple[Union[int, str], Sequence[Resolution]]]:
    if isinstance(results, Mapping):
        return results.items()
    return results


def format_all(results) -> List[str]:
    """
    Format many addresses, in the order given. results is a mapping
    (as returned by Addr2line.resolve_many) or an iterable of
    (address, resolutions) pairs.
    """
    lines: List[str] = []
    for addr, resolutions in _items(results):
        lines.extend(format_resolutions(addr, resolutions))
    return lines


def write_formatted_to_file(results, path: Path) -> None:
    """
    Write formatted results to path, creating parent directories.
    """
    lines = format_all(results)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for line in lines:
            f.write(line)
            f.write("\n")


__all__ = [
    "format_resolutions",
    "format_all",
    "write_formatted_to_file",
]

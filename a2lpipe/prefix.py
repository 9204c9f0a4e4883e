"""
prefix.py

Compute the file-path prefix that addr2line results are shortened by.

Responsibilities:
  - Read every DW_AT_comp_dir recorded on the compile units of an ELF
    (pyelftools).
  - Compute the longest common prefix of those directories.

Only the top-level DIE of each compile unit is looked at; nothing else in
the DWARF is decoded here.
"""

from __future__ import annotations

import logging
import os
from typing import List, Sequence, TypeVar, Union

from elftools.common.exceptions import DWARFError, ELFError
from elftools.construct.core import ConstructError
from elftools.elf.elffile import ELFFile

from a2lpipe.errors import DebugInfoUnavailable


LOG = logging.getLogger("prefix")

_DEBUG_INFO_SECTIONS = (".debug_info", ".zdebug_info")

S = TypeVar("S", str, bytes)


def extract_comp_dirs(path: Union[str, "os.PathLike[str]"]) -> List[bytes]:
    """
    Return the DW_AT_comp_dir value of every compile unit in the ELF at path.

    The list may be empty (compile units without the attribute) and may
    contain duplicates. Raises DebugInfoUnavailable if the file cannot be
    opened, is not an ELF, or has no parseable DWARF.
    """
    path_str = os.fspath(path)
    try:
        f = open(path_str, "rb")
    except OSError as e:
        raise DebugInfoUnavailable(path_str, str(e)) from e

    with f:
        try:
            elf = ELFFile(f)
            if not any(elf.get_section_by_name(name) for name in _DEBUG_INFO_SECTIONS):
                raise DebugInfoUnavailable(path_str, "no .debug_info section")

            dirs: List[bytes] = []
            for cu in elf.get_dwarf_info().iter_CUs():
                top = cu.get_top_DIE()
                if top.tag != "DW_TAG_compile_unit":
                    continue
                attr = top.attributes.get("DW_AT_comp_dir")
                if attr is None:
                    continue
                value = attr.value
                if isinstance(value, str):
                    value = os.fsencode(value)
                dirs.append(value)
        except (ELFError, DWARFError, ConstructError, KeyError, ValueError) as e:
            raise DebugInfoUnavailable(path_str, str(e)) from e

    LOG.debug("Found %d comp_dir entries in %s", len(dirs), path_str)
    return dirs


def common_prefix(strings: Sequence[S]) -> S:
    """
    Longest common prefix of strings.

    The common prefix of a set is that of its lexicographic min and max,
    since every other element sorts between the two. A single element is
    returned as-is; an empty sequence gives an empty value (str).
    """
    if len(strings) == 0:
        return ""  # type: ignore[return-value]
    if len(strings) == 1:
        return strings[0]

    lo = min(strings)
    hi = max(strings)
    for i in range(min(len(lo), len(hi))):
        if lo[i] != hi[i]:
            return lo[:i]
    # lo is a prefix of hi ("foo" < "foobar")
    return lo


def compute_file_prefix(dirs: Sequence[bytes]) -> bytes:
    """
    Prefix to strip from reported file paths: the common prefix of dirs
    followed by a separator, or b"" when there is nothing in common.
    """
    prefix = common_prefix(dirs) if dirs else b""
    if prefix and not prefix.endswith(b"/"):
        prefix += b"/"
    return prefix


__all__ = [
    "extract_comp_dirs",
    "common_prefix",
    "compute_file_prefix",
]

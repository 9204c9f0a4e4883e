"""
Tests for comp_dir extraction and common prefix computation.
"""

import shutil

import pytest

from a2lpipe.errors import DebugInfoUnavailable
from a2lpipe.prefix import common_prefix, compute_file_prefix, extract_comp_dirs


SETS = [
    ["/build/src/a", "/build/src/b"],
    ["foo", "foobar"],
    ["foobar", "foo", "fooqux"],
    ["abc", "xyz"],
    ["same", "same", "same"],
    [b"/home/u/proj/lib", b"/home/u/proj", b"/home/u/proj/bin"],
    ["", "abc"],
]


class TestCommonPrefix:
    def test_empty(self):
        assert common_prefix([]) == ""

    def test_single_element_verbatim(self):
        assert common_prefix(["/only/dir"]) == "/only/dir"
        assert common_prefix([b"/only/dir"]) == b"/only/dir"

    def test_shorter_string_wins(self):
        assert common_prefix(["foobar", "foo"]) == "foo"

    def test_mismatch(self):
        assert common_prefix(["/build/src/a", "/build/sub"]) == "/build/s"

    def test_bytes(self):
        assert common_prefix([b"/x/y/z", b"/x/y/w", b"/x/q"]) == b"/x/"

    @pytest.mark.parametrize("strings", SETS)
    def test_is_prefix_of_every_element(self, strings):
        p = common_prefix(strings)
        assert all(s.startswith(p) for s in strings)

    @pytest.mark.parametrize("strings", SETS)
    def test_is_maximal(self, strings):
        p = common_prefix(strings)
        shortest = min(strings, key=len)
        if len(p) < len(shortest):
            longer = shortest[: len(p) + 1]
            assert not all(s.startswith(longer) for s in strings)


class TestComputeFilePrefix:
    def test_adds_separator(self):
        assert compute_file_prefix([b"/build/src", b"/build/src"]) == b"/build/src/"

    def test_no_dirs(self):
        assert compute_file_prefix([]) == b""

    def test_nothing_in_common(self):
        assert compute_file_prefix([b"/a", b"x"]) == b""

    def test_no_double_separator(self):
        assert compute_file_prefix([b"/build/src/a", b"/build/src/b"]) == b"/build/src/"


class TestExtractCompDirs:
    def test_missing_file(self, tmp_path):
        with pytest.raises(DebugInfoUnavailable) as exc:
            extract_comp_dirs(tmp_path / "missing")
        assert exc.value.path == str(tmp_path / "missing")

    def test_not_an_elf(self, not_an_elf):
        with pytest.raises(DebugInfoUnavailable):
            extract_comp_dirs(not_an_elf)

    @pytest.mark.parametrize("error", [KeyError("DW_FORM_unknown"), ValueError("bad attribute")])
    def test_malformed_dwarf(self, monkeypatch, not_an_elf, error):
        def broken_elf(stream):
            raise error

        monkeypatch.setattr("a2lpipe.prefix.ELFFile", broken_elf)
        with pytest.raises(DebugInfoUnavailable):
            extract_comp_dirs(not_an_elf)

    @pytest.mark.skipif(shutil.which("gcc") is None or shutil.which("nm") is None,
                        reason="gcc and nm are required")
    def test_compiled_binary(self, compiled_sample):
        elf, _ = compiled_sample
        dirs = extract_comp_dirs(elf)
        assert dirs
        assert any(d.endswith(b"src") for d in dirs)

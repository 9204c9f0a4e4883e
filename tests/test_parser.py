"""
Unit tests for addr2line response parsing.
"""

import pytest

from a2lpipe.errors import MalformedOutput, ParseError, TruncatedResponse
from a2lpipe.parser import Resolution, parse_response, split_file_line, strip_prefix


class TestSplitFileLine:
    def test_simple(self):
        assert split_file_line(b"/src/a.c:12") == (b"/src/a.c", 12)

    def test_uses_last_colon(self):
        assert split_file_line(b"C:\\path\\file.c:42") == (b"C:\\path\\file.c", 42)

    def test_no_colon(self):
        with pytest.raises(ParseError) as exc:
            split_file_line(b"nocolon")
        assert exc.value.line == b"nocolon"

    @pytest.mark.parametrize("text", [b"a.c:", b"a.c:?", b"a.c:12x", b"a.c:-1", b"a.c: 3"])
    def test_line_not_a_number(self, text):
        with pytest.raises(ParseError):
            split_file_line(text)


class TestStripPrefix:
    def test_matching_prefix_is_removed(self):
        assert strip_prefix(b"/build/src/a.c", b"/build/src/") == b"a.c"

    def test_other_path_unchanged(self):
        assert strip_prefix(b"/other/a.c", b"/build/src/") == b"/other/a.c"

    def test_empty_prefix(self):
        assert strip_prefix(b"/build/src/a.c", b"") == b"/build/src/a.c"


class TestParseResponse:
    def test_single_frame(self):
        assert parse_response(b"main\n/src/a.c:6\n") == [Resolution("main", "/src/a.c", 6)]

    def test_inlined_frames_keep_order(self):
        chunk = b"g\n/src/a.c:3\nf\n/src/a.c:4\n"
        assert parse_response(chunk) == [
            Resolution("g", "/src/a.c", 3),
            Resolution("f", "/src/a.c", 4),
        ]

    def test_unknown_sentinel_is_empty(self):
        assert parse_response(b"??\n??:0\n") == []

    def test_unknown_frame_among_others_is_kept(self):
        chunk = b"g\n/src/a.c:3\n??\n??:0\n"
        assert parse_response(chunk) == [
            Resolution("g", "/src/a.c", 3),
            Resolution("??", "??", 0),
        ]

    def test_missing_trailing_newline(self):
        with pytest.raises(MalformedOutput) as exc:
            parse_response(b"main\n/src/a.c:6")
        assert exc.value.chunk == b"main\n/src/a.c:6"

    def test_empty_chunk_is_malformed(self):
        with pytest.raises(MalformedOutput):
            parse_response(b"")

    def test_no_colon(self):
        with pytest.raises(ParseError):
            parse_response(b"main\nnocolon\n")

    def test_dangling_function_line(self):
        with pytest.raises(TruncatedResponse):
            parse_response(b"main\n/src/a.c:6\nf\n")

    def test_windows_path(self):
        res = parse_response(b"main\nC:\\path\\file.c:42\n")
        assert res == [Resolution("main", "C:\\path\\file.c", 42)]

    def test_prefix_is_stripped(self):
        chunk = b"f\n/build/src/a.c:4\nmain\n/other/a.c:6\n"
        assert parse_response(chunk, b"/build/src/") == [
            Resolution("f", "a.c", 4),
            Resolution("main", "/other/a.c", 6),
        ]

    def test_resolution_is_immutable(self):
        res = parse_response(b"main\n/src/a.c:6\n")[0]
        with pytest.raises(AttributeError):
            res.line = 7

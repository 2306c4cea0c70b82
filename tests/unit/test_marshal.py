"""Unit tests for string marshaling at the boundary."""

import pytest

from fts_bridge.config import reset_settings
from fts_bridge.errors import InvalidArgumentError
from fts_bridge.marshal import check_docid, check_slot, copy_out, to_bytes, to_term, to_text


@pytest.mark.unit
class TestToBytes:
    """Inputs become owned bytes."""

    def test_encodes_text_as_utf8(self):
        assert to_bytes("café") == "café".encode()

    def test_copies_byte_like_inputs(self):
        buffer = bytearray(b"abc")

        result = to_bytes(buffer)
        buffer[0] = ord("x")

        assert result == b"abc"
        assert to_bytes(memoryview(b"xyz")) == b"xyz"

    def test_embedded_nul_is_allowed(self):
        assert to_bytes("a\0b") == b"a\x00b"

    def test_lone_surrogate_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            to_bytes("\ud800")

    def test_other_types_are_rejected(self):
        with pytest.raises(InvalidArgumentError, match="must be str or bytes"):
            to_bytes(12, "term")


@pytest.mark.unit
class TestToText:
    """Text inputs must be valid UTF-8."""

    def test_decodes_bytes(self):
        assert to_text("naïve".encode()) == "naïve"

    def test_invalid_utf8_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            to_text(b"\xff\xfe")

    def test_str_passes_through(self):
        assert to_text("plain") == "plain"


@pytest.mark.unit
class TestToTerm:
    """Terms are non-empty and bounded in length."""

    def test_empty_term_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            to_term("")

    def test_length_limit_comes_from_settings(self, monkeypatch):
        monkeypatch.setenv("FTS_BRIDGE_MAX_TERM_LENGTH", "4")
        reset_settings()

        assert to_term("abcd") == b"abcd"
        with pytest.raises(InvalidArgumentError, match="limit is 4"):
            to_term("abcde")

    def test_default_limit(self):
        assert to_term("x" * 245)
        with pytest.raises(InvalidArgumentError):
            to_term("x" * 246)


@pytest.mark.unit
class TestCopyOutAndChecks:
    """Outputs are detached and numeric identifiers validated."""

    def test_copy_out(self):
        source = bytearray(b"row")

        copied = copy_out(source)
        source[0] = 0

        assert copied == b"row"
        assert type(copied) is bytes
        assert copy_out(None) == b""

    def test_check_slot(self):
        assert check_slot(0) == 0
        with pytest.raises(InvalidArgumentError):
            check_slot(-1)
        with pytest.raises(InvalidArgumentError):
            check_slot(0xFFFFFFFF)
        with pytest.raises(InvalidArgumentError):
            check_slot(True)

    def test_check_docid(self):
        assert check_docid(7) == 7
        with pytest.raises(InvalidArgumentError):
            check_docid(0)
        with pytest.raises(InvalidArgumentError):
            check_docid("1")

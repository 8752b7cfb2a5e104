"""
Tests for newline framing of the server's stdout.
"""

import json
import logging

import pytest

from mcpbridge.errors import MalformedMessageError
from mcpbridge.mcp.framing import LineFramer, decode_message


STREAM = (
    '{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}\n'
    '{"jsonrpc":"2.0","method":"notifications/message","params":{"data":"héllo ✓"}}\n'
    '\n'
    '{"jsonrpc":"2.0","id":2,"result":2}\n'
)


# ── LineFramer.feed ─────────────────────────────────────────

class TestFeed:
    def test_one_line_per_newline(self):
        framer = LineFramer()
        lines = framer.feed(STREAM)
        assert len(lines) == STREAM.count("\n")
        assert lines == STREAM.split("\n")[:-1]
        assert framer.pending == ""

    def test_partial_line_is_held(self):
        framer = LineFramer()
        assert framer.feed('{"jsonrpc":"2.0",') == []
        assert framer.pending == '{"jsonrpc":"2.0",'
        assert framer.feed('"id":1}\n{"id"') == ['{"jsonrpc":"2.0","id":1}']
        assert framer.pending == '{"id"'

    def test_split_anywhere_matches_unsplit(self):
        expected = LineFramer().feed(STREAM)
        for cut in range(1, len(STREAM)):
            framer = LineFramer()
            lines = framer.feed(STREAM[:cut]) + framer.feed(STREAM[cut:])
            assert lines == expected, f"mismatch when split at {cut}"
            assert framer.pending == ""

    def test_character_at_a_time(self):
        framer = LineFramer()
        lines = []
        for ch in STREAM:
            lines.extend(framer.feed(ch))
            assert "\n" not in framer.pending
        assert lines == STREAM.split("\n")[:-1]

    def test_bytes_split_inside_multibyte_character(self):
        data = STREAM.encode("utf-8")
        cut = data.index("✓".encode("utf-8")) + 1
        framer = LineFramer()
        lines = framer.feed(data[:cut]) + framer.feed(data[cut:])
        assert lines == STREAM.split("\n")[:-1]

    def test_carriage_returns_are_kept(self):
        framer = LineFramer()
        assert framer.feed('{"id":1}\r\n') == ['{"id":1}\r']


# ── LineFramer.messages ─────────────────────────────────────

class TestMessages:
    def test_decodes_and_skips_blank_lines(self):
        framer = LineFramer()
        messages = framer.messages(STREAM)
        assert [m.get("id") for m in messages] == [1, None, 2]
        assert messages[1]["params"]["data"] == "héllo ✓"

    def test_malformed_line_is_dropped_not_raised(self, caplog):
        framer = LineFramer()
        with caplog.at_level(logging.WARNING, logger="mcpbridge.mcp.framing"):
            messages = framer.messages('not json\n[1, 2]\n{"jsonrpc":"2.0","id":3,"result":null}\n')
        assert messages == [{"jsonrpc": "2.0", "id": 3, "result": None}]
        assert framer.malformed_count == 2
        assert "Dropping malformed MCP message" in caplog.text

    def test_crlf_lines_decode(self):
        framer = LineFramer()
        assert framer.messages('{"id":1,"result":true}\r\n') == [{"id": 1, "result": True}]


# ── decode_message ──────────────────────────────────────────

class TestDecodeMessage:
    def test_object(self):
        assert decode_message(json.dumps({"id": 1})) == {"id": 1}

    def test_invalid_json(self):
        with pytest.raises(MalformedMessageError, match="Invalid JSON"):
            decode_message("{nope")

    def test_non_object(self):
        with pytest.raises(MalformedMessageError, match="JSON object"):
            decode_message('"just a string"')

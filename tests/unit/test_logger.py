"""
Unit tests for core.logger module.

Tests:
- format_kv_pairs() quoting and truncation
- Logger key=value and JSON output
- StructuredFormatter and setup_logging()
"""

import json
import logging

import pytest

from nostrdht.core.logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging


class TestFormatKvPairs:
    """format_kv_pairs()."""

    def test_empty(self):
        assert format_kv_pairs({}) == ""

    def test_simple(self):
        assert format_kv_pairs({"url": "wss://a", "live": 3}) == " url=wss://a live=3"

    def test_quotes_values_with_spaces(self):
        assert format_kv_pairs({"reason": "closed by relay"}) == ' reason="closed by relay"'

    def test_quotes_empty_and_escapes(self):
        assert format_kv_pairs({"a": "", "b": 'say "hi"'}) == ' a="" b="say \\"hi\\""'

    def test_truncation(self):
        out = format_kv_pairs({"v": "x" * 20}, max_value_length=5, prefix="")
        assert out == 'v="xxxxx...<truncated 15 chars>"'


class TestLogger:
    """Logger output."""

    def test_name_prefixed(self):
        assert Logger("pool").name == "nostrdht.pool"

    def test_structured_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="nostrdht.pool"):
            Logger("pool").info("relay_opened", url="wss://a", live=2)
        record = caplog.records[-1]
        assert record.getMessage() == "relay_opened"
        assert record.structured_kv == {"url": "wss://a", "live": 2}

    def test_json_output(self, caplog):
        with caplog.at_level(logging.WARNING, logger="nostrdht.pool"):
            Logger("pool", json_output=True).warning("relay_closed", url="wss://a")
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["message"] == "relay_closed"
        assert payload["level"] == "warning"
        assert payload["url"] == "wss://a"

    def test_disabled_level_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="nostrdht.quiet"):
            Logger("quiet").debug("noise", x=1)
        assert not [r for r in caplog.records if r.name == "nostrdht.quiet"]

    def test_value_truncation(self, caplog):
        with caplog.at_level(logging.INFO, logger="nostrdht.trunc"):
            Logger("trunc", max_value_length=3).info("event", v="abcdef")
        assert caplog.records[-1].structured_kv["v"] == "abc...<truncated 3 chars>"


class TestStructuredFormatter:
    """StructuredFormatter and setup_logging()."""

    def test_format(self):
        record = logging.LogRecord("nostrdht.pool", logging.INFO, __file__, 1, "relay_opened", None, None)
        record.structured_kv = {"live": 3}
        assert StructuredFormatter().format(record) == "info nostrdht.pool relay_opened live=3"

    @pytest.fixture
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers, root.level = handlers, level

    def test_setup_logging(self, restore_root):
        setup_logging("warning")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

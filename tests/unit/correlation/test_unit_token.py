# tests/unit/correlation/test_unit_token.py — v1
"""Tests for correlation.token — encode/decode of spectrum references."""

from __future__ import annotations

import pytest

from toppbridge.core.errors import TokenFormatError
from toppbridge.correlation.token import CorrelationToken


class TestEncode:
    def test_with_guid(self):
        token = CorrelationToken(3, 42, '(200.1,100.0,"y2")', "abc-123")
        assert token.encode() == '3;42;(200.1,100.0,"y2");REPORT_GUID=abc-123'
        assert str(token) == token.encode()
        assert not token.is_legacy

    def test_legacy(self):
        token = CorrelationToken(3, 42, "")
        assert token.encode() == "3;42;"
        assert token.is_legacy


class TestDecode:
    def test_with_guid(self):
        token = CorrelationToken.decode("1;7;ann;REPORT_GUID=g-1")
        assert token == CorrelationToken(1, 7, "ann", "g-1")

    def test_legacy(self):
        token = CorrelationToken.decode("1;7;ann")
        assert token.result_set_guid is None
        assert token.annotation == "ann"

    def test_annotation_with_separators(self):
        token = CorrelationToken.decode("1;7;a;b;c;REPORT_GUID=g")
        assert token.annotation == "a;b;c"
        assert token.result_set_guid == "g"

    def test_encoded_token_decodes_to_itself(self):
        token = CorrelationToken(9, 11, "(1.0,2.0,\"x\")|(3.0,4.0,\"y\")", "guid")
        assert CorrelationToken.decode(token.encode()) == token

    @pytest.mark.parametrize(
        "text",
        ["", "1;2", "x;2;ann", "1;y;ann", "1;2;ann;REPORT_GUID="],
    )
    def test_malformed(self, text):
        with pytest.raises(TokenFormatError):
            CorrelationToken.decode(text)

    def test_is_lookup_error(self):
        with pytest.raises(LookupError):
            CorrelationToken.decode("nonsense")

"""
Unit tests for JSON extraction.

Tests each extraction strategy and the failure contract.
"""

import json
import time

import pytest

from ai_gateway.core.errors import JsonExtractionError
from ai_gateway.core.json_extractor import extract_json

NESTED = {
    "user": {
        "name": "Alice",
        "settings": {"theme": "dark", "notifications": True},
    },
    "items": [
        {"id": 1, "value": "first"},
        {"id": 2, "value": "second"},
    ],
}


class TestDirectParse:
    """Test whole-text parsing."""

    def test_object(self):
        assert extract_json('{"result": "success", "value": 42}') == {"result": "success", "value": 42}

    def test_array(self):
        assert extract_json("[1, 2, 3, 4, 5]") == [1, 2, 3, 4, 5]

    def test_nested_round_trip(self):
        assert extract_json(json.dumps(NESTED)) == NESTED

    def test_surrounding_whitespace(self):
        assert extract_json('\n\n  {"a": 1}  \n') == {"a": 1}

    def test_null_is_a_value(self):
        """Verify a parsed null is returned rather than treated as failure."""
        assert extract_json("null") is None


class TestFencedBlocks:
    """Test markdown code fence extraction."""

    def test_json_fence(self):
        assert extract_json('```json\n{"a":1}\n```') == {"a": 1}

    def test_fence_with_prose(self):
        text = 'Sure!\n```json\n[{"id": 1}]\n```\nLet me know if you need more.'
        assert extract_json(text) == [{"id": 1}]

    def test_unlabeled_fence(self):
        assert extract_json('```\n{"extracted": true}\n```') == {"extracted": True}

    def test_nested_in_fence(self):
        text = "```json\n" + json.dumps(NESTED, indent=2) + "\n```"
        assert extract_json(text) == NESTED


class TestBalancedScan:
    """Test scanning for the earliest balanced span."""

    def test_prose_around_object(self):
        assert extract_json('Here is the result: {"data": "value"} and more text.') == {"data": "value"}

    def test_trailing_prose_with_braces(self):
        """Verify depth counting instead of first-to-last brace."""
        text = 'Result: {"a": {"b": [1, 2]}} and then {not json} at the end'
        assert extract_json(text) == {"a": {"b": [1, 2]}}

    def test_brackets_inside_strings(self):
        text = 'Output: {"text": "a } tricky ] { string", "n": 1} done'
        assert extract_json(text) == {"text": "a } tricky ] { string", "n": 1}

    def test_escaped_quotes_inside_strings(self):
        text = 'Output: {"quote": "she said \\"}\\"", "ok": true} end'
        assert extract_json(text) == {"quote": 'she said "}"', "ok": True}

    def test_skips_invalid_span(self):
        text = 'Note {this is not json} but {"ok": true}'
        assert extract_json(text) == {"ok": True}

    def test_array_in_prose(self):
        assert extract_json("The ids are [3, 5, 8].") == [3, 5, 8]

    def test_nested_in_prose(self):
        text = "Here you go:\n" + json.dumps(NESTED) + "\nHope this helps {:"
        assert extract_json(text) == NESTED


class TestFailures:
    """Test the structured failure contract."""

    def test_no_json(self):
        with pytest.raises(JsonExtractionError, match="Failed to parse model response as JSON"):
            extract_json("no json here")

    @pytest.mark.parametrize("text", ["", "   \n", None])
    def test_empty_input(self, text):
        with pytest.raises(JsonExtractionError, match="empty response"):
            extract_json(text)

    def test_unbalanced(self):
        with pytest.raises(JsonExtractionError):
            extract_json('{"a": [1, 2}')

    def test_custom_source(self):
        with pytest.raises(JsonExtractionError, match="Failed to parse OpenAI response as JSON"):
            extract_json("nope", source="OpenAI")

    def test_error_carries_text_and_truncated_excerpt(self):
        text = "x" * 500
        with pytest.raises(JsonExtractionError) as exc_info:
            extract_json(text)
        assert exc_info.value.text == text
        assert exc_info.value.source == "model"
        message = str(exc_info.value)
        assert "x" * 120 in message
        assert "x" * 121 not in message

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            extract_json("plain text")

    @pytest.mark.parametrize("text", [
        "[" * 20000,
        "x " + "[" * 100000 + "]" * 100000,
    ])
    def test_deep_nesting_is_an_extraction_error(self, text):
        with pytest.raises(JsonExtractionError):
            extract_json(text)

    def test_value_after_deep_nesting_is_found(self):
        text = "[" * 20000 + ' then {"ok": true}'
        assert extract_json(text) == {"ok": True}


class TestScanCost:
    """Test that failed scans stay linear in the response length."""

    @pytest.mark.parametrize("text", [
        "x " + "{" * 15000,
        "x " + "[" * 20000,
    ])
    def test_unclosed_brackets_fail_fast(self, text):
        started = time.monotonic()
        with pytest.raises(JsonExtractionError):
            extract_json(text)
        assert time.monotonic() - started < 2.0

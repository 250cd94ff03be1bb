"""Tests for text utilities."""

import pytest
from subtitle_translator.text_utils import (
    clean_response_line,
    clean_translated_text,
    strip_list_marker,
    truncate_text,
)


class TestCleanTranslatedText:

    def test_remove_markdown(self):
        assert clean_translated_text("**bold**") == "bold"
        assert clean_translated_text("__under__") == "under"

    def test_remove_wrapping_quotes(self):
        assert clean_translated_text('"Hello"') == "Hello"
        assert clean_translated_text("「こんにちは」") == "こんにちは"
        assert clean_translated_text('He said "hi"') == 'He said "hi"'

    def test_preserve_chinese_punctuation(self):
        text = "你好，世界！这是测试。"
        result = clean_translated_text(text)
        assert "，" in result
        assert "！" in result
        assert "。" in result

    def test_keeps_line_breaks(self):
        assert clean_translated_text("  one \n\n two  ") == "one\ntwo"

    def test_empty_input(self):
        assert clean_translated_text("") == ""
        assert clean_translated_text(None) == ""


class TestResponseLines:

    def test_strip_list_marker(self):
        assert strip_list_marker("1. Hello") == "Hello"
        assert strip_list_marker("2) Hello") == "Hello"
        assert strip_list_marker("- Hello") == "Hello"
        assert strip_list_marker("Hello 1. world") == "Hello 1. world"

    def test_clean_response_line(self):
        assert clean_response_line('  3. "Xin chào"  ') == "Xin chào"


class TestTruncateText:

    def test_short_text_unchanged(self):
        assert truncate_text("abc", 10) == "abc"

    def test_truncated(self):
        assert truncate_text("abcdefghij", 6) == "abc..."

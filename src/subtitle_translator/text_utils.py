"""Text processing utilities."""

from __future__ import annotations

import re


# Leading list markers such as "1.", "2)", "3:", "-", "*", "•"
_LIST_MARKER = re.compile(r'^\s*(\d+[\.:\)]\s*|[-*•]\s+)')

# Quote pairs models like to wrap single translations in
_QUOTE_PAIRS = (('"', '"'), ("'", "'"), ('“', '”'), ('「', '」'))


def strip_list_marker(line: str) -> str:
    """Remove a leading enumeration marker from one response line."""
    return _LIST_MARKER.sub('', line, count=1)


def strip_wrapping_quotes(text: str) -> str:
    """Remove one pair of quotes enclosing the whole text."""
    for left, right in _QUOTE_PAIRS:
        if len(text) >= 2 and text.startswith(left) and text.endswith(right):
            return text[len(left):-len(right)].strip()
    return text


def clean_translated_text(text: str) -> str:
    """
    Clean a translated subtitle returned by the model.

    Only formatting artifacts are removed; punctuation and line breaks
    inside the subtitle are kept.

    Args:
        text: Raw translated text

    Returns:
        Cleaned text
    """
    if not text or not isinstance(text, str):
        return ""

    text = text.strip()

    # 1. 移除 markdown 粗体标记
    text = re.sub(r'\*\*|__', '', text)

    # 2. 移除包裹整句的引号
    text = strip_wrapping_quotes(text)

    # 3. 每行去掉首尾空白
    lines = [line.strip() for line in text.split('\n')]
    return "\n".join(line for line in lines if line)


def clean_response_line(line: str) -> str:
    """Clean one line of a plain-text (non JSON) batch reply."""
    return clean_translated_text(strip_list_marker(line.strip()))


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to append if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix

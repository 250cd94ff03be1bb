"""Tests for subtitle item models."""

import pytest
from subtitle_translator.models import (
    FailedBatchEntry,
    ItemStatus,
    SubtitleCue,
    SubtitleItem,
    TranslationResult,
    batch_index,
)


class TestBatchIndex:

    def test_first_batch(self):
        assert batch_index(1, 10) == 0
        assert batch_index(10, 10) == 0

    def test_boundaries(self):
        assert batch_index(11, 10) == 1
        assert batch_index(20, 10) == 1
        assert batch_index(21, 10) == 2

    def test_partition_covers_all_ids(self):
        ids = range(1, 48)
        groups = {}
        for item_id in ids:
            groups.setdefault(batch_index(item_id, 10), []).append(item_id)

        assert sorted(groups) == [0, 1, 2, 3, 4]
        assert [i for index in sorted(groups) for i in groups[index]] == list(ids)
        assert all(len(groups[i]) == 10 for i in range(4))
        assert len(groups[4]) == 7

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            batch_index(1, 0)


class TestSubtitleItem:

    def test_defaults(self):
        item = SubtitleItem(1, "00:00:01,000", "00:00:03,500", "Hello")
        assert item.status == ItemStatus.PENDING
        assert item.translated_text == ""
        assert item.error is None

    def test_timecode_property(self):
        item = SubtitleItem(1, "00:00:01,000", "00:00:03,500", "Test")
        assert item.timecode == "00:00:01,000 --> 00:00:03,500"

    def test_is_translated_needs_text(self):
        item = SubtitleItem(1, "00:00:01,000", "00:00:03,500", "Hi", status=ItemStatus.TRANSLATED)
        assert not item.is_translated
        assert item.copy(translated_text="Xin chào").is_translated

    def test_copy(self):
        item = SubtitleItem(1, "00:00:01,000", "00:00:03,500", "Hello")
        copied = item.copy(translated_text="Bonjour", status=ItemStatus.TRANSLATED)

        # Original unchanged
        assert item.translated_text == ""
        assert item.status == ItemStatus.PENDING

        assert copied.translated_text == "Bonjour"
        assert copied.start_time == item.start_time

    def test_cue_conversion(self):
        cue = SubtitleCue(7, "00:00:01,000", "00:00:03,500", "Hello")
        item = SubtitleItem.from_cue(cue, 3)
        assert item.id == 3
        assert item.text == "Hello"

        assert item.to_cue().text == "Hello"
        assert item.to_cue("Xin chào").text == "Xin chào"
        assert item.to_cue().id == 3

    def test_status_values(self):
        assert ItemStatus("error") is ItemStatus.ERROR
        assert ItemStatus.TRANSLATING.value == "translating"


class TestTranslationResult:

    def test_success(self):
        assert TranslationResult("Hola").success
        assert not TranslationResult(error="boom").success


class TestFailedBatchEntry:

    def test_ids_and_errors(self):
        items = (
            SubtitleItem(11, "", "", "a", status=ItemStatus.ERROR, error="x"),
            SubtitleItem(12, "", "", "b", status=ItemStatus.ERROR, error="y"),
        )
        entry = FailedBatchEntry(1, items)
        assert entry.item_ids == (11, 12)
        assert entry.errors == ("x", "y")

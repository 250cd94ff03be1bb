"""Tests for preferences and progress persistence."""

import json

from pathlib import Path

from subtitle_translator.progress import (
    JsonFileStore,
    MemoryStore,
    TranslationProgress,
    delete_progress,
    get_progress_file,
    load_progress,
    save_progress,
)


class TestKeyValueStores:

    def test_memory_store(self):
        store = MemoryStore({"a": 1})
        assert store.get("a") == 1
        assert store.get("b", "x") == "x"
        store.set("b", 2)
        store.delete("a")
        store.delete("missing")
        assert store.get("a") is None
        assert store.get("b") == 2

    def test_json_file_store_persists(self, tmp_path):
        path = tmp_path / "settings" / "prefs.json"
        JsonFileStore(path).set("provider", "gemini")

        assert json.loads(path.read_text(encoding="utf-8")) == {"provider": "gemini"}
        assert JsonFileStore(path).get("provider") == "gemini"

    def test_json_file_store_ignores_garbage(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("not json", encoding="utf-8")
        store = JsonFileStore(path)
        assert store.get("provider") is None

        store.set("provider", "deepseek")
        assert JsonFileStore(path).get("provider") == "deepseek"


class TestTranslationProgress:

    def test_create_and_update(self):
        progress = TranslationProgress.create("movie.srt", "French", 4)
        assert progress.completion_rate == 0
        assert not progress.is_complete

        progress.update({1: "a", 2: "b"})
        assert progress.completion_rate == 0.5

        progress.update({1: "a", 2: "b", 3: "c", 4: "d"})
        assert progress.is_complete

    def test_empty_file_is_complete(self):
        assert TranslationProgress.create("x.srt", "French", 0).completion_rate == 1.0


class TestProgressFile:

    def test_progress_file_name(self):
        assert get_progress_file(Path("/tmp/movie.srt")) == Path("/tmp/movie.srt.progress.json")

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "movie.srt.progress.json"
        progress = TranslationProgress.create("movie.srt", "Japanese", 3)
        progress.update({2: "二", 3: "三"})

        assert save_progress(progress, path)
        loaded = load_progress(path)

        assert loaded.translations == {2: "二", 3: "三"}
        assert loaded.target_language == "Japanese"
        assert "二" in path.read_text(encoding="utf-8")

    def test_load_missing(self, tmp_path):
        assert load_progress(tmp_path / "nope.json") is None

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"input_file": "x"}', encoding="utf-8")
        assert load_progress(path) is None

    def test_delete(self, tmp_path):
        path = tmp_path / "movie.srt.progress.json"
        path.write_text("{}", encoding="utf-8")
        delete_progress(path)
        assert not path.exists()
        delete_progress(path)

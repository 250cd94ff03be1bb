"""Tests for the command-line front end."""

import asyncio

import pytest

from subtitle_translator import cli
from subtitle_translator.catalog import ConnectionCheck, OpenRouterModel
from subtitle_translator.cli import main_async, parse_arguments
from subtitle_translator.estimator import ModelPricing


def _args(tmp_path, *extra):
    return parse_arguments([*extra, "--settings", str(tmp_path / "prefs.json")])


class TestParseArguments:

    def test_defaults(self):
        args = parse_arguments(["movie.srt"])
        assert args.input_path == "movie.srt"
        assert args.output_path is None
        assert args.target_language == "Vietnamese"
        assert args.output_format == "original"
        assert args.batch_size == 10
        assert args.max_batch_size == 30
        assert not args.bilingual

    def test_options(self):
        args = parse_arguments([
            "in.vtt", "out.srt", "-l", "French", "--provider", "gemini",
            "--format", "srt", "--bilingual", "--batch-size", "5",
        ])
        assert args.output_path == "out.srt"
        assert args.provider == "gemini"
        assert args.output_format == "srt"
        assert args.bilingual
        assert args.batch_size == 5


class TestMainAsync:

    def test_missing_input(self, tmp_path):
        args = _args(tmp_path, str(tmp_path / "missing.srt"))
        assert asyncio.run(main_async(args)) == 1

    def test_invalid_batch_size(self, tmp_path, make_srt):
        path = tmp_path / "movie.srt"
        path.write_text(make_srt(3), encoding="utf-8")
        args = _args(tmp_path, str(path), "--batch-size", "0")
        assert asyncio.run(main_async(args)) == 1

    def test_estimate_only(self, tmp_path, make_srt, capsys):
        path = tmp_path / "movie.srt"
        path.write_text(make_srt(30), encoding="utf-8")
        args = _args(tmp_path, str(path), "--provider", "deepseek", "--estimate")

        assert asyncio.run(main_async(args)) == 0

        out = capsys.readouterr().out
        assert "Entries:        30" in out
        assert "deepseek-chat" in out
        assert not (tmp_path / "movie_vietnamese.srt").exists()

    def test_missing_api_key(self, tmp_path, make_srt, monkeypatch):
        monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
        path = tmp_path / "movie.srt"
        path.write_text(make_srt(3), encoding="utf-8")
        args = _args(tmp_path, str(path), "--provider", "deepseek")
        assert asyncio.run(main_async(args)) == 1

    def test_estimate_with_live_pricing(self, tmp_path, make_srt, capsys, monkeypatch):
        async def live(provider):
            return ModelPricing(1.0, 2.0)

        monkeypatch.setattr(cli, "fetch_live_pricing", live)
        path = tmp_path / "movie.srt"
        path.write_text(make_srt(30), encoding="utf-8")
        args = _args(
            tmp_path, str(path), "--provider", "openrouter", "--api-key", "k",
            "--model", "some/model", "--estimate",
        )

        assert asyncio.run(main_async(args)) == 0
        assert "OpenRouter live pricing" in capsys.readouterr().out


class TestCatalogCommands:

    def test_requires_input_without_catalog_flags(self):
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_list_models(self, tmp_path, capsys, monkeypatch):
        class StubCatalog:
            async def free_models(self):
                return [OpenRouterModel("free/model", "Free Model", 4096)]

            async def paid_models(self):
                return [OpenRouterModel("paid/model", "Paid Model", 4096, "0.000001", "0.000002")]

        monkeypatch.setattr(cli.ModelCatalog, "from_config", classmethod(lambda cls, config: StubCatalog()))
        args = _args(tmp_path, "--list-models", "--provider", "openrouter", "--api-key", "k")

        assert asyncio.run(main_async(args)) == 0

        out = capsys.readouterr().out
        assert "Free models (1):" in out
        assert "free/model" in out
        assert "paid/model" in out

    def test_list_models_other_provider(self, tmp_path):
        args = _args(tmp_path, "--list-models", "--provider", "deepseek", "--api-key", "k")
        assert asyncio.run(main_async(args)) == 1

    def test_check_key(self, tmp_path, capsys, monkeypatch):
        async def ok(provider):
            return ConnectionCheck(True, credits=4.25)

        monkeypatch.setattr(cli, "check_connection", ok)
        args = _args(tmp_path, "--check-key", "--provider", "openrouter", "--api-key", "k")

        assert asyncio.run(main_async(args)) == 0
        assert "Remaining credits: 4.25" in capsys.readouterr().out

    def test_check_key_failure(self, tmp_path, monkeypatch):
        async def bad(provider):
            return ConnectionCheck(False, "Invalid API key")

        monkeypatch.setattr(cli, "check_connection", bad)
        args = _args(tmp_path, "--check-key", "--provider", "openrouter", "--api-key", "k")
        assert asyncio.run(main_async(args)) == 1

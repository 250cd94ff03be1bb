"""Tests for the OpenRouter model catalog and key check."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from subtitle_translator.catalog import (
    FALLBACK_MODELS,
    ModelCatalog,
    OpenRouterModel,
    check_connection,
    fetch_live_pricing,
)
from subtitle_translator.config import ProviderConfig


def _raw(model_id, name, prompt="0", completion="0", inputs=("text",), outputs=("text",)):
    # 额外字段以 SDK 对象属性的形式出现，嵌套部分是 dict
    return SimpleNamespace(
        id=model_id,
        name=name,
        context_length=8192,
        pricing={"prompt": prompt, "completion": completion},
        architecture={"input_modalities": list(inputs), "output_modalities": list(outputs)},
    )


RAW_MODELS = [
    _raw("openai/gpt-4o", "GPT-4o", "0.0000025", "0.00001"),
    _raw("meta-llama/llama-3.1-8b-instruct:free", "Llama 3.1 8B (Free)"),
    _raw("acme/image-gen", "Image Gen", outputs=("image",)),
    _raw("anthropic/claude-3-haiku", "Claude 3 Haiku", "0.00000025", "0.00000125"),
]


class FakeModels:

    def __init__(self, data=None, error=None):
        self.data = data if data is not None else []
        self.error = error
        self.calls = 0

    async def list(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class FakeClient:

    def __init__(self, models=None, credits=None, error=None):
        self.models = models or FakeModels()
        self.credits = credits
        self.error = error
        self.paths = []

    async def get(self, path, cast_to=None):
        self.paths.append(path)
        if self.error is not None:
            raise self.error
        return self.credits


def _openrouter(**kwargs):
    return ProviderConfig.from_env("openrouter", api_key="or-key", **kwargs)


def _status_error(cls, status):
    request = httpx.Request("GET", "https://openrouter.ai/api/v1/credits")
    return cls("failed", response=httpx.Response(status, request=request), body=None)


class TestOpenRouterModel:

    def test_pricing_per_million(self):
        model = OpenRouterModel("openai/gpt-4o", "GPT-4o", prompt_price="0.0000025", completion_price="0.00001")
        assert model.pricing.input_price == pytest.approx(2.5)
        assert model.pricing.output_price == pytest.approx(10.0)
        assert not model.is_free

    def test_free(self):
        assert OpenRouterModel("x", "X").is_free


class TestModelCatalog:

    def test_text_models_free_first(self):
        catalog = ModelCatalog(FakeClient(FakeModels(RAW_MODELS)))
        models = asyncio.run(catalog.models())

        assert [m.id for m in models] == [
            "meta-llama/llama-3.1-8b-instruct:free",
            "anthropic/claude-3-haiku",
            "openai/gpt-4o",
        ]
        assert catalog.fetched

    def test_free_and_paid(self):
        catalog = ModelCatalog(FakeClient(FakeModels(RAW_MODELS)))
        free = asyncio.run(catalog.free_models())
        paid = asyncio.run(catalog.paid_models())

        assert [m.id for m in free] == ["meta-llama/llama-3.1-8b-instruct:free"]
        assert [m.id for m in paid] == ["anthropic/claude-3-haiku", "openai/gpt-4o"]

    def test_cached(self):
        models = FakeModels(RAW_MODELS)
        catalog = ModelCatalog(FakeClient(models))

        asyncio.run(catalog.models())
        asyncio.run(catalog.models())
        assert models.calls == 1

        asyncio.run(catalog.models(refresh=True))
        assert models.calls == 2

    def test_fallback_on_error(self):
        error = openai.APIConnectionError(request=httpx.Request("GET", "https://openrouter.ai/api/v1/models"))
        catalog = ModelCatalog(FakeClient(FakeModels(error=error)))

        models = asyncio.run(catalog.models())

        assert models == list(FALLBACK_MODELS)
        assert not catalog.fetched
        assert asyncio.run(catalog.pricing_for(FALLBACK_MODELS[0].id)) is None

    def test_pricing_for(self):
        catalog = ModelCatalog(FakeClient(FakeModels(RAW_MODELS)))
        pricing = asyncio.run(catalog.pricing_for("openai/gpt-4o"))
        assert (pricing.input_price, pricing.output_price) == (pytest.approx(2.5), pytest.approx(10.0))
        assert asyncio.run(catalog.pricing_for("unknown/model")) is None


class TestFetchLivePricing:

    def test_openrouter(self):
        catalog = ModelCatalog(FakeClient(FakeModels(RAW_MODELS)))
        pricing = asyncio.run(fetch_live_pricing(_openrouter(model="openai/gpt-4o"), catalog))
        assert (pricing.input_price, pricing.output_price) == (pytest.approx(2.5), pytest.approx(10.0))

    def test_other_provider(self):
        models = FakeModels(RAW_MODELS)
        config = ProviderConfig.from_env("deepseek", api_key="k")
        assert asyncio.run(fetch_live_pricing(config, ModelCatalog(FakeClient(models)))) is None
        assert models.calls == 0


class TestCheckConnection:

    def test_credits(self):
        client = FakeClient(credits={"data": {"total_credits": 10, "total_usage": 2.5}})
        result = asyncio.run(check_connection(_openrouter(), client))

        assert result.success
        assert result.credits == 7.5
        assert not result.low_credits
        assert client.paths == ["/credits"]

    def test_low_credits(self):
        client = FakeClient(credits={"data": {"total_credits": 1, "total_usage": 3}})
        result = asyncio.run(check_connection(_openrouter(), client))
        assert result.success
        assert result.low_credits

    def test_invalid_key(self):
        client = FakeClient(error=_status_error(openai.AuthenticationError, 401))
        result = asyncio.run(check_connection(_openrouter(), client))
        assert not result.success
        assert result.error == "Invalid API key"

    def test_access_denied(self):
        client = FakeClient(error=_status_error(openai.PermissionDeniedError, 403))
        result = asyncio.run(check_connection(_openrouter(), client))
        assert result.error == "API key access denied"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        result = asyncio.run(check_connection(ProviderConfig.from_env("openrouter"), FakeClient()))
        assert result.error == "API key not provided"

"""OpenRouter model catalog and API key check."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from openai import AsyncOpenAI

from .config import ProviderConfig
from .estimator import ModelPricing, parse_openrouter_pricing
from .llm_client import APIErrorType, classify_error, create_client

logger = logging.getLogger(__name__)

OPENROUTER = "openrouter"

# 模型列表缓存 5 分钟
CACHE_TTL = 300.0


@dataclass(frozen=True)
class OpenRouterModel:
    """One text-capable model offered by OpenRouter."""
    id: str
    name: str
    context_length: int = 0
    prompt_price: str = "0"
    completion_price: str = "0"

    @property
    def pricing(self) -> Optional[ModelPricing]:
        return parse_openrouter_pricing({"prompt": self.prompt_price, "completion": self.completion_price})

    @property
    def is_free(self) -> bool:
        pricing = self.pricing
        return pricing is not None and pricing.input_price == 0 and pricing.output_price == 0


# Shown when the catalog cannot be fetched
FALLBACK_MODELS = (
    OpenRouterModel("microsoft/wizardlm-2-8x22b", "WizardLM-2 8x22B", 65536),
    OpenRouterModel("meta-llama/llama-3.1-8b-instruct:free", "Llama 3.1 8B (Free)", 131072),
)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    # SDK 对象的额外字段是属性，嵌套字段可能仍是 dict
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _is_text_model(raw: Any) -> bool:
    architecture = _get(raw, "architecture")
    if architecture is None:
        return True
    inputs = _get(architecture, "input_modalities") or ["text"]
    outputs = _get(architecture, "output_modalities") or ["text"]
    return "text" in inputs and "text" in outputs


def _to_model(raw: Any) -> OpenRouterModel:
    pricing = _get(raw, "pricing") or {}
    model_id = _get(raw, "id")
    return OpenRouterModel(
        id=model_id,
        name=_get(raw, "name") or model_id,
        context_length=int(_get(raw, "context_length") or 0),
        prompt_price=str(_get(pricing, "prompt", "0")),
        completion_price=str(_get(pricing, "completion", "0")),
    )


class ModelCatalog:
    """Cached list of OpenRouter models, free ones first."""

    def __init__(self, client: AsyncOpenAI, ttl: float = CACHE_TTL):
        self.client = client
        self.ttl = ttl
        self._models: Optional[List[OpenRouterModel]] = None
        self._fetched_at = 0.0

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ModelCatalog":
        return cls(create_client(config))

    @property
    def fetched(self) -> bool:
        """True once a live catalog has been loaded."""
        return self._models is not None

    async def models(self, refresh: bool = False) -> List[OpenRouterModel]:
        """
        All text-in/text-out models.

        Returns the built-in fallback list when the request fails; the
        failure is logged and not cached.
        """
        if (
            not refresh
            and self._models is not None
            and time.monotonic() - self._fetched_at < self.ttl
        ):
            return list(self._models)

        try:
            page = await self.client.models.list()
        except Exception as e:
            error_type, _ = classify_error(e)
            logger.warning(f"Failed to fetch OpenRouter models ({error_type.value}): {e}. Using fallback list")
            return list(FALLBACK_MODELS)

        models = [_to_model(raw) for raw in page.data if _is_text_model(raw)]
        models.sort(key=lambda m: (not m.is_free, m.name.lower()))

        self._models = models
        self._fetched_at = time.monotonic()

        free = sum(1 for m in models if m.is_free)
        logger.info(f"Fetched {len(models)} text models from OpenRouter ({free} free, {len(models) - free} paid)")
        return list(models)

    async def free_models(self) -> List[OpenRouterModel]:
        return [m for m in await self.models() if m.is_free]

    async def paid_models(self) -> List[OpenRouterModel]:
        return [m for m in await self.models() if not m.is_free]

    async def find(self, model_id: str) -> Optional[OpenRouterModel]:
        return next((m for m in await self.models() if m.id == model_id), None)

    async def pricing_for(self, model_id: str) -> Optional[ModelPricing]:
        """Live per-1M pricing of a model; None without a live catalog entry."""
        model = await self.find(model_id)
        if model is None or not self.fetched:
            return None
        return model.pricing


async def fetch_live_pricing(
    config: ProviderConfig,
    catalog: Optional[ModelCatalog] = None,
) -> Optional[ModelPricing]:
    """OpenRouter pricing for the configured model, None for other providers."""
    if config.provider != OPENROUTER or not config.api_key:
        return None
    catalog = catalog or ModelCatalog.from_config(config)
    pricing = await catalog.pricing_for(config.model)
    if pricing is None:
        logger.info(f"No live pricing for {config.model}, using built-in table")
    return pricing


@dataclass
class ConnectionCheck:
    """Outcome of an API key check."""
    success: bool
    error: Optional[str] = None
    credits: Optional[float] = None

    @property
    def low_credits(self) -> bool:
        return self.credits is not None and self.credits < 0


def _connection_error(error: Exception) -> str:
    error_type, _ = classify_error(error)
    if error_type == APIErrorType.AUTH:
        return "Invalid API key"
    if getattr(error, "status_code", None) == 403:
        return "API key access denied"
    if error_type == APIErrorType.RATE_LIMIT:
        return "Rate limit exceeded"
    return str(error) or "Connection failed"


async def check_connection(
    config: ProviderConfig,
    client: Optional[AsyncOpenAI] = None,
) -> ConnectionCheck:
    """
    Validate an OpenRouter key through the credits endpoint.

    Returns:
        ConnectionCheck with the remaining credits on success
    """
    if not config.api_key:
        return ConnectionCheck(False, "API key not provided")

    client = client or create_client(config)
    try:
        data = await client.get("/credits", cast_to=object)
    except Exception as e:
        logger.debug(f"Credits request failed: {e}")
        return ConnectionCheck(False, _connection_error(e))

    usage = _get(data, "data") or {}
    total = float(_get(usage, "total_credits") or 0)
    used = float(_get(usage, "total_usage") or 0)
    return ConnectionCheck(True, credits=total - used)

"""Rough token and cost estimates for a translation run."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """USD per 1M tokens."""
    input_price: float
    output_price: float


@dataclass
class TokenEstimate:
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0
    pricing_source: str = "none"  # live / fallback / none

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# Fallback pricing, used when no live pricing is passed in
MODEL_PRICING: Dict[str, ModelPricing] = {
    "gemini-2.0-flash": ModelPricing(0.1, 0.4),
    "gemini-1.5-pro": ModelPricing(1.25, 5.0),
    "gemini-1.5-flash": ModelPricing(0.075, 0.3),
    "deepseek-chat": ModelPricing(0.27, 1.1),
    "openai/gpt-4o": ModelPricing(2.5, 10.0),
    "openai/gpt-4o-mini": ModelPricing(0.15, 0.6),
    "anthropic/claude-3.5-sonnet": ModelPricing(3.0, 15.0),
    "anthropic/claude-3-haiku": ModelPricing(0.25, 1.25),
    "meta-llama/llama-3.1-8b-instruct": ModelPricing(0.055, 0.055),
    "meta-llama/llama-3.1-70b-instruct": ModelPricing(0.59, 0.79),
    "microsoft/wizardlm-2-8x22b": ModelPricing(0.63, 0.63),
}

# Characters per token
CHARS_PER_TOKEN: Dict[str, float] = {
    "English": 4,
    "Vietnamese": 3.5,
    "Chinese": 2,
    "Japanese": 2.5,
    "Korean": 3,
    "Spanish": 4.2,
    "French": 4.5,
    "German": 5,
    "Russian": 3.8,
    "Arabic": 3.5,
    "Thai": 3,
}

# Translated length relative to the source
OUTPUT_MULTIPLIERS: Dict[str, float] = {
    "English": 1.0,
    "Vietnamese": 1.2,
    "Chinese": 0.8,
    "Japanese": 1.1,
    "Korean": 1.1,
    "Spanish": 1.3,
    "French": 1.4,
    "German": 1.5,
    "Russian": 1.2,
    "Arabic": 1.1,
    "Thai": 1.0,
}


def estimate_token_count(text: str, language: str = "English") -> int:
    """Approximate tokens from character count; 4 chars per token by default."""
    if not text or not text.strip():
        return 0
    ratio = CHARS_PER_TOKEN.get(language, 4)
    return math.ceil(len(text) / ratio)


def estimate_subtitle_tokens(
    texts: Iterable[str],
    target_language: str,
    prompt: str,
    context_per_batch: int = 3,
    batch_size: int = 10,
) -> TokenEstimate:
    """
    Estimate request and response size for translating ``texts``.

    Input covers the prompt, the source texts, the context block of each
    batch (source and translation) and the language instruction.
    """
    texts = list(texts)
    if not texts:
        return TokenEstimate()

    prompt_tokens = estimate_token_count(prompt)
    source_tokens = sum(estimate_token_count(text) for text in texts)

    avg_tokens = source_tokens / len(texts)
    context_tokens = math.ceil((len(texts) // batch_size) * context_per_batch * avg_tokens * 2)

    instruction_tokens = estimate_token_count(
        f"Translate to {target_language}. Maintain formatting."
    )

    multiplier = OUTPUT_MULTIPLIERS.get(target_language, 1.2)
    return TokenEstimate(
        input_tokens=prompt_tokens + source_tokens + context_tokens + instruction_tokens,
        output_tokens=math.ceil(source_tokens * multiplier),
    )


def parse_openrouter_pricing(pricing: Dict[str, str]) -> Optional[ModelPricing]:
    """
    Convert OpenRouter's per-token price strings to per-1M pricing.

    Returns:
        ModelPricing, or None when the values cannot be parsed
    """
    prompt = str(pricing.get("prompt", ""))
    completion = str(pricing.get("completion", ""))
    if prompt == "Free" or completion == "Free":
        return ModelPricing(0.0, 0.0)

    try:
        input_per_token = float(prompt.replace("$", ""))
        output_per_token = float(completion.replace("$", ""))
    except ValueError:
        return None

    return ModelPricing(input_per_token * 1_000_000, output_per_token * 1_000_000)


def calculate_estimated_cost(
    estimate: TokenEstimate,
    model: str,
    custom_pricing: Optional[ModelPricing] = None,
) -> float:
    """USD cost of ``estimate``; 0 when the model has no known pricing."""
    pricing = custom_pricing or MODEL_PRICING.get(model)
    if pricing is None:
        logger.debug(f"No pricing data available for model: {model}")
        return 0.0

    return (
        estimate.input_tokens / 1_000_000 * pricing.input_price
        + estimate.output_tokens / 1_000_000 * pricing.output_price
    )


def format_token_count(count: int) -> str:
    if count < 1000:
        return str(count)
    if count < 1_000_000:
        return f"{count / 1000:.1f}K"
    return f"{count / 1_000_000:.2f}M"


def format_cost(cost: float) -> str:
    if cost == 0:
        return "$0.00"
    if cost < 0.000001:
        return f"${cost:.2e}"
    if cost < 0.001:
        return f"${cost:.6f}"
    if cost < 0.01:
        return f"${cost:.4f}"
    if cost < 1:
        return f"${cost:.3f}"
    return f"${cost:.2f}"


def get_translation_estimate(
    texts: Iterable[str],
    target_language: str,
    prompt: str,
    model: str,
    custom_pricing: Optional[ModelPricing] = None,
    context_per_batch: int = 3,
    batch_size: int = 10,
) -> TokenEstimate:
    """Token estimate plus cost and where the pricing came from."""
    estimate = estimate_subtitle_tokens(texts, target_language, prompt, context_per_batch, batch_size)
    estimate.estimated_cost = calculate_estimated_cost(estimate, model, custom_pricing)

    if custom_pricing is not None:
        estimate.pricing_source = "live"
    elif model in MODEL_PRICING:
        estimate.pricing_source = "fallback"
    else:
        estimate.pricing_source = "none"
    return estimate

"""Tests for token and cost estimation."""

import pytest

from subtitle_translator.estimator import (
    ModelPricing,
    TokenEstimate,
    calculate_estimated_cost,
    estimate_subtitle_tokens,
    estimate_token_count,
    format_cost,
    format_token_count,
    get_translation_estimate,
    parse_openrouter_pricing,
)


class TestEstimateTokenCount:

    def test_english_ratio(self):
        assert estimate_token_count("abcdefgh") == 2
        assert estimate_token_count("abcdefghi") == 3

    def test_language_ratio(self):
        assert estimate_token_count("abcd", "Chinese") == 2

    def test_empty(self):
        assert estimate_token_count("") == 0
        assert estimate_token_count("   ") == 0


class TestEstimateSubtitleTokens:

    def test_empty(self):
        estimate = estimate_subtitle_tokens([], "French", "prompt")
        assert estimate.total_tokens == 0

    def test_counts(self):
        texts = ["abcdefgh"] * 20  # 2 tokens each
        estimate = estimate_subtitle_tokens(texts, "German", "abcd")

        # prompt 1 + source 40 + context 2 batches * 3 * 2 * 2 + instruction
        instruction = estimate_token_count("Translate to German. Maintain formatting.")
        assert estimate.input_tokens == 1 + 40 + 24 + instruction
        assert estimate.output_tokens == 60
        assert estimate.total_tokens == estimate.input_tokens + 60


class TestCost:

    def test_known_model(self):
        estimate = TokenEstimate(input_tokens=1_000_000, output_tokens=1_000_000)
        assert calculate_estimated_cost(estimate, "openai/gpt-4o-mini") == pytest.approx(0.75)

    def test_unknown_model(self):
        assert calculate_estimated_cost(TokenEstimate(10, 10), "nope") == 0.0

    def test_custom_pricing(self):
        estimate = TokenEstimate(input_tokens=2_000_000, output_tokens=0)
        assert calculate_estimated_cost(estimate, "nope", ModelPricing(1.0, 2.0)) == pytest.approx(2.0)

    def test_parse_openrouter_pricing(self):
        pricing = parse_openrouter_pricing({"prompt": "0.000001", "completion": "0.000002"})
        assert pricing.input_price == pytest.approx(1.0)
        assert pricing.output_price == pytest.approx(2.0)
        assert parse_openrouter_pricing({"prompt": "Free", "completion": "Free"}) == ModelPricing(0.0, 0.0)
        assert parse_openrouter_pricing({"prompt": "n/a", "completion": "1"}) is None

    def test_pricing_source(self):
        texts = ["Hello there"] * 5
        assert get_translation_estimate(texts, "French", "p", "deepseek-chat").pricing_source == "fallback"
        assert get_translation_estimate(texts, "French", "p", "unknown").pricing_source == "none"
        live = get_translation_estimate(texts, "French", "p", "unknown", ModelPricing(1, 1))
        assert live.pricing_source == "live"
        assert live.estimated_cost > 0


class TestFormatting:

    def test_format_token_count(self):
        assert format_token_count(999) == "999"
        assert format_token_count(1500) == "1.5K"
        assert format_token_count(2_500_000) == "2.50M"

    def test_format_cost(self):
        assert format_cost(0) == "$0.00"
        assert format_cost(0.0005) == "$0.000500"
        assert format_cost(0.005) == "$0.0050"
        assert format_cost(0.5) == "$0.500"
        assert format_cost(12.5) == "$12.50"

"""Translation provider adapters.

A provider turns a list of subtitle texts into a list of
``TranslationResult`` objects aligned by position with the input. It raises
only when the whole call fails (transport, auth, unusable reply); problems
with individual texts are reported through ``TranslationResult.error``.
"""

from __future__ import annotations

import json
import re
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from openai import AsyncOpenAI

from .config import DEFAULT_PROMPT, ProviderConfig
from .llm_client import call_llm_async, create_client
from .models import TranslationResult
from .text_utils import clean_response_line, clean_translated_text, truncate_text

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a professional subtitle translator. "
    "Translate every subtitle you are given and answer with JSON only."
)


class TranslationProvider(ABC):
    """Backend that translates one batch of subtitle texts."""

    name: str = "provider"

    @abstractmethod
    async def translate_batch(
        self,
        texts: Sequence[str],
        target_language: str,
        prompt: str,
        context: Optional[str] = None,
    ) -> List[TranslationResult]:
        """
        Translate ``texts`` into ``target_language``.

        Args:
            texts: Source subtitle texts, in display order
            target_language: Human readable language name, e.g. "Vietnamese"
            prompt: User instruction prompt
            context: Previously accepted translations, None when there are none

        Returns:
            One TranslationResult per input text, same order
        """

    async def suggest_translations(
        self,
        text: str,
        current_translation: str,
        target_language: str,
        count: int = 3,
    ) -> List[str]:
        """
        Alternative translations of one text, to help a manual correction.

        Backends without a dedicated prompt translate the text once more.
        """
        results = await self.translate_batch([text], target_language, DEFAULT_PROMPT)
        return [r.translated_text for r in results if r.success and r.translated_text][:count]


def render_instruction(prompt: str, target_language: str) -> str:
    """Fill the ``{language}`` placeholder of an instruction prompt."""
    instruction = (prompt or DEFAULT_PROMPT).strip()
    return instruction.replace("{language}", target_language)


def build_batch_prompt(
    texts: Sequence[str],
    target_language: str,
    prompt: str,
    context: Optional[str] = None,
) -> tuple[str, str]:
    """Build system and user prompts for one batch."""

    context_section = f"\n## Context:\n{context}\n" if context else ""

    numbered = "\n".join(
        f"{i}. {json.dumps(text, ensure_ascii=False)}"
        for i, text in enumerate(texts, 1)
    )

    user_prompt = f"""## Task:
Translate the following subtitles to {target_language}.

## Instructions:
{render_instruction(prompt, target_language)}
{context_section}
## Subtitles ({len(texts)}):
{numbered}

## Output:
Respond in JSON: {{"translations": ["translation1", "translation2", ...]}}
Return exactly {len(texts)} translations in the same order.

Response (JSON only):"""

    return SYSTEM_PROMPT, user_prompt


SUGGESTION_STYLES = (
    "Everyday: natural, simple wording that most viewers understand at a glance",
    "Formal: close to the source, precise terms and careful grammar",
    "Creative: free phrasing, idioms or modern expressions that keep the tone and feeling",
)


def build_suggestion_prompt(
    text: str,
    current_translation: str,
    target_language: str,
    count: int = 3,
) -> str:
    """Prompt asking for ``count`` clearly different translations of one line."""
    styles = "\n".join(
        f"{i}. {SUGGESTION_STYLES[(i - 1) % len(SUGGESTION_STYLES)]}"
        for i in range(1, count + 1)
    )
    current = json.dumps(current_translation, ensure_ascii=False) if current_translation else "(none)"

    return f"""## Task:
Give {count} clearly different {target_language} translations of this subtitle line.

## Source:
{json.dumps(text, ensure_ascii=False)}

## Current translation:
{current}

## Styles (one per version):
{styles}

## Output:
Respond in JSON: {{"suggestions": ["version1", "version2", ...]}}
Return exactly {count} suggestions, no numbering, no explanations.

Response (JSON only):"""


def parse_suggestions(content: str, count: int) -> List[str]:
    """Parse a suggestion reply; duplicates and empty entries are dropped."""
    if not content or not content.strip():
        return []

    clean = _strip_code_fence(content)
    values: List[Any] = []

    match = re.search(r'\{[\s\S]*\}', clean)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Suggestion JSON parse failed: {e}")
            data = None
        if isinstance(data, dict) and isinstance(data.get("suggestions"), list):
            values = data["suggestions"]
    else:
        # 非 JSON 回复：每行一个版本
        values = [clean_response_line(line) for line in clean.split('\n') if line.strip()]

    suggestions: List[str] = []
    for value in values:
        if isinstance(value, dict):
            value = value.get("text", value.get("translation"))
        text = clean_translated_text(str(value)) if value is not None else ""
        if text and text not in suggestions:
            suggestions.append(text)
    return suggestions[:count]


def _strip_code_fence(text: str) -> str:
    clean = text.strip()
    clean = re.sub(r'^```(?:json)?\s*', '', clean)
    clean = re.sub(r'\s*```$', '', clean)
    return clean


def _missing(position: int, expected_count: int) -> TranslationResult:
    return TranslationResult(
        error=f"Missing translation {position + 1}/{expected_count} - try with smaller batch"
    )


def _failed_all(reason: str, expected_count: int) -> List[TranslationResult]:
    return [TranslationResult(error=reason) for _ in range(expected_count)]


def _result_from_value(value: Any, position: int, expected_count: int) -> TranslationResult:
    if isinstance(value, dict):
        value = value.get("text", value.get("translation"))
    if value is None:
        return _missing(position, expected_count)

    text = clean_translated_text(str(value))
    if not text:
        return _missing(position, expected_count)
    return TranslationResult(translated_text=text)


def parse_batch_response(content: str, expected_count: int) -> List[TranslationResult]:
    """
    Parse a batch reply into results aligned with the request.

    Accepts ``{"translations": [...]}`` holding strings or ``{"text": ...}``
    objects; falls back to one translation per non-empty line when the reply
    carries no JSON at all.
    """
    if expected_count == 0:
        return []

    if not content or not content.strip():
        return _failed_all("Empty response from model", expected_count)

    clean = _strip_code_fence(content)
    match = re.search(r'\{[\s\S]*\}', clean)

    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.error(f"JSON parse failed: {e}")
            logger.debug(f"Raw response: {truncate_text(content, 200)}")
            return _failed_all("Failed to parse translation response", expected_count)

        translations = data.get("translations") if isinstance(data, dict) else None
        if not isinstance(translations, list):
            logger.warning("'translations' is not a list")
            return _failed_all("Response has no translations list", expected_count)

        if len(translations) != expected_count:
            logger.warning(
                f"Batch mismatch: expected {expected_count} translations, got {len(translations)}"
            )

        return [
            _result_from_value(translations[i] if i < len(translations) else None, i, expected_count)
            for i in range(expected_count)
        ]

    # 非 JSON 回复：按行解析
    lines = [clean_response_line(line) for line in clean.split('\n') if line.strip()]
    return [
        _result_from_value(lines[i] if i < len(lines) else None, i, expected_count)
        for i in range(expected_count)
    ]


class LLMTranslationProvider(TranslationProvider):
    """Provider backed by an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, config: ProviderConfig, client: Optional[AsyncOpenAI] = None):
        self.config = config
        self.name = config.provider
        self.client = client if client is not None else create_client(config)

    async def translate_batch(
        self,
        texts: Sequence[str],
        target_language: str,
        prompt: str,
        context: Optional[str] = None,
    ) -> List[TranslationResult]:
        if not texts:
            return []

        system_prompt, user_prompt = build_batch_prompt(texts, target_language, prompt, context)

        logger.debug(
            f"{self.name} batch translation - model: {self.config.model}, texts: {len(texts)}"
        )

        content = await call_llm_async(
            self.client,
            self.config.model,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            max_retries=self.config.max_retries,
        )

        return parse_batch_response(content, len(texts))

    async def suggest_translations(
        self,
        text: str,
        current_translation: str,
        target_language: str,
        count: int = 3,
    ) -> List[str]:
        content = await call_llm_async(
            self.client,
            self.config.model,
            [
                {"role": "system", "content": "You are a professional subtitle translator. Answer with JSON only."},
                {"role": "user", "content": build_suggestion_prompt(text, current_translation, target_language, count)},
            ],
            # 需要差异更大的版本
            temperature=max(self.config.temperature, 0.7),
            max_tokens=self.config.max_tokens,
            max_retries=self.config.max_retries,
        )
        return parse_suggestions(content, count)


def create_provider(config: ProviderConfig) -> TranslationProvider:
    """Build the provider for a validated config."""
    error = config.validate()
    if error:
        raise ValueError(error)
    return LLMTranslationProvider(config)

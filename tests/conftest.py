"""Shared fixtures: scripted translation providers and item factories."""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import pytest

from subtitle_translator.config import EngineConfig
from subtitle_translator.models import SubtitleItem, TranslationResult
from subtitle_translator.translator import TranslationProvider


@dataclass
class Call:
    texts: List[str]
    target_language: str
    prompt: str
    context: Optional[str]


def translate_all(texts: List[str], target_language: str) -> List[TranslationResult]:
    return [TranslationResult(translated_text=f"[{target_language}] {text}") for text in texts]


class ScriptedProvider(TranslationProvider):
    """Provider whose replies are produced by a plain function.

    ``respond(texts, target_language)`` returns the results or raises.
    ``on_call(call_number, texts)`` is awaited before replying, which lets a
    test act while the call is "in flight".
    """

    name = "scripted"

    def __init__(
        self,
        respond: Callable[[List[str], str], List[TranslationResult]] = translate_all,
        on_call: Optional[Callable[[int, List[str]], Awaitable[None]]] = None,
    ):
        self.respond = respond
        self.on_call = on_call
        self.calls: List[Call] = []

    async def translate_batch(self, texts, target_language, prompt, context=None):
        self.calls.append(Call(list(texts), target_language, prompt, context))
        if self.on_call is not None:
            await self.on_call(len(self.calls), list(texts))
        return self.respond(list(texts), target_language)

    @property
    def batch_sizes(self) -> List[int]:
        return [len(call.texts) for call in self.calls]


def build_items(count: int, start: int = 1) -> List[SubtitleItem]:
    return [
        SubtitleItem(
            id=i,
            start_time=f"00:00:{i % 60:02d},000",
            end_time=f"00:00:{i % 60:02d},900",
            text=f"Line {i}",
        )
        for i in range(start, start + count)
    ]


def build_srt(count: int) -> str:
    blocks = [
        f"{i}\n00:00:{i % 60:02d},000 --> 00:00:{i % 60:02d},900\nLine {i}"
        for i in range(1, count + 1)
    ]
    return "\n\n".join(blocks) + "\n"


@pytest.fixture
def make_items():
    return build_items


@pytest.fixture
def make_srt():
    return build_srt


@pytest.fixture
def make_provider():
    return ScriptedProvider


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def engine_config():
    return EngineConfig(pause_poll_interval=0.01)

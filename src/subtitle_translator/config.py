"""Configuration and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional, TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from .progress import KeyValueStore

# Load environment variables once
load_dotenv()


DEFAULT_TARGET_LANGUAGE = "Vietnamese"

DEFAULT_PROMPT = (
    "Translate the following subtitles into {language}, maintaining their original "
    "meaning, tone, and context. Keep translations concise and suitable for subtitles."
)

DEFAULT_CONTEXT_LABEL = "Context from previous translations:"


@dataclass(frozen=True)
class ProviderPreset:
    base_url: str
    default_model: str
    api_key_env: str


PROVIDER_PRESETS: Dict[str, ProviderPreset] = {
    "openrouter": ProviderPreset(
        base_url="https://openrouter.ai/api/v1",
        default_model="microsoft/wizardlm-2-8x22b",
        api_key_env="OPENROUTER_API_KEY",
    ),
    "gemini": ProviderPreset(
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        default_model="gemini-2.0-flash",
        api_key_env="GEMINI_API_KEY",
    ),
    "deepseek": ProviderPreset(
        base_url="https://api.deepseek.com",
        default_model="deepseek-chat",
        api_key_env="DEEPSEEK_API_KEY",
    ),
}

CUSTOM_PROVIDER = "custom"
CUSTOM_API_KEY_ENV = "SUBTITLE_API_KEY"

# Preference keys written through the key-value persistence port
PREF_PROVIDER = "provider"
PREF_MODEL_PREFIX = "model:"


@dataclass
class EngineConfig:
    """Configuration for the batch translation engine."""

    # Batching
    batch_size: int = 10
    max_batch_size: int = 30
    large_file_threshold: int = 100

    # Context
    context_window: int = 3
    context_label: str = DEFAULT_CONTEXT_LABEL

    # Job control
    pause_poll_interval: float = 0.5

    @classmethod
    def from_args(cls, args) -> "EngineConfig":
        """Create config from argparse namespace."""
        return cls(
            batch_size=getattr(args, 'batch_size', 10),
            max_batch_size=getattr(args, 'max_batch_size', 30),
            context_window=getattr(args, 'context_window', 3),
        )

    def validate(self) -> Optional[str]:
        """
        Validate configuration.

        Returns:
            Error message if invalid, None if valid
        """
        if self.batch_size < 1 or self.batch_size > 100:
            return f"Batch size must be 1-100, got {self.batch_size}"

        if self.max_batch_size < self.batch_size:
            return (
                f"Max batch size ({self.max_batch_size}) must not be smaller "
                f"than batch size ({self.batch_size})"
            )

        if self.large_file_threshold < 0:
            return f"Large file threshold must be >= 0, got {self.large_file_threshold}"

        if self.context_window < 0:
            return f"Context window must be >= 0, got {self.context_window}"

        if self.pause_poll_interval <= 0:
            return f"Pause poll interval must be positive, got {self.pause_poll_interval}"

        return None


@dataclass(frozen=True)
class ProviderConfig:
    """Settings for one translation backend, passed explicitly to the adapter."""

    provider: str
    api_key: Optional[str] = None
    model: str = ""
    base_url: str = ""
    temperature: float = 0.2
    max_tokens: int = 8000
    timeout: float = 60.0
    max_retries: int = 3

    @classmethod
    def from_env(
        cls,
        provider: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ) -> "ProviderConfig":
        """Build a config from presets, filling the API key from the environment."""
        key = provider.lower()
        preset = PROVIDER_PRESETS.get(key)

        if preset is not None:
            env_name = preset.api_key_env
            default_url = preset.base_url
            default_model = preset.default_model
        else:
            env_name = CUSTOM_API_KEY_ENV
            default_url = ""
            default_model = ""

        if not api_key:
            api_key = os.environ.get(env_name)

        return cls(
            provider=key,
            api_key=api_key,
            model=model or default_model,
            base_url=base_url or default_url,
            **kwargs,
        )

    def validate(self) -> Optional[str]:
        """
        Validate configuration.

        Returns:
            Error message if invalid, None if valid
        """
        if self.provider not in PROVIDER_PRESETS and self.provider != CUSTOM_PROVIDER:
            known = ", ".join(sorted([*PROVIDER_PRESETS, CUSTOM_PROVIDER]))
            return f"Unknown provider '{self.provider}' (expected one of: {known})"

        if not self.api_key:
            preset = PROVIDER_PRESETS.get(self.provider)
            env_name = preset.api_key_env if preset else CUSTOM_API_KEY_ENV
            return f"API key is required. Set {env_name} or use --api-key"

        if not self.model:
            return "Model name is required"

        if not self.base_url:
            return "Base URL is required for a custom provider"

        if self.max_retries < 1:
            return f"Max retries must be >= 1, got {self.max_retries}"

        return None

    def save_preferences(self, store: "KeyValueStore") -> None:
        """Remember provider and model. The API key is never persisted."""
        store.set(PREF_PROVIDER, self.provider)
        store.set(PREF_MODEL_PREFIX + self.provider, self.model)

    @classmethod
    def load_preferences(
        cls,
        store: "KeyValueStore",
        default_provider: str = "openrouter",
        **kwargs,
    ) -> "ProviderConfig":
        """Rebuild a config from remembered provider/model plus the environment."""
        provider = store.get(PREF_PROVIDER) or default_provider
        model = kwargs.pop("model", None) or store.get(PREF_MODEL_PREFIX + provider)
        return cls.from_env(provider, model=model, **kwargs)


# Supported subtitle formats, keyed by file extension
SUPPORTED_FORMATS = {
    ".srt": "srt",
    ".vtt": "vtt",
    ".ass": "ass",
    ".ssa": "ass",
}

# Progress file suffix
PROGRESS_SUFFIX = ".progress.json"

# Default preferences file used by the CLI
DEFAULT_SETTINGS_FILENAME = ".subtitle_translator.json"

"""
Subtitle Translator - batch LLM translation for SRT, VTT and ASS subtitles.

Features:
- Sequential batch translation with context from previous translations
- Adaptive batch size with split-and-retry for failing large batches
- Pause, resume and abort of a running job
- Failed batch tracking with single item and whole batch retry
- Manual corrections at any time
- Translated-only or bilingual export in any supported format
- Progress saving and resume support
- Alternative translation suggestions and an OpenRouter model catalog
"""

__version__ = "2.0.0"

from .models import ItemStatus, SubtitleCue, SubtitleItem, TranslationResult, FailedBatchEntry, batch_index
from .parser import parse_subtitle, stringify_subtitle, detect_format, validate_subtitle_file
from .config import EngineConfig, ProviderConfig
from .store import ItemStateStore, InvalidTransitionError
from .ledger import FailureLedger, derive_failed_batches
from .scheduler import BatchScheduler, JobControl, TranslationAborted, choose_batch_size
from .translator import TranslationProvider, LLMTranslationProvider, create_provider
from .export import ExportMode
from .session import TranslationSession, SessionState, SessionError
from .progress import KeyValueStore, MemoryStore, JsonFileStore, TranslationProgress, save_progress, load_progress
from .estimator import get_translation_estimate
from .catalog import ModelCatalog, check_connection

__all__ = [
    # Models
    "ItemStatus",
    "SubtitleCue",
    "SubtitleItem",
    "TranslationResult",
    "FailedBatchEntry",
    "batch_index",
    # Parsing
    "parse_subtitle",
    "stringify_subtitle",
    "detect_format",
    "validate_subtitle_file",
    # Config
    "EngineConfig",
    "ProviderConfig",
    # Engine
    "ItemStateStore",
    "InvalidTransitionError",
    "FailureLedger",
    "derive_failed_batches",
    "BatchScheduler",
    "JobControl",
    "TranslationAborted",
    "choose_batch_size",
    # Providers
    "TranslationProvider",
    "LLMTranslationProvider",
    "create_provider",
    # Session
    "TranslationSession",
    "SessionState",
    "SessionError",
    "ExportMode",
    # Persistence
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "TranslationProgress",
    "save_progress",
    "load_progress",
    # Estimation
    "get_translation_estimate",
    # Model catalog
    "ModelCatalog",
    "check_connection",
]

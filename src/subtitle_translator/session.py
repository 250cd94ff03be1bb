"""Translation session: the single entry point for a loaded subtitle file.

The session owns the item store, the failure ledger and the scheduler, and
publishes a ``SessionState`` to subscribers after every change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple, Union

from .config import DEFAULT_PROMPT, EngineConfig, ProviderConfig
from .export import ExportMode, export_filename, export_items, resolve_format
from .ledger import FailureLedger
from .llm_client import ProviderError
from .models import FailedBatchEntry, ItemStatus, SubtitleItem
from .parser import SubtitleFormatError, detect_format, parse_subtitle, validate_subtitle_file
from .progress import KeyValueStore, MemoryStore, TranslationProgress
from .scheduler import BatchScheduler, JobControl, JobOutcome, TranslationAborted, TranslationJob
from .store import ItemStateStore
from .translator import TranslationProvider, create_provider

logger = logging.getLogger(__name__)

ProviderSpec = Union[ProviderConfig, TranslationProvider]


class SessionError(ValueError):
    """A session operation was refused before any work started."""


@dataclass(frozen=True)
class SessionState:
    """What a front end needs to render the session."""
    items: Tuple[SubtitleItem, ...] = field(default_factory=tuple)
    progress: int = 0
    failed_batches: Tuple[FailedBatchEntry, ...] = field(default_factory=tuple)
    running: bool = False
    paused: bool = False
    job_error: Optional[str] = None


@dataclass(frozen=True)
class _JobSettings:
    target_language: str
    prompt: str
    provider: TranslationProvider


class TranslationSession:
    """Load a subtitle file, translate it in batches, fix failures, export."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        preferences: Optional[KeyValueStore] = None,
        provider_factory: Callable[[ProviderConfig], TranslationProvider] = create_provider,
    ):
        self.config = config or EngineConfig()
        error = self.config.validate()
        if error:
            raise SessionError(error)

        self.preferences = preferences if preferences is not None else MemoryStore()
        self.provider_factory = provider_factory

        self.store = ItemStateStore(on_change=self._emit)
        self.ledger = FailureLedger(self.store, self.config.batch_size)
        self.scheduler = BatchScheduler(self.store, self.config, on_progress=self._set_progress)

        self.filename: Optional[str] = None
        self.source_format: Optional[str] = None
        self.target_language: Optional[str] = None
        self.progress = 0
        self.job_error: Optional[str] = None

        self._job: Optional[TranslationJob] = None
        self._controls: Set[JobControl] = set()
        self._last_settings: Optional[_JobSettings] = None
        self._listeners: List[Callable[[SessionState], None]] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[SubtitleItem]:
        return self.store.snapshot()

    @property
    def running(self) -> bool:
        return self._job is not None

    @property
    def busy(self) -> bool:
        """True while a job or any single item / batch retry is in flight."""
        return self._job is not None or bool(self._controls)

    @property
    def paused(self) -> bool:
        return self._job is not None and self._job.control.paused

    @property
    def failed_batches(self) -> List[FailedBatchEntry]:
        return self.ledger.refresh()

    def state(self) -> SessionState:
        return SessionState(
            items=tuple(self.store.snapshot()),
            progress=self.progress,
            failed_batches=tuple(self.ledger.refresh()),
            running=self.running,
            paused=self.paused,
            job_error=self.job_error,
        )

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """
        Call ``listener`` with the current state now and after every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)
        listener(self.state())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            listener(state)

    def _set_progress(self, percent: int) -> None:
        self.progress = percent
        self._emit()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_text(self, content: str, filename: str) -> int:
        """
        Parse subtitle text and replace the current items.

        Items are numbered 1..N in file order; batch membership derives from
        these ids.

        Returns:
            Number of items loaded
        """
        if self.busy:
            raise SessionError("Cannot load a file while a translation or retry is running")

        fmt = detect_format(filename)
        if fmt is None:
            raise SessionError(f"Unsupported subtitle file: {filename}")

        try:
            cues = parse_subtitle(content, fmt)
        except SubtitleFormatError as e:
            raise SessionError(str(e)) from e

        if not cues:
            raise SessionError("No valid subtitle entries found in file")

        self.filename = filename
        self.source_format = fmt
        self.target_language = None
        self.progress = 0
        self.job_error = None
        self._last_settings = None

        self.store.load([SubtitleItem.from_cue(cue, i) for i, cue in enumerate(cues, 1)])
        logger.info(f"Loaded {len(cues)} subtitle entries from {filename} ({fmt})")
        return len(cues)

    def load_file(self, path: Path) -> int:
        """Validate and load a subtitle file from disk."""
        error = validate_subtitle_file(path)
        if error:
            raise SessionError(error)

        try:
            content = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise SessionError(f"Failed to read file: {e}") from e

        return self.load_text(content, path.name)

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _resolve_provider(self, provider: Optional[ProviderSpec]) -> TranslationProvider:
        if isinstance(provider, TranslationProvider):
            return provider

        if provider is None:
            provider = ProviderConfig.load_preferences(self.preferences)

        error = provider.validate()
        if error:
            raise SessionError(error)

        instance = self.provider_factory(provider)
        provider.save_preferences(self.preferences)
        return instance

    def _new_job(self, settings: _JobSettings) -> TranslationJob:
        job = TranslationJob(
            target_language=settings.target_language,
            prompt=settings.prompt,
            provider=settings.provider,
            control=JobControl(poll_interval=self.config.pause_poll_interval),
        )
        self._controls.add(job.control)
        return job

    async def start_translation(
        self,
        target_language: str,
        prompt: str = DEFAULT_PROMPT,
        provider: Optional[ProviderSpec] = None,
    ) -> JobOutcome:
        """
        Translate every item that is not translated yet.

        Switching to another target language clears all translations first.
        Items left ``translating`` by an aborted run go back into the queue.
        """
        if self.busy:
            raise SessionError("A translation job or retry is already running")
        if len(self.store) == 0:
            raise SessionError("No subtitles loaded")
        if not target_language or not target_language.strip():
            raise SessionError("Target language is required")

        settings = _JobSettings(target_language.strip(), prompt or DEFAULT_PROMPT, self._resolve_provider(provider))

        if self.target_language is not None and self.target_language != settings.target_language:
            logger.info(f"Target language changed to {settings.target_language}, clearing translations")
            self.store.reset_to_pending()
        else:
            stale = [item.id for item in self.store.with_status(ItemStatus.TRANSLATING)]
            if stale:
                logger.info(f"Re-queueing {len(stale)} items left over from an interrupted run")
                self.store.reset_to_pending(stale)

        self.target_language = settings.target_language
        self._last_settings = settings
        self._job = self._new_job(settings)
        self.progress = 0
        self.job_error = None
        self._emit()

        job = self._job
        try:
            outcome = await self.scheduler.run(job)
        except Exception as e:
            logger.exception("Translation job failed")
            self.job_error = str(e) or type(e).__name__
            outcome = JobOutcome(total=len(self.store), failed=self.store.count(ItemStatus.ERROR))
        finally:
            self._controls.discard(job.control)
            self._job = None

        failed = len(self.ledger.refresh())
        if outcome.aborted:
            logger.info("Translation aborted")
        elif failed:
            logger.warning(f"Translation finished with {failed} failed batches")
        else:
            logger.info("Translation finished")
        self._emit()
        return outcome

    def pause(self) -> bool:
        """Pause the running job at its next checkpoint. Returns False if idle."""
        if self._job is None:
            return False
        self._job.control.pause()
        logger.info("Translation paused")
        self._emit()
        return True

    def resume(self) -> bool:
        if self._job is None:
            return False
        self._job.control.resume()
        logger.info("Translation resumed")
        self._emit()
        return True

    def abort(self) -> None:
        """Stop the job and any retries in flight; late results are dropped."""
        for control in list(self._controls):
            control.abort()
        if self._controls:
            logger.info("Abort requested")
        self._emit()

    def _require_settings(self) -> _JobSettings:
        if self.running:
            raise SessionError("Wait for the running translation to finish before retrying")
        if self._last_settings is None:
            raise SessionError("Start a translation before retrying")
        return self._last_settings

    async def retry_single_item(self, item_id: int) -> bool:
        """
        Re-translate one errored item with the last job's settings.

        Returns:
            True if the item is translated afterwards; False when it was not
            in ``error`` (nothing to do), failed again, or was aborted
        """
        if item_id not in self.store:
            raise SessionError(f"Unknown subtitle id: {item_id}")

        item = self.store.get(item_id)
        # 正在重试的条目处于 translating，不会被再次派发
        if item.status != ItemStatus.ERROR:
            logger.debug(f"Item {item_id} is {item.status.value}, not retrying")
            return False

        job = self._new_job(self._require_settings())
        logger.info(f"Retrying item {item_id}")
        try:
            await self.scheduler.run_batch([item], job)
        except TranslationAborted:
            logger.info(f"Retry of item {item_id} aborted")
            return False
        finally:
            self._controls.discard(job.control)
            self.ledger.refresh()
            self._emit()

        return self.store.get(item_id).status == ItemStatus.TRANSLATED

    async def retry_batch(self, index: int) -> bool:
        """
        Re-translate the errored items of one batch.

        Returns:
            True if the batch holds no errored item afterwards
        """
        job = self._new_job(self._require_settings())
        try:
            return await self.ledger.retry_batch(index, self.scheduler, job)
        except TranslationAborted:
            logger.info(f"Retry of batch {index} aborted")
            return False
        finally:
            self._controls.discard(job.control)
            self._emit()

    async def suggest_translations(self, item_id: int, count: int = 3) -> List[str]:
        """
        Ask the last job's provider for alternative translations of one item.

        Nothing is written; the caller applies a pick through
        ``update_item_manually``.
        """
        if item_id not in self.store:
            raise SessionError(f"Unknown subtitle id: {item_id}")
        if count < 1:
            raise SessionError(f"Suggestion count must be >= 1, got {count}")
        if self._last_settings is None:
            raise SessionError("Start a translation before asking for suggestions")

        settings = self._last_settings
        item = self.store.get(item_id)
        logger.info(f"Requesting {count} suggestions for item {item_id}")
        try:
            suggestions = await settings.provider.suggest_translations(
                item.text, item.translated_text, settings.target_language, count
            )
        except ProviderError as e:
            raise SessionError(f"Could not get suggestions: {e}") from e

        if not suggestions:
            raise SessionError("The model returned no suggestions")
        return suggestions[:count]

    def update_item_manually(self, item_id: int, text: str) -> None:
        """Accept a user-written translation. Allowed at any time."""
        if item_id not in self.store:
            raise SessionError(f"Unknown subtitle id: {item_id}")
        self.store.update_manually(item_id, text)

    # ------------------------------------------------------------------
    # Export and progress
    # ------------------------------------------------------------------

    def _require_loaded(self) -> str:
        if self.source_format is None or len(self.store) == 0:
            raise SessionError("No subtitles loaded")
        return self.source_format

    def export_as(self, fmt: str = "original", mode: ExportMode = ExportMode.TRANSLATED) -> str:
        """Serialize the current items; ``"original"`` keeps the loaded format."""
        source_format = self._require_loaded()
        try:
            return export_items(self.store.snapshot(), resolve_format(fmt, source_format), mode)
        except SubtitleFormatError as e:
            raise SessionError(str(e)) from e

    def export_name(self, fmt: str = "original", mode: ExportMode = ExportMode.TRANSLATED) -> str:
        """Default file name for an export of the current session."""
        source_format = self._require_loaded()
        language = self.target_language or "translated"
        return export_filename(self.filename or "subtitles", language, resolve_format(fmt, source_format), mode)

    def progress_record(
        self,
        input_file: str,
        record: Optional[TranslationProgress] = None,
    ) -> TranslationProgress:
        """Capture current translations into a (new or existing) progress record."""
        self._require_loaded()
        if record is None:
            record = TranslationProgress.create(
                input_file, self.target_language or "", len(self.store)
            )
        record.target_language = self.target_language or record.target_language
        record.update({
            item.id: item.translated_text
            for item in self.store.with_status(ItemStatus.TRANSLATED)
        })
        return record

    def restore_progress(self, progress: TranslationProgress) -> int:
        """
        Re-apply saved translations to the loaded items.

        Returns:
            Number of items restored
        """
        self._require_loaded()
        if self.busy:
            raise SessionError("Cannot restore progress while a translation or retry is running")
        if progress.total_items != len(self.store):
            raise SessionError(
                f"Progress file covers {progress.total_items} entries, "
                f"but the file has {len(self.store)}"
            )

        restored = 0
        for item_id, text in sorted(progress.translations.items()):
            if item_id in self.store and text:
                self.store.update_manually(item_id, text)
                restored += 1

        if progress.target_language:
            self.target_language = progress.target_language
        logger.info(f"Restored {restored} translations from progress file")
        return restored

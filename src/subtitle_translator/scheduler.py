"""Batch scheduling for subtitle translation jobs.

A job walks the queue of ``pending`` and ``error`` items in display order,
one batch at a time. Each batch call is awaited before the next one starts,
so there is never more than one request in flight per job and the context
for a batch always comes from batches that already settled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from .config import EngineConfig
from .context import build_context
from .models import ItemStatus, SubtitleItem
from .store import ItemStateStore
from .translator import TranslationProvider

logger = logging.getLogger(__name__)


class TranslationAborted(Exception):
    """The job was stopped by the user. Not a translation failure."""


class JobControl:
    """Pause and abort flags shared by reference with a running job.

    The scheduler polls these flags; a change is seen at the next
    checkpoint or pause poll tick.
    """

    def __init__(self, poll_interval: float = 0.5):
        self.poll_interval = poll_interval
        self._paused = False
        self._aborted = False
        self.abort_reason: Optional[str] = None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def aborted(self) -> bool:
        return self._aborted

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def abort(self, reason: str = "Translation aborted by user") -> None:
        self._aborted = True
        self.abort_reason = reason

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise TranslationAborted(self.abort_reason or "Translation aborted")

    async def checkpoint(self) -> None:
        """Stop if aborted; while paused, wait (polling) until resumed or aborted."""
        self.raise_if_aborted()
        while self._paused:
            await asyncio.sleep(self.poll_interval)
            self.raise_if_aborted()


@dataclass
class TranslationJob:
    """Settings and control flags of one translate run."""
    target_language: str
    prompt: str
    provider: TranslationProvider
    control: JobControl = field(default_factory=JobControl)


@dataclass
class JobOutcome:
    """Summary of a finished (or aborted) job."""
    total: int = 0
    processed: int = 0
    translated: int = 0
    failed: int = 0
    aborted: bool = False


def choose_batch_size(pending_count: int, config: EngineConfig) -> int:
    """Use large batches for large queues to cut the number of requests."""
    if pending_count > config.large_file_threshold:
        return config.max_batch_size
    return config.batch_size


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


def _discard_if_aborted(claimed: Sequence[SubtitleItem], job: TranslationJob) -> None:
    if job.control.aborted:
        logger.info(f"Discarding outcome for items {claimed[0].id}-{claimed[-1].id}: job aborted")
        job.control.raise_if_aborted()


class BatchScheduler:
    """Drives batches of items through a translation provider."""

    def __init__(
        self,
        store: ItemStateStore,
        config: EngineConfig,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.store = store
        self.config = config
        self.on_progress = on_progress

    async def run(self, job: TranslationJob) -> JobOutcome:
        """
        Translate every ``pending`` or ``error`` item.

        Batch failures are recorded on the items and never stop the loop;
        only an abort does. Items in flight when the abort lands stay
        ``translating``, items never reached stay ``pending``.
        """
        queue = self.store.with_status(ItemStatus.PENDING, ItemStatus.ERROR)
        outcome = JobOutcome(total=len(queue))

        if not queue:
            logger.info("No items to translate")
            self._report(0, 0)
            return outcome

        size = choose_batch_size(len(queue), self.config)
        batches = (len(queue) + size - 1) // size
        logger.info(f"Translating {len(queue)} items in {batches} batches of up to {size}")

        try:
            for start in range(0, len(queue), size):
                await job.control.checkpoint()

                chunk = queue[start:start + size]
                translated, failed = await self._process_slice(chunk, job)

                outcome.translated += translated
                outcome.failed += failed
                outcome.processed += len(chunk)
                self._report(outcome.processed, outcome.total)

        except TranslationAborted as e:
            outcome.aborted = True
            logger.info(f"Job stopped after {outcome.processed}/{outcome.total} items: {e}")

        return outcome

    async def run_batch(self, items: Sequence[SubtitleItem], job: TranslationJob) -> tuple[int, int]:
        """
        Translate one base-size batch without further subdivision.

        Used for retries. A failing call marks the batch items as errors.

        Returns:
            (translated count, error count)
        """
        await job.control.checkpoint()
        return await self._dispatch_or_fail(items, job)

    async def dispatch(
        self,
        items: Sequence[SubtitleItem],
        job: TranslationJob,
        reclaim: bool = False,
    ) -> tuple[int, int]:
        """
        Mark, translate and apply one batch.

        Only ``pending`` and ``error`` items are claimed. ``reclaim`` also
        takes items left ``translating`` by this job's own failed call; the
        sub-batches of a failed large batch need it.

        Raises whatever the provider raises, and TranslationAborted when the
        job was aborted while the call was in flight (its result or its
        failure is dropped).
        """
        claimed = self.store.begin([item.id for item in items], reclaim=reclaim)
        if not claimed:
            return 0, 0

        context = build_context(
            claimed,
            self.store.snapshot(),
            window=self.config.context_window,
            label=self.config.context_label,
        )

        try:
            results = await job.provider.translate_batch(
                [item.text for item in claimed],
                job.target_language,
                job.prompt,
                context or None,
            )
        except TranslationAborted:
            raise
        except Exception:
            # 中止后到达的失败同样丢弃，条目保持 translating
            _discard_if_aborted(claimed, job)
            raise

        _discard_if_aborted(claimed, job)
        return self.store.apply_results([item.id for item in claimed], list(results))

    async def _dispatch_or_fail(
        self,
        items: Sequence[SubtitleItem],
        job: TranslationJob,
        reclaim: bool = False,
    ) -> tuple[int, int]:
        try:
            return await self.dispatch(items, job, reclaim=reclaim)
        except TranslationAborted:
            raise
        except Exception as e:
            reason = _describe(e)
            logger.warning(f"Batch {items[0].id}-{items[-1].id} failed: {reason}")
            return 0, self.store.fail([item.id for item in items], reason)

    async def _process_slice(self, chunk: Sequence[SubtitleItem], job: TranslationJob) -> tuple[int, int]:
        base = self.config.batch_size
        if len(chunk) <= base:
            return await self._dispatch_or_fail(chunk, job)

        try:
            return await self.dispatch(chunk, job)
        except TranslationAborted:
            raise
        except Exception as e:
            logger.warning(
                f"Large batch {chunk[0].id}-{chunk[-1].id} failed ({_describe(e)}), "
                f"retrying in sub-batches of {base}"
            )

        translated = failed = 0
        for start in range(0, len(chunk), base):
            sub_batch = chunk[start:start + base]
            await job.control.checkpoint()
            sub_translated, sub_failed = await self._dispatch_or_fail(sub_batch, job, reclaim=True)
            translated += sub_translated
            failed += sub_failed

        return translated, failed

    def _report(self, processed: int, total: int) -> None:
        if self.on_progress is None:
            return
        percent = 100 if total == 0 else min(100, round(processed * 100 / total))
        self.on_progress(percent)

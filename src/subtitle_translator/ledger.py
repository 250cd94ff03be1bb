"""Failed batch bookkeeping.

The ledger is never patched incrementally: every read re-derives it from
the item store, so it cannot drift from the items' real status.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence, TYPE_CHECKING

from .models import FailedBatchEntry, ItemStatus, SubtitleItem, batch_index
from .store import ItemStateStore

if TYPE_CHECKING:
    from .scheduler import BatchScheduler, TranslationJob

logger = logging.getLogger(__name__)


def derive_failed_batches(
    items: Sequence[SubtitleItem],
    batch_size: int,
) -> List[FailedBatchEntry]:
    """Group errored items by batch index; one entry per batch, sorted."""
    groups: Dict[int, List[SubtitleItem]] = {}
    for item in items:
        if item.status == ItemStatus.ERROR:
            groups.setdefault(batch_index(item.id, batch_size), []).append(item.copy())

    return [
        FailedBatchEntry(batch_index=index, items=tuple(groups[index]))
        for index in sorted(groups)
    ]


class FailureLedger:
    """Derived view of the batches that currently contain errored items."""

    def __init__(self, store: ItemStateStore, batch_size: int):
        self.store = store
        self.batch_size = batch_size
        self._entries: List[FailedBatchEntry] = []

    def refresh(self) -> List[FailedBatchEntry]:
        """Re-derive entries from one consistent snapshot of the store."""
        self._entries = derive_failed_batches(self.store.snapshot(), self.batch_size)
        return list(self._entries)

    @property
    def entries(self) -> List[FailedBatchEntry]:
        """Entries as of the last refresh."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FailedBatchEntry]:
        return iter(list(self._entries))

    def __contains__(self, index: object) -> bool:
        return any(entry.batch_index == index for entry in self._entries)

    def get(self, index: int) -> Optional[FailedBatchEntry]:
        return next((e for e in self._entries if e.batch_index == index), None)

    def error_items(self, index: int) -> List[SubtitleItem]:
        """Items of a batch that are in ``error`` right now, read from the store."""
        return [
            item for item in self.store.with_status(ItemStatus.ERROR)
            if batch_index(item.id, self.batch_size) == index
        ]

    async def retry_batch(
        self,
        index: int,
        scheduler: "BatchScheduler",
        job: "TranslationJob",
    ) -> bool:
        """
        Re-dispatch the errored items of one batch.

        The target is re-validated against the store first; a batch already
        healed by individual fixes is a no-op.

        Returns:
            True when the batch holds no errored item afterwards
        """
        items = self.error_items(index)
        if not items:
            logger.info(f"Batch {index} has no failed items, nothing to retry")
            self.refresh()
            return True

        logger.info(f"Retrying batch {index} ({len(items)} items)")
        try:
            await scheduler.run_batch(items, job)
        finally:
            self.refresh()

        healed = index not in self
        if not healed:
            logger.warning(f"Batch {index} still has failed items after retry")
        return healed

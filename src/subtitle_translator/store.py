"""Authoritative per-item translation state.

Every change to ``SubtitleItem.status``, ``translated_text`` and ``error``
goes through ``ItemStateStore``. Readers receive copies, so nothing outside
the store can mutate an item behind its back.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from .models import ItemStatus, SubtitleItem, TranslationResult

logger = logging.getLogger(__name__)


# Transitions accepted by set_status. ``translated`` is only reached through
# set_translation / apply_results (which need the text) or a manual edit.
TRANSITIONS: Dict[ItemStatus, FrozenSet[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.TRANSLATING}),
    ItemStatus.TRANSLATING: frozenset({ItemStatus.TRANSLATING, ItemStatus.ERROR}),
    ItemStatus.ERROR: frozenset({ItemStatus.TRANSLATING, ItemStatus.ERROR}),
    ItemStatus.TRANSLATED: frozenset(),
}

DISPATCHABLE = frozenset({ItemStatus.PENDING, ItemStatus.ERROR})
RECLAIMABLE = DISPATCHABLE | {ItemStatus.TRANSLATING}


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed by the item state machine."""

    def __init__(self, item_id: int, current: ItemStatus, target: ItemStatus):
        super().__init__(
            f"Item {item_id}: cannot change status from {current.value} to {target.value}"
        )
        self.item_id = item_id
        self.current = current
        self.target = target


class ItemStateStore:
    """Thread-safe mapping from item id to its current translation state."""

    def __init__(
        self,
        items: Iterable[SubtitleItem] = (),
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._lock = threading.RLock()
        self._items: Dict[int, SubtitleItem] = {}
        self._order: List[int] = []
        self.on_change = on_change
        self.load(items, notify=False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def get(self, item_id: int) -> SubtitleItem:
        """Return a copy of one item. Raises KeyError for unknown ids."""
        with self._lock:
            return self._items[item_id].copy()

    def snapshot(self) -> List[SubtitleItem]:
        """Return copies of all items in display order, read atomically."""
        with self._lock:
            return [self._items[i].copy() for i in self._order]

    def with_status(self, *statuses: ItemStatus) -> List[SubtitleItem]:
        with self._lock:
            return [
                self._items[i].copy() for i in self._order
                if self._items[i].status in statuses
            ]

    def count(self, status: ItemStatus) -> int:
        with self._lock:
            return sum(1 for item in self._items.values() if item.status == status)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def load(self, items: Iterable[SubtitleItem], notify: bool = True) -> None:
        """Replace the whole item set (a new file was loaded)."""
        with self._lock:
            self._items = {}
            self._order = []
            for item in items:
                if item.id in self._items:
                    raise ValueError(f"Duplicate item id: {item.id}")
                self._items[item.id] = item.copy()
                self._order.append(item.id)
        if notify:
            self._notify()

    def set_status(
        self,
        ids: Sequence[int],
        status: ItemStatus,
        error: Optional[str] = None,
    ) -> None:
        """
        Move all ``ids`` to ``status`` in one step.

        The whole call is validated before anything is written, so a
        rejected transition leaves every item untouched.

        Raises:
            KeyError: unknown id
            InvalidTransitionError: transition not allowed for some item
        """
        with self._lock:
            targets = [self._items[i] for i in ids]
            for item in targets:
                if status not in TRANSITIONS[item.status]:
                    raise InvalidTransitionError(item.id, item.status, status)

            for item in targets:
                item.status = status
                item.error = error if status == ItemStatus.ERROR else None
        self._notify()

    def set_translation(self, item_id: int, text: str) -> None:
        """Record a successful translation for an item that is in flight."""
        with self._lock:
            item = self._items[item_id]
            if item.status != ItemStatus.TRANSLATING:
                raise InvalidTransitionError(item_id, item.status, ItemStatus.TRANSLATED)
            item.translated_text = text
            item.status = ItemStatus.TRANSLATED
            item.error = None
        self._notify()

    def begin(self, ids: Sequence[int], reclaim: bool = False) -> List[SubtitleItem]:
        """
        Mark the ``pending`` and ``error`` items among ``ids`` as translating.

        Items that became ``translated`` in the meantime (manual edit) are
        left alone, and so are items another call has in flight unless
        ``reclaim`` is set by the caller that owns them. Returns copies of
        the items that were claimed.
        """
        allowed = RECLAIMABLE if reclaim else DISPATCHABLE
        with self._lock:
            claimed = []
            for item_id in ids:
                item = self._items[item_id]
                if item.status not in allowed:
                    logger.debug(f"Skipping item {item_id}: already {item.status.value}")
                    continue
                item.status = ItemStatus.TRANSLATING
                item.error = None
                claimed.append(item.copy())
        if claimed:
            self._notify()
        return claimed

    def apply_results(
        self,
        ids: Sequence[int],
        results: Sequence[TranslationResult],
    ) -> tuple[int, int]:
        """
        Apply adapter results to the items of one batch, aligned by position.

        Only items still ``translating`` are written; an item edited or
        retried by someone else meanwhile keeps its newer state. Ids without
        a matching result are marked as errors.

        Returns:
            (translated count, error count)
        """
        translated = failed = 0
        with self._lock:
            for position, item_id in enumerate(ids):
                item = self._items[item_id]
                if item.status != ItemStatus.TRANSLATING:
                    logger.debug(f"Discarding result for item {item_id}: now {item.status.value}")
                    continue

                result = results[position] if position < len(results) else None
                if result is None:
                    item.status = ItemStatus.ERROR
                    item.error = f"Missing translation {position + 1}/{len(ids)}"
                    failed += 1
                elif result.error is not None or not result.translated_text:
                    item.status = ItemStatus.ERROR
                    item.error = result.error or "Empty translation"
                    failed += 1
                else:
                    item.translated_text = result.translated_text
                    item.status = ItemStatus.TRANSLATED
                    item.error = None
                    translated += 1
        self._notify()
        return translated, failed

    def fail(self, ids: Sequence[int], reason: str) -> int:
        """Mark in-flight items of a failed call as errors. Returns the count."""
        count = 0
        with self._lock:
            for item_id in ids:
                item = self._items[item_id]
                if item.status != ItemStatus.TRANSLATING:
                    continue
                item.status = ItemStatus.ERROR
                item.error = reason
                count += 1
        self._notify()
        return count

    def update_manually(self, item_id: int, text: str) -> None:
        """User-supplied translation; the only path that skips ``translating``."""
        with self._lock:
            item = self._items[item_id]
            item.translated_text = text
            item.status = ItemStatus.TRANSLATED
            item.error = None
        self._notify()

    def reset_to_pending(self, ids: Optional[Iterable[int]] = None, clear_translation: bool = True) -> int:
        """Put items back into the queue. ``ids=None`` means every item."""
        count = 0
        with self._lock:
            targets = self._order if ids is None else list(ids)
            for item_id in targets:
                item = self._items[item_id]
                item.status = ItemStatus.PENDING
                item.error = None
                if clear_translation:
                    item.translated_text = ""
                count += 1
        if count:
            self._notify()
        return count

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

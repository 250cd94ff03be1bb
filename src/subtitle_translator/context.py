"""Context selection for batch translation."""

from __future__ import annotations

from typing import List, Sequence

from .config import DEFAULT_CONTEXT_LABEL
from .models import SubtitleItem


def context_items(
    batch: Sequence[SubtitleItem],
    all_items: Sequence[SubtitleItem],
    window: int = 3,
) -> List[SubtitleItem]:
    """
    Return the translated items among the ``window`` items before a batch.

    Only preceding items are used, so a batch never depends on text that
    has not been translated yet.
    """
    if not batch or window <= 0:
        return []

    first_id = batch[0].id
    position = next((i for i, item in enumerate(all_items) if item.id == first_id), -1)
    if position <= 0:
        return []

    start = max(0, position - window)
    return [item for item in all_items[start:position] if item.is_translated]


def build_context(
    batch: Sequence[SubtitleItem],
    all_items: Sequence[SubtitleItem],
    window: int = 3,
    label: str = DEFAULT_CONTEXT_LABEL,
) -> str:
    """
    Render preceding translations as a context block for the model.

    Returns:
        ``label`` followed by ``"{id}. {source} → {translation}"`` lines,
        or an empty string when no preceding item is translated
    """
    selected = context_items(batch, all_items, window)
    if not selected:
        return ""

    lines = [f"{item.id}. {item.text} → {item.translated_text}" for item in selected]
    return "\n".join([label, *lines])

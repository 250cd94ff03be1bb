"""Data models for subtitle cues, tracked items and translation results."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple


class ItemStatus(str, Enum):
    """Translation state of a single subtitle item."""
    PENDING = "pending"
    TRANSLATING = "translating"
    TRANSLATED = "translated"
    ERROR = "error"


def batch_index(item_id: int, batch_size: int) -> int:
    """Return the batch an item belongs to; ids are 1-based."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return (item_id - 1) // batch_size


@dataclass
class SubtitleCue:
    """One cue as produced and consumed by the subtitle codecs."""

    id: int
    start_time: str
    end_time: str
    text: str

    @property
    def timecode(self) -> str:
        """Return the timecode line in SRT format."""
        return f"{self.start_time} --> {self.end_time}"


@dataclass
class SubtitleItem:
    """A subtitle cue together with its translation state."""

    id: int
    start_time: str
    end_time: str
    text: str
    translated_text: str = ""
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    @property
    def timecode(self) -> str:
        return f"{self.start_time} --> {self.end_time}"

    @property
    def is_translated(self) -> bool:
        return self.status == ItemStatus.TRANSLATED and bool(self.translated_text)

    def batch_index(self, batch_size: int) -> int:
        return batch_index(self.id, batch_size)

    def to_cue(self, text: Optional[str] = None) -> SubtitleCue:
        return SubtitleCue(
            id=self.id,
            start_time=self.start_time,
            end_time=self.end_time,
            text=self.text if text is None else text,
        )

    def copy(self, **changes) -> "SubtitleItem":
        """Create a copy with optional field changes."""
        return replace(self, **changes)

    @classmethod
    def from_cue(cls, cue: SubtitleCue, item_id: int) -> "SubtitleItem":
        return cls(
            id=item_id,
            start_time=cue.start_time,
            end_time=cue.end_time,
            text=cue.text,
        )


@dataclass
class TranslationResult:
    """Adapter output for one input text, aligned by position."""
    translated_text: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FailedBatchEntry:
    """A batch that currently holds at least one errored item.

    ``items`` is a snapshot for display; the store stays authoritative.
    """

    batch_index: int
    items: Tuple[SubtitleItem, ...] = field(default_factory=tuple)

    @property
    def item_ids(self) -> Tuple[int, ...]:
        return tuple(item.id for item in self.items)

    @property
    def errors(self) -> Tuple[str, ...]:
        return tuple(item.error or "" for item in self.items)

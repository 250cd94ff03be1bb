"""Project tracked items into exportable subtitle cues."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Sequence

from .models import ItemStatus, SubtitleCue, SubtitleItem
from .parser import get_file_extension, stringify_subtitle

ORIGINAL_FORMAT = "original"


class ExportMode(str, Enum):
    TRANSLATED = "translated"
    BILINGUAL = "bilingual"


def project_items(items: Sequence[SubtitleItem], mode: ExportMode = ExportMode.TRANSLATED) -> List[SubtitleCue]:
    """
    Build the cues to write for ``mode``.

    Translated mode falls back to the source text where no translation
    exists. Bilingual mode puts the source above the translation, but only
    for items that are translated; everything else exports the source alone.
    """
    cues = []
    for item in items:
        if mode == ExportMode.BILINGUAL:
            if item.status == ItemStatus.TRANSLATED and item.translated_text:
                text = f"{item.text}\n{item.translated_text}"
            else:
                text = item.text
        else:
            text = item.translated_text or item.text
        cues.append(item.to_cue(text))
    return cues


def resolve_format(fmt: str, source_format: str) -> str:
    """Map ``"original"`` to the format the file was loaded in."""
    return source_format if fmt == ORIGINAL_FORMAT else fmt


def export_items(
    items: Sequence[SubtitleItem],
    fmt: str,
    mode: ExportMode = ExportMode.TRANSLATED,
) -> str:
    """Render items as subtitle text in ``fmt``."""
    return stringify_subtitle(project_items(items, mode), fmt)


def export_filename(
    source_name: str,
    target_language: str,
    fmt: str,
    mode: ExportMode = ExportMode.TRANSLATED,
) -> str:
    """
    Name of the exported file, e.g. ``movie_vietnamese.srt`` or
    ``movie_bilingual_vietnamese.vtt``.
    """
    stem = Path(source_name).stem
    language = target_language.strip().lower()
    marker = "_bilingual" if mode == ExportMode.BILINGUAL else ""
    return f"{stem}{marker}_{language}{get_file_extension(fmt)}"

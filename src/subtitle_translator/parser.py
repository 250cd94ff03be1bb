"""Subtitle file parsing and serialization (SRT, WebVTT, ASS).

All codecs exchange ``SubtitleCue`` objects whose timestamps use the SRT
shape ``hh:mm:ss,mmm``; each codec converts to and from its own timestamp
notation, so cues can be exported in any supported format.
"""

from __future__ import annotations

import re
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config import SUPPORTED_FORMATS
from .models import SubtitleCue

logger = logging.getLogger(__name__)


class SubtitleFormatError(ValueError):
    """Raised for an unknown subtitle format name."""


_BLOCK_SPLIT = re.compile(r"\n\s*\n")

_SRT_TIMING = re.compile(
    r"(\d{1,2}:\d{2}:\d{2},\d{3})\s*-->\s*(\d{1,2}:\d{2}:\d{2},\d{3})"
)

_VTT_TIMING = re.compile(
    r"((?:\d{1,2}:)?\d{2}:\d{2}\.\d{3})\s*-->\s*((?:\d{1,2}:)?\d{2}:\d{2}\.\d{3})"
)

# ASS override blocks such as {\i1} or {\an8}
_ASS_TAGS = re.compile(r"\{\\[^}]*\}")


def _normalize_newlines(content: str) -> str:
    return content.replace('\r\n', '\n').replace('\r', '\n').lstrip('\ufeff')


def _pad_hours(timestamp: str) -> str:
    """Normalize the hour field to two digits."""
    hours, rest = timestamp.split(':', 1)
    return f"{hours.zfill(2)}:{rest}"


# ---------------------------------------------------------------------------
# SRT
# ---------------------------------------------------------------------------

def parse_srt(content: str) -> List[SubtitleCue]:
    """
    Parse SRT file content into list of SubtitleCue objects.

    Blocks without a numeric index or a valid timing line are skipped.
    Multi-line cue text is kept with its line breaks.

    Args:
        content: Raw SRT file content as string

    Returns:
        List of parsed SubtitleCue objects
    """
    if not content or not content.strip():
        return []

    content = _normalize_newlines(content).strip()

    cues: List[SubtitleCue] = []

    for block in _BLOCK_SPLIT.split(content):
        lines = block.strip().split('\n')
        if len(lines) < 3:
            continue

        index = lines[0].strip()
        if not index.isdigit():
            continue

        match = _SRT_TIMING.search(lines[1])
        if not match:
            continue

        start, end = match.groups()
        text = "\n".join(line.rstrip() for line in lines[2:])
        cues.append(SubtitleCue(int(index), _pad_hours(start), _pad_hours(end), text))

    if not cues:
        logger.warning("No valid SRT entries found in content")

    return cues


def stringify_srt(cues: Sequence[SubtitleCue]) -> str:
    """Generate SRT content from subtitle cues."""
    blocks = [f"{cue.id}\n{cue.timecode}\n{cue.text}" for cue in cues]
    return "\n\n".join(blocks) + "\n" if blocks else ""


# ---------------------------------------------------------------------------
# WebVTT
# ---------------------------------------------------------------------------

def vtt_time_to_srt_time(timestamp: str) -> str:
    """Convert ``[hh:]mm:ss.mmm`` to ``hh:mm:ss,mmm``."""
    parts = timestamp.split(':')
    if len(parts) == 2:
        parts.insert(0, "00")
    if len(parts) != 3:
        return timestamp
    parts[0] = parts[0].zfill(2)
    return ":".join(parts).replace('.', ',')


def srt_time_to_vtt_time(timestamp: str) -> str:
    """Convert ``hh:mm:ss,mmm`` to ``hh:mm:ss.mmm``."""
    return timestamp.replace(',', '.')


def parse_vtt(content: str) -> List[SubtitleCue]:
    """
    Parse WebVTT content into SubtitleCue objects.

    NOTE, STYLE and REGION blocks are ignored, as are cue settings that
    follow the timing line. Cues are numbered in order of appearance.
    """
    if not content or not content.strip():
        return []

    content = _normalize_newlines(content).strip()
    blocks = _BLOCK_SPLIT.split(content)

    if not blocks[0].startswith("WEBVTT"):
        logger.warning("Missing WEBVTT header, parsing anyway")
    else:
        blocks = blocks[1:]

    cues: List[SubtitleCue] = []

    for block in blocks:
        lines = block.strip().split('\n')
        if not lines or lines[0].startswith(("NOTE", "STYLE", "REGION")):
            continue

        # Optional cue identifier before the timing line
        timing_at = 0 if '-->' in lines[0] else 1
        if timing_at >= len(lines):
            continue

        match = _VTT_TIMING.search(lines[timing_at])
        if not match:
            continue

        text = "\n".join(line.rstrip() for line in lines[timing_at + 1:])
        if not text.strip():
            continue

        start, end = match.groups()
        cues.append(SubtitleCue(
            len(cues) + 1,
            vtt_time_to_srt_time(start),
            vtt_time_to_srt_time(end),
            text,
        ))

    if not cues:
        logger.warning("No valid WebVTT cues found in content")

    return cues


def stringify_vtt(cues: Sequence[SubtitleCue]) -> str:
    """Generate WebVTT content from subtitle cues."""
    blocks = ["WEBVTT"]
    for cue in cues:
        start = srt_time_to_vtt_time(cue.start_time)
        end = srt_time_to_vtt_time(cue.end_time)
        blocks.append(f"{cue.id}\n{start} --> {end}\n{cue.text}")
    return "\n\n".join(blocks) + "\n"


# ---------------------------------------------------------------------------
# ASS / SSA
# ---------------------------------------------------------------------------

ASS_HEADER = (
    "[Script Info]\n"
    "Title: Generated by AI Subtitle Translator\n"
    "ScriptType: v4.00+\n"
    "WrapStyle: 0\n"
    "ScaledBorderAndShadow: yes\n"
    "YCbCr Matrix: None\n"
    "\n"
    "[V4+ Styles]\n"
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, "
    "ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, "
    "Alignment, MarginL, MarginR, MarginV, Encoding\n"
    "Style: Default,Arial,20,&H00FFFFFF,&H000000FF,&H00000000,&H00000000,"
    "0,0,0,0,100,100,0,0,1,2,2,2,10,10,10,1\n"
    "\n"
    "[Events]\n"
    "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text\n"
)


def ass_time_to_srt_time(timestamp: str) -> str:
    """Convert ASS ``h:mm:ss.cc`` to SRT ``hh:mm:ss,mmm``."""
    parts = timestamp.strip().split(':')
    if len(parts) != 3:
        return timestamp

    hours, minutes, seconds = parts
    if '.' in seconds:
        sec, frac = seconds.split('.', 1)
        # Two digits are centiseconds
        millis = int(frac) * 10 if len(frac) == 2 else int(frac[:3].ljust(3, '0'))
        seconds = f"{sec},{millis:03d}"

    return f"{hours.zfill(2)}:{minutes}:{seconds}"


def srt_time_to_ass_time(timestamp: str) -> str:
    """Convert SRT ``hh:mm:ss,mmm`` to ASS ``h:mm:ss.cc``."""
    parts = timestamp.split(':')
    if len(parts) != 3:
        return timestamp

    hours, minutes, seconds = parts
    hours = str(int(hours)) if hours.isdigit() else hours
    if ',' in seconds:
        sec, millis = seconds.split(',', 1)
        centis = min(99, round(int(millis) / 10))
        seconds = f"{sec}.{centis:02d}"

    return f"{hours}:{minutes}:{seconds}"


def parse_ass(content: str) -> List[SubtitleCue]:
    """
    Parse ASS/SSA content into SubtitleCue objects.

    Only ``Dialogue`` lines of the ``[Events]`` section are read; override
    tags are removed and ``\\N`` line breaks become newlines.
    """
    if not content or not content.strip():
        return []

    content = _normalize_newlines(content)

    cues: List[SubtitleCue] = []
    in_events = False
    fields: List[str] = []

    for raw in content.split('\n'):
        line = raw.strip()
        if not line:
            continue

        if line.startswith('[') and line.endswith(']'):
            in_events = line.lower() == '[events]'
            continue

        if not in_events:
            continue

        if line.startswith('Format:'):
            fields = [part.strip() for part in line[len('Format:'):].split(',')]
            continue

        if not line.startswith('Dialogue:') or not fields:
            continue

        try:
            start_at = fields.index('Start')
            end_at = fields.index('End')
            text_at = fields.index('Text')
        except ValueError:
            continue

        # Text is the last field and may itself contain commas
        values = line[len('Dialogue:'):].lstrip().split(',', len(fields) - 1)
        if len(values) < len(fields):
            continue

        text = _ASS_TAGS.sub('', values[text_at])
        text = text.replace('\\N', '\n').replace('\\n', '\n')

        cues.append(SubtitleCue(
            len(cues) + 1,
            ass_time_to_srt_time(values[start_at]),
            ass_time_to_srt_time(values[end_at]),
            text,
        ))

    if not cues:
        logger.warning("No valid ASS dialogue lines found in content")

    return cues


def stringify_ass(cues: Sequence[SubtitleCue]) -> str:
    """Generate ASS content from subtitle cues."""
    lines = [ASS_HEADER.rstrip('\n')]
    for cue in cues:
        start = srt_time_to_ass_time(cue.start_time)
        end = srt_time_to_ass_time(cue.end_time)
        text = cue.text.replace('\n', '\\N')
        lines.append(f"Dialogue: 0,{start},{end},Default,,0,0,0,,{text}")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Format dispatch
# ---------------------------------------------------------------------------

_PARSERS: Dict[str, Callable[[str], List[SubtitleCue]]] = {
    "srt": parse_srt,
    "vtt": parse_vtt,
    "ass": parse_ass,
}

_STRINGIFIERS: Dict[str, Callable[[Sequence[SubtitleCue]], str]] = {
    "srt": stringify_srt,
    "vtt": stringify_vtt,
    "ass": stringify_ass,
}


def detect_format(filename: str | Path) -> Optional[str]:
    """Return the format name for a file name, or None if unsupported."""
    return SUPPORTED_FORMATS.get(Path(filename).suffix.lower())


def get_file_extension(fmt: str) -> str:
    """Return the canonical file extension (with dot) for a format."""
    _check_format(fmt)
    return f".{fmt}"


def _check_format(fmt: str) -> None:
    if fmt not in _PARSERS:
        raise SubtitleFormatError(
            f"Unsupported subtitle format: {fmt} (expected one of: {', '.join(_PARSERS)})"
        )


def parse_subtitle(content: str, fmt: str) -> List[SubtitleCue]:
    """Parse content with the codec for ``fmt``."""
    _check_format(fmt)
    return _PARSERS[fmt](content)


def stringify_subtitle(cues: Sequence[SubtitleCue], fmt: str) -> str:
    """Serialize cues with the codec for ``fmt``."""
    _check_format(fmt)
    return _STRINGIFIERS[fmt](cues)


def validate_subtitle_file(path: Path) -> Optional[str]:
    """
    Validate subtitle file before processing.

    Args:
        path: Path to subtitle file

    Returns:
        Error message if invalid, None if valid
    """
    if not path.exists():
        return f"File not found: {path}"

    if not path.is_file():
        return f"Not a file: {path}"

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        expected = ", ".join(sorted(SUPPORTED_FORMATS))
        return f"Invalid file extension: {suffix} (expected one of {expected})"

    # 检查文件大小
    size = path.stat().st_size
    if size == 0:
        return "File is empty"
    if size > 50 * 1024 * 1024:  # 50MB
        return f"File too large: {size / 1024 / 1024:.1f}MB (max 50MB)"

    return None


def save_text(content: str, path: Path) -> None:
    """Write already serialized subtitle text to ``path``."""
    # 确保父目录存在
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        f.write(content)

"""Persistence: key-value preferences and translation progress records."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict
from datetime import datetime

from .config import PROGRESS_SUFFIX

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Port for small persisted settings (provider choice, model, ...)."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    """In-process store; nothing survives the session."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Store backed by a JSON object on disk, rewritten on every change."""

    def __init__(self, path: Path):
        self.path = path
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    with self.path.open('r', encoding='utf-8') as f:
                        data = json.load(f)
                    if isinstance(data, dict):
                        self._data = data
                    else:
                        logger.warning(f"Ignoring settings file {self.path}: not a JSON object")
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Failed to load settings file: {e}")
        return self._data

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as f:
            json.dump(self._load(), f, ensure_ascii=False, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._save()


@dataclass
class TranslationProgress:
    """翻译进度记录。"""

    input_file: str
    target_language: str
    total_items: int
    translations: Dict[int, str]  # item id -> translated text
    started_at: str
    updated_at: str

    @classmethod
    def create(cls, input_file: str, target_language: str, total_items: int) -> "TranslationProgress":
        """创建新的进度记录。"""
        now = datetime.now().isoformat()
        return cls(
            input_file=input_file,
            target_language=target_language,
            total_items=total_items,
            translations={},
            started_at=now,
            updated_at=now,
        )

    def update(self, translations: Dict[int, str]) -> None:
        """Replace recorded translations with the current ones."""
        self.translations = dict(translations)
        self.updated_at = datetime.now().isoformat()

    @property
    def is_complete(self) -> bool:
        """检查是否全部完成。"""
        return len(self.translations) >= self.total_items

    @property
    def completion_rate(self) -> float:
        """完成率 (0-1)。"""
        if self.total_items == 0:
            return 1.0
        return len(self.translations) / self.total_items


def get_progress_file(input_path: Path) -> Path:
    """获取进度文件路径。"""
    return input_path.with_suffix(input_path.suffix + PROGRESS_SUFFIX)


def save_progress(progress: TranslationProgress, path: Path) -> bool:
    """
    保存进度到文件。

    Returns:
        True if successful
    """
    try:
        data = asdict(progress)
        # 将 int keys 转换为 str (JSON 要求)
        data['translations'] = {str(k): v for k, v in data['translations'].items()}

        with path.open('w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

        logger.debug(f"Progress saved to {path}")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save progress: {e}")
        return False


def load_progress(path: Path) -> Optional[TranslationProgress]:
    """
    从文件加载进度。

    Returns:
        TranslationProgress if found and valid, None otherwise
    """
    if not path.exists():
        return None

    try:
        with path.open('r', encoding='utf-8') as f:
            data = json.load(f)

        # 将 str keys 转换回 int
        data['translations'] = {int(k): v for k, v in data['translations'].items()}

        return TranslationProgress(**data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Failed to load progress file: {e}")
        return None


def delete_progress(path: Path) -> None:
    """删除进度文件。"""
    try:
        if path.exists():
            path.unlink()
            logger.debug(f"Progress file deleted: {path}")
    except OSError as e:
        logger.warning(f"Failed to delete progress file: {e}")

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml


class I18n:
    """Simple YAML-backed i18n loader with fallback to English.

    Uses a path relative to this file by default, so it does not depend
    on the current working directory of the running process.
    """

    def __init__(self, lang: str, base_dir: Path | None = None) -> None:
        self.lang = (lang or 'en').lower()
        if base_dir is None:
            # libs/core/i18n.py -> project_root/config/i18n
            project_root = Path(__file__).resolve().parents[2]
            self.base_dir = project_root / 'config' / 'i18n'
        else:
            self.base_dir = base_dir
        self._cache: Dict[str, str] = {}
        self._fallback: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        def _read(path: Path) -> Dict[str, str]:
            if not path.exists():
                return {}
            with path.open('r', encoding='utf-8') as fh:
                data = yaml.safe_load(fh) or {}
                if not isinstance(data, dict):
                    return {}
                return {str(k): str(v) for k, v in data.items()}

        self._fallback = _read(self.base_dir / 'messages.en.yaml')
        if self.lang == 'en':
            self._cache = self._fallback
        else:
            self._cache = _read(self.base_dir / f'messages.{self.lang}.yaml')

    def t(self, key: str) -> str:
        return self._cache.get(key) or self._fallback.get(key) or key


def lang_from_header(accept_language: Optional[str]) -> str:
    """Pick the primary language tag of an Accept-Language header."""
    if not accept_language:
        return 'en'
    first = accept_language.split(',', 1)[0].split(';', 1)[0].strip()
    tag = first.split('-', 1)[0].lower()
    # the tag becomes part of a file name
    if not tag.isascii() or not tag.isalpha() or len(tag) > 8:
        return 'en'
    return tag


@lru_cache(maxsize=16)
def get_i18n(lang: str) -> I18n:
    return I18n(lang)


__all__ = ["I18n", "get_i18n", "lang_from_header"]

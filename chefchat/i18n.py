"""Simple dict-based i18n for user-facing chat strings."""

import json
from pathlib import Path

_locales_dir = Path(__file__).parent / "locales"
_cache: dict[str, dict[str, str]] = {}


def _load(lang: str) -> dict[str, str]:
    if lang not in _cache:
        path = _locales_dir / f"{lang}.json"
        if path.exists():
            _cache[lang] = json.loads(path.read_text(encoding="utf-8"))
        else:
            _cache[lang] = {}
    return _cache[lang]


def t(key: str, lang: str = "en", **kwargs: str) -> str:
    """Translate *key*, falling back to English and then to the key itself."""
    text = _load(lang).get(key) or _load("en").get(key) or key
    if kwargs:
        try:
            return text.format(**kwargs)
        except (KeyError, IndexError):
            return text
    return text

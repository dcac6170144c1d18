import json
import logging
from pathlib import Path
from typing import Dict, Optional

from download_proxy.config.settings import config

logger = logging.getLogger("download_proxy")

LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"


def _flatten(tree: dict, prefix: str = "") -> Dict[str, str]:
    """{"error": {"timeout": "..."}} -> {"error.timeout": "..."}"""
    flat: Dict[str, str] = {}
    for name, value in tree.items():
        key = f"{prefix}{name}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{key}."))
        else:
            flat[key] = str(value)
    return flat


class I18n:
    """User-facing messages per locale, falling back to the default locale"""

    def __init__(self, locales_dir: Path = LOCALES_DIR, default_locale: Optional[str] = None):
        self.default_locale = default_locale or config.i18n.default_locale
        self.messages: Dict[str, Dict[str, str]] = {}
        for path in sorted(locales_dir.glob("*.json")):
            try:
                self.messages[path.stem] = _flatten(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                logger.error(f"Error loading locale {path.stem}: {e}")
        if not self.messages:
            logger.warning(f"No locales found in {locales_dir}")

    def get(self, key: str, locale: Optional[str] = None, **kwargs) -> str:
        """Message for key in locale; the key itself when no locale defines it"""
        for candidate in (locale, self.default_locale):
            template = self.messages.get(candidate or "", {}).get(key)
            if template is not None:
                break
        else:
            return key

        try:
            return template.format(**kwargs)
        except (KeyError, IndexError):
            return template


i18n = I18n()

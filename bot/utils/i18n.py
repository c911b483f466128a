from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class I18N:
    def __init__(self, base_dir: Path, default_locale: str, supported_locales: Iterable[str] = ()) -> None:
        self.base_dir = base_dir
        self.default_locale = default_locale
        self._messages: dict[str, dict[str, str]] = {}
        for locale in {default_locale, *supported_locales}:
            self.load_locale(locale)

    def load_locale(self, locale: str) -> None:
        path = self.base_dir / f"{locale}.json"
        if not path.exists():
            LOGGER.warning("Locale file missing: %s", path)
            return
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if isinstance(payload, dict):
            self._messages[locale] = {str(k): str(v) for k, v in payload.items()}

    def t(self, key: str, locale: str | None = None, **kwargs: object) -> str:
        locale_key = locale or self.default_locale
        if locale_key not in self._messages:
            self.load_locale(locale_key)
        template = self._messages.get(locale_key, {}).get(
            key, self._messages.get(self.default_locale, {}).get(key, key)
        )
        try:
            return template.format(**kwargs)
        except (KeyError, IndexError):
            LOGGER.warning("Missing parameter for locale key %s", key)
            return template

"""Lightweight i18n utilities for alert, dialog and button copy."""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from ..config import get_settings

logger = logging.getLogger(__name__)

SUPPORTED_LOCALES: tuple[str, ...] = ("sv", "en")
DEFAULT_LOCALE = "sv"
_I18N_DIR = Path(__file__).resolve().parent.parent / "i18n"


def _load_messages(locale: str) -> dict[str, str]:
    path = _I18N_DIR / f"{locale}.json"
    if not path.exists():
        raise FileNotFoundError(f"Missing locale bundle: {locale}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@lru_cache(maxsize=16)
def get_messages(locale: str) -> dict[str, str]:
    normalized = normalize_locale(locale)
    try:
        return _load_messages(normalized)
    except (OSError, ValueError):  # pragma: no cover - IO bound
        if normalized != DEFAULT_LOCALE:
            logger.warning("Locale bundle %s unavailable; using %s", normalized, DEFAULT_LOCALE)
            return get_messages(DEFAULT_LOCALE)
        raise


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return DEFAULT_LOCALE
    value = locale.strip().replace("_", "-")
    if value in SUPPORTED_LOCALES:
        return value
    prefix = value.split("-", 1)[0].lower()
    if prefix in SUPPORTED_LOCALES:
        return prefix
    raise ValueError(f"Unsupported locale: {locale}")


def default_locale() -> str:
    # Settings validation errors are ValueErrors too; copy must render without a configured backend.
    try:
        return normalize_locale(get_settings().ui_locale)
    except ValueError:
        return DEFAULT_LOCALE


def translate(key: str, locale: str | None = None, **params: object) -> str:
    """Return the localized message for ``key``, formatted with ``params``.

    Falls back to the default bundle, then to the key itself.
    """

    messages = get_messages(locale or default_locale())
    template = messages.get(key)
    if template is None:
        template = get_messages(DEFAULT_LOCALE).get(key, key)
    if not params:
        return template
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        logger.warning("Missing placeholder for message %s", key)
        return template


__all__ = ["DEFAULT_LOCALE", "SUPPORTED_LOCALES", "get_messages", "normalize_locale", "default_locale", "translate"]

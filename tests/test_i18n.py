from pathlib import Path

import pytest

import gymfriends
from gymfriends.services.i18n_service import get_messages, normalize_locale, translate


def test_swedish_bundle_is_default():
    assert translate("action.add") == "Lägg till vän"


def test_translate_formats_placeholders():
    assert translate("friend_request.accepted.body", "sv", name="Anna") == "Du och Anna är nu vänner!"
    assert translate("friend_request.accepted.body", "en", name="Anna") == "You and Anna are now friends!"


def test_unknown_key_falls_back_to_key():
    assert translate("missing.key", "en") == "missing.key"


def test_missing_placeholder_returns_template():
    assert translate("search.error", "sv") == "Kunde inte söka efter användare: {reason}"
    assert translate("search.error", "sv", other="x") == "Kunde inte söka efter användare: {reason}"


@pytest.mark.parametrize("raw, expected", [(None, "sv"), ("en_US", "en"), ("sv-SE", "sv"), ("en", "en")])
def test_normalize_locale(raw, expected):
    assert normalize_locale(raw) == expected


def test_unsupported_locale_is_rejected():
    with pytest.raises(ValueError):
        normalize_locale("fr")


def test_bundles_share_keys():
    assert set(get_messages("sv")) == set(get_messages("en"))


def test_every_message_is_used_by_the_package():
    package_dir = Path(gymfriends.__file__).resolve().parent
    source = "\n".join(path.read_text(encoding="utf-8") for path in package_dir.rglob("*.py"))

    unused = [key for key in get_messages("sv") if f'"{key}"' not in source]

    assert unused == []

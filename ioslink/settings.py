"""Device settings read and written through lockdown values."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .lockdown import LockdownClient, LockdownError

log = logging.getLogger(__name__)

ACCESSIBILITY_DOMAIN = "com.apple.Accessibility"
ASSISTIVE_TOUCH_KEY = "AssistiveTouchEnabledByiTunes"
VOICE_OVER_TOUCH_KEY = "VoiceOverTouchEnabledByiTunes"
ZOOM_TOUCH_KEY = "ZoomTouchEnabledByiTunes"
USES_24_HOUR_CLOCK_KEY = "Uses24HourClock"
LANGUAGE_DOMAIN = "com.apple.international"
DEFAULT_TIME_ZONE = "Europe/Berlin"


@dataclass
class LanguageConfiguration:
    """A language and locale, plus the lists of supported ones."""

    language: str = ""
    locale: str = ""
    supported_locales: list[str] = field(default_factory=list)
    supported_languages: list[str] = field(default_factory=list)


def _set_flag(client: LockdownClient, key: str, domain: str, enabled: bool) -> None:
    log.debug("Setting %s: %s", key, enabled)
    client.set_value_for_domain(key, domain, bool(enabled))


def _get_accessibility_flag(client: LockdownClient, key: str) -> bool:
    value = client.get_value_for_domain(key, ACCESSIBILITY_DOMAIN)
    if value is None:
        raise LockdownError(
            f"Received null response when querying {ACCESSIBILITY_DOMAIN}.{key}. "
            "Try re-pairing the device."
        )
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise LockdownError(
            f"Expected unit64 0 or 1 when querying {ACCESSIBILITY_DOMAIN}.{key}, "
            f"but received {type(value).__name__}:{value!r}. Is this device running iOS 11+?"
        )
    if value not in (0, 1):
        raise LockdownError(
            f"Expected a value of 0 or 1 for {ACCESSIBILITY_DOMAIN}.{key}, "
            f"received {value} instead!"
        )
    return value == 1


def set_assistive_touch(client: LockdownClient, enabled: bool) -> None:
    """Enable or disable AssistiveTouch, the on-screen software home button."""
    _set_flag(client, ASSISTIVE_TOUCH_KEY, ACCESSIBILITY_DOMAIN, enabled)


def get_assistive_touch(client: LockdownClient) -> bool:
    """Return whether AssistiveTouch is enabled."""
    return _get_accessibility_flag(client, ASSISTIVE_TOUCH_KEY)


def set_voice_over(client: LockdownClient, enabled: bool) -> None:
    """Enable or disable VoiceOver."""
    _set_flag(client, VOICE_OVER_TOUCH_KEY, ACCESSIBILITY_DOMAIN, enabled)


def get_voice_over(client: LockdownClient) -> bool:
    """Return whether VoiceOver is enabled."""
    return _get_accessibility_flag(client, VOICE_OVER_TOUCH_KEY)


def set_zoom_touch(client: LockdownClient, enabled: bool) -> None:
    """Enable or disable ZoomTouch."""
    _set_flag(client, ZOOM_TOUCH_KEY, ACCESSIBILITY_DOMAIN, enabled)


def get_zoom_touch(client: LockdownClient) -> bool:
    """Return whether ZoomTouch is enabled."""
    return _get_accessibility_flag(client, ZOOM_TOUCH_KEY)


def set_uses_24_hour_clock(client: LockdownClient, enabled: bool) -> None:
    """Switch the device between 24 hour and 12 hour clock."""
    _set_flag(client, USES_24_HOUR_CLOCK_KEY, "", enabled)


def get_uses_24_hour_clock(client: LockdownClient) -> bool:
    """Return whether the device uses a 24 hour clock."""
    value = client.get_value_for_domain(USES_24_HOUR_CLOCK_KEY, "")
    if value is None:
        raise LockdownError(
            f"Received null response when querying .{USES_24_HOUR_CLOCK_KEY}. "
            "Try re-pairing the device."
        )
    if not isinstance(value, bool):
        raise LockdownError(
            f"Expected bool false or true when querying .{USES_24_HOUR_CLOCK_KEY}, "
            f"but received {type(value).__name__}:{value!r}. Is this device running iOS 11+?"
        )
    return value


def set_language(client: LockdownClient, config: LanguageConfiguration) -> None:
    """Set locale and language; empty fields are left unchanged.

    The device restarts its springboard asynchronously after a change.
    """
    if not config.locale and not config.language:
        log.debug("SetLanguage called with empty config, no changes made")
        return
    if config.locale:
        log.debug("Setting locale: %s", config.locale)
        client.set_value_for_domain("Locale", LANGUAGE_DOMAIN, config.locale)
    if config.language:
        log.debug("Setting language: %s", config.language)
        client.set_value_for_domain("Language", LANGUAGE_DOMAIN, config.language)


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise LockdownError(f"expected a list of strings, received {value!r}")
    return [str(item) for item in value]


def _string(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise LockdownError(f"expected a string for {key}, received {value!r}")
    return value


def get_language(client: LockdownClient) -> LanguageConfiguration:
    """Return the current language and locale and the supported ones."""
    language = client.get_value_for_domain("Language", LANGUAGE_DOMAIN)
    locale = client.get_value_for_domain("Locale", LANGUAGE_DOMAIN)
    supported_locales = client.get_value_for_domain("SupportedLocales", LANGUAGE_DOMAIN)
    supported_languages = client.get_value_for_domain("SupportedLanguages", LANGUAGE_DOMAIN)
    return LanguageConfiguration(
        language=_string(language, "Language"),
        locale=_string(locale, "Locale"),
        supported_locales=_string_list(supported_locales),
        supported_languages=_string_list(supported_languages),
    )


def set_time(client: LockdownClient, time_zone: str, timestamp: int) -> None:
    """Set the device clock to ``timestamp`` (Unix seconds) and its time zone."""
    client.set_value_for_domain("TimeIntervalSince1970", "", int(timestamp))
    client.set_value_for_domain("TimeZone", "", time_zone)


def set_system_time(client: LockdownClient) -> None:
    """Set the device clock to the host's current time."""
    set_time(client, DEFAULT_TIME_ZONE, int(time.time()))
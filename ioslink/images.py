"""Selecting and locating developer disk images for a device OS version."""

from __future__ import annotations

import logging
import os
from typing import Iterator, Optional

from packaging.version import Version

log = logging.getLogger(__name__)

IMAGE_FILE = "DeveloperDiskImage.dmg"
SIGNATURE_FILE = "DeveloperDiskImage.dmg.signature"

AVAILABLE_VERSIONS = (
    "4.2", "4.3", "5.0", "5.1", "6.0", "6.1", "7.0", "7.1", "8.0", "8.1", "8.2", "8.3",
    "8.4 (12H141)", "9.0 (13A340)", "9.1 (13B5110e)", "9.2 (13C75)", "9.3 (13E230)",
    "10.0 (14A345)", "10.1 (14B72)", "10.2 (14C5062c)", "10.3 (14E269)",
    "11.0 (15A372)", "11.1 (15B87)", "11.2 (15C5092b)", "11.3 (15E5178d)",
    "11.4 (15F5037c)", "12.0 (16A5288q)", "12.1 (16B5059d)", "12.2 (16E5191d)",
    "12.3 (16F148)", "12.4", "13.0", "13.1", "13.2", "13.3", "13.4", "13.5", "13.7",
    "14.0", "14.1", "14.2", "14.4", "14.5", "14.6", "14.7", "14.7.1", "14.8",
    "15.0", "15.1", "15.2", "15.3.1", "15.3", "15.4", "15.5", "15.6", "15.6.1", "15.7",
    "16.0", "16.1", "16.2", "16.3", "16.4", "16.4.1", "16.5", "16.6",
)


def _base_version(available: str) -> str:
    return available.split(" (")[0]


def match_available(version: str) -> str:
    """Return the available image version that best fits ``version``.

    An exact match wins; otherwise the highest available version below the
    requested one is chosen. Raises ValueError for an unparsable version.
    """
    log.debug("device version: %s ", version)
    requested = Version(version)
    best: Optional[Version] = None
    best_name = ""
    for available in AVAILABLE_VERSIONS:
        parsed = Version(_base_version(available))
        if parsed == requested:
            return available
        if best is None:
            best, best_name = parsed, available
            continue
        if best < parsed < requested:
            best, best_name = parsed, available
    log.debug("device version: %s bestMatch: %s", version, best)
    return best_name


def _walk(path: str) -> Iterator[str]:
    yield path
    if os.path.isdir(path) and not os.path.islink(path):
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name))


def find_image(directory: str, version: str) -> str:
    """Return the path of the image for ``version`` below ``directory``.

    When several paths match, the last one in lexical walk order is returned.
    Raises FileNotFoundError when there is none.
    """
    os.lstat(directory)
    wanted = os.path.join(version, IMAGE_FILE)
    found = ""
    for path in _walk(directory):
        if path.endswith(wanted):
            found = path
    if not found:
        raise FileNotFoundError("image not found")
    return found


def look_for_image(base_dir: str, version: str) -> Optional[str]:
    """Return the image path for ``version`` in ``base_dir``, or None.

    A missing ``base_dir`` is created.
    """
    if not os.path.exists(base_dir):
        os.makedirs(base_dir, mode=0o777, exist_ok=True)
        return None
    try:
        return find_image(base_dir, version)
    except OSError:
        return None
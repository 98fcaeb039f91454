import os

import pytest

from ioslink.images import (
    AVAILABLE_VERSIONS,
    IMAGE_FILE,
    find_image,
    look_for_image,
    match_available,
)


@pytest.mark.parametrize(
    "requested, expected",
    [
        ("11.2.5", "11.2 (15C5092b)"),
        ("12.2.5", "12.2 (16E5191d)"),
        ("13.6.1", "13.5"),
        ("14.7.1", "14.7.1"),
        ("15.3.1", "15.3.1"),
        ("15.4.1", "15.4"),
        ("15.7.2", "15.7"),
        ("19.4.1", "16.6"),
    ],
)
def test_version_matching(requested, expected):
    assert match_available(requested) == expected


def test_match_is_always_an_available_version():
    for requested in ("9.3.5", "10.0", "14.3", "16.4.1"):
        assert match_available(requested) in AVAILABLE_VERSIONS


def test_invalid_version_raises():
    with pytest.raises(ValueError):
        match_available("not a version")


def _make_image(base, version):
    directory = base / version
    directory.mkdir(parents=True)
    image = directory / IMAGE_FILE
    image.write_bytes(b"dmg")
    return str(image)


def test_find_image(tmp_path):
    expected = _make_image(tmp_path, "14.7.1")
    assert find_image(str(tmp_path), "14.7.1") == expected


def test_find_image_missing(tmp_path):
    _make_image(tmp_path, "14.7.1")
    with pytest.raises(FileNotFoundError):
        find_image(str(tmp_path), "15.0")


def test_find_image_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_image(str(tmp_path / "absent"), "15.0")


def test_look_for_image_creates_base_dir(tmp_path):
    base = tmp_path / "images"
    assert look_for_image(str(base), "15.0") is None
    assert os.path.isdir(base)


def test_look_for_image_finds_existing(tmp_path):
    expected = _make_image(tmp_path, "11.2 (15C5092b)")
    assert look_for_image(str(tmp_path), "11.2 (15C5092b)") == expected


def test_look_for_image_returns_none_when_absent(tmp_path):
    _make_image(tmp_path, "13.5")
    assert look_for_image(str(tmp_path), "16.6") is None
import pytest

from musebox.core.utils import format_duration, prepare_input, title_from_filename


@pytest.mark.parametrize("seconds, expected", [
    (0, "0:00"),
    (None, "0:00"),
    (float("nan"), "0:00"),
    (5, "0:05"),
    (59.9, "0:59"),
    (61, "1:01"),
    (3600, "60:00"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_prepare_input():
    assert prepare_input("  Beyoncé - Déjà   Vu! ") == "beyonce deja vu"
    assert prepare_input("Don't Stop") == "dont stop"


def test_title_from_filename():
    assert title_from_filename("/music/01 - Intro.flac") == "01 - Intro"
    assert title_from_filename("no_extension") == "no_extension"
    assert title_from_filename(".hidden") == ".hidden"

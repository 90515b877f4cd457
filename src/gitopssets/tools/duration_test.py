from datetime import timedelta

import pytest

from gitopssets.tools.duration import parse_duration


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("0", timedelta()),
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(hours=1, minutes=30)),
        ("250ms", timedelta(milliseconds=250)),
    ],
)
def test__parse_duration(value: str, expected: timedelta) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "5", "m", "5x", "5m garbage", "-5m"])
def test__parse_duration__rejects_invalid_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)

from datetime import timedelta

import pytest

from lockd.durations import to_microseconds, to_seconds
from lockd.exceptions import InvalidArgument


@pytest.mark.parametrize(
    "value,expected",
    [
        (0, 0),
        (10, 10_000_000),
        (8, 8_000_000),
        (1.5, 1_500_000),
        (0.000_01, 10),
        (0.000_004, 4),
        (0.000_000_4, 0),
        (0.000_000_5, 1),
        (0.000_002_5, 3),
        (0.0, 0),
        (timedelta(seconds=10), 10_000_000),
        (timedelta(seconds=9), 9_000_000),
        (timedelta(minutes=2), 120_000_000),
        (timedelta(days=1, hours=2, minutes=3, seconds=4, microseconds=5), 93_784_000_005),
        (timedelta(0), 0),
    ],
)
def test_to_microseconds(value, expected):
    assert to_microseconds(value) == expected


@pytest.mark.parametrize(
    "value",
    [-1, -0.5, -0.000_000_1, timedelta(seconds=-1), timedelta(microseconds=-1)],
)
def test_negative_durations_rejected(value):
    with pytest.raises(InvalidArgument):
        to_microseconds(value)


@pytest.mark.parametrize("value", [True, "10", None, float("nan"), float("inf")])
def test_unsupported_durations_rejected(value):
    with pytest.raises(InvalidArgument):
        to_microseconds(value)


def test_invalid_argument_is_a_value_error():
    with pytest.raises(ValueError):
        to_microseconds(-1)


def test_to_seconds():
    assert to_seconds(1_500_000) == 1.5
    assert to_seconds(0) == 0

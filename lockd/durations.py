"""Conversion of caller-supplied durations into wire microseconds."""

import math
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from lockd.exceptions import InvalidArgument

MICROSECONDS = 1_000_000

Duration = int | float | timedelta


def to_microseconds(value: Duration) -> int:
    """Return ``value`` as a non-negative integer count of microseconds.

    Numbers are read as seconds and rounded half up on the decimal value the
    caller wrote, so ``0.0000025`` becomes ``3``. A ``timedelta`` is converted
    exactly. Zero is passed through unchanged: on the wire it means "never
    expire" for a TTL and "do not wait" for a wait budget.
    """
    if isinstance(value, timedelta):
        micros = (value.days * 86_400 + value.seconds) * MICROSECONDS + value.microseconds
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f"Unsupported duration type: {type(value).__name__}")
    elif isinstance(value, int):
        micros = value * MICROSECONDS
    else:
        if not math.isfinite(value):
            raise InvalidArgument(f"Duration must be finite, got {value!r}")
        if value < 0:
            raise InvalidArgument(f"Duration must not be negative, got {value!r}")
        scaled = Decimal(repr(value)) * MICROSECONDS
        micros = int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    if micros < 0:
        raise InvalidArgument(f"Duration must not be negative, got {value!r}")
    return micros


def to_seconds(micros: int) -> float:
    return micros / MICROSECONDS

"""
Time Model

Conversion between wall-clock milliseconds and frame indices at a fixed
frame rate. All timeline placement goes through frames_at/ms_at so that
rounding happens once per conversion; never chain the two.

Rounding is half-up (2.5 -> 3), not Python's round-half-to-even.
"""

from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Union

DEFAULT_FPS = 30


def _round_half_up(value: Fraction) -> int:
    return int((Decimal(value.numerator) / Decimal(value.denominator)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    ))


def _check(value, fps) -> None:
    if value < 0:
        raise ValueError(f"time value must be non-negative, got {value}")
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")


def frames_at(ms: Union[int, float], fps: int = DEFAULT_FPS) -> int:
    """
    Frame index for a millisecond position: round(ms / 1000 * fps).

    Fractional milliseconds are converted exactly (Fraction of a float) and
    rounded once.

    Example:
        >>> frames_at(5000, 30)
        150
    """
    _check(ms, fps)
    return _round_half_up(Fraction(ms) * Fraction(fps) / 1000)


def ms_at(frame: int, fps: int = DEFAULT_FPS) -> int:
    """
    Millisecond position of a frame index: round(frame / fps * 1000).

    Example:
        >>> ms_at(150, 30)
        5000
    """
    _check(frame, fps)
    return _round_half_up(Fraction(frame) * 1000 / Fraction(fps))


def seconds_at(frame: int, fps: int = DEFAULT_FPS) -> float:
    """Frame index as seconds, for engine APIs that take seconds."""
    _check(frame, fps)
    return frame / fps

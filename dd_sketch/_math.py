"""Floating-point helpers used by the interpolated key mappings.

``frexp`` and ``ldexp`` let the mappings work directly on the binary
representation of a double (exponent + mantissa) instead of evaluating a
logarithm. ``ldexp`` saturates instead of raising so that the inverse mappings
behave like IEEE arithmetic at the top of the representable range.
"""
from __future__ import annotations

import math
from typing import Tuple

import numpy as np


def frexp(value: float) -> Tuple[float, int]:
    """Split ``value`` into ``(mantissa, exponent)`` with ``value == mantissa * 2**exponent``.

    ``0.5 <= abs(mantissa) < 1`` for every finite non-zero input, subnormals
    included. Zero, infinities and NaN are returned unchanged with a zero
    exponent.
    """
    if value == 0.0 or not math.isfinite(value):
        return value, 0
    return math.frexp(value)


def ldexp(mantissa: float, exponent: int) -> float:
    """Return ``mantissa * 2**exponent``, saturating to a signed infinity on overflow."""
    try:
        return math.ldexp(mantissa, int(exponent))
    except OverflowError:
        return math.copysign(math.inf, mantissa)


def cbrt(value: float) -> float:
    """Real cube root, negative for negative inputs."""
    return float(np.cbrt(value))

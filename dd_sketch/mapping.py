"""Mappings between positive values and integer bucket keys.

A mapping imposes the relative accuracy guarantee of the sketch: for every
``min_possible <= v <= max_possible``, ``value(key(v))`` is within
``relative_accuracy * v`` of ``v``. Buckets partition the positive reals into
ranges ``(gamma**(k-1), gamma**k]``.

Mappings trade the cost of computing a key against the number of keys needed
to cover a range of values:

  - :class:`LogarithmicMapping` is memory-optimal but evaluates a logarithm
    per insertion.
  - :class:`LinearlyInterpolatedMapping` reads the exponent from the binary
    representation of the double and interpolates ``log2`` linearly across the
    mantissa. Cheap, but needs ~44% more buckets.
  - :class:`CubicallyInterpolatedMapping` uses a cubic fit instead, which only
    needs ~1% more buckets than the logarithmic mapping at the same cost as the
    linear one. It is the default.
"""
from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ._math import cbrt, frexp, ldexp
from ._proto import IndexMappingProto
from .exceptions import IllegalArgumentError, InvalidAccuracyError, MalformedMessageError

_FLOAT64 = np.finfo(np.float64)


class Interpolation(enum.IntEnum):
    """Interpolation tag carried by the serialized mapping."""

    NONE = 0
    LINEAR = 1
    QUADRATIC = 2  # reserved by the wire format, no mapping implements it
    CUBIC = 3


class KeyMapping(ABC):
    """Base class of the value <-> key mappings.

    Args:
        relative_accuracy: the accuracy guarantee, "alpha" in the paper.
            Must satisfy ``0 < relative_accuracy < 1``.
        offset: shift applied to every key.
        gamma: overrides the growth factor derived from ``relative_accuracy``.
            Only used when rebuilding a mapping from its serialized form so the
            rebuilt mapping keeps the producer's exact ``gamma``.

    Attributes:
        gamma: base of the exponential buckets,
            ``(1 + relative_accuracy) / (1 - relative_accuracy)``.
        min_possible: smallest value distinguishable from zero.
        max_possible: largest value the mapping can handle.
    """

    interpolation: Interpolation

    def __init__(self, relative_accuracy: float, offset: float = 0.0, gamma: Optional[float] = None):
        if not 0.0 < relative_accuracy < 1.0:
            raise InvalidAccuracyError(
                f"relative_accuracy must be in (0, 1), got {relative_accuracy!r}"
            )
        if gamma is None:
            gamma = 1.0 + 2.0 * relative_accuracy / (1.0 - relative_accuracy)
        self.relative_accuracy = float(relative_accuracy)
        self.gamma = float(gamma)
        self._offset = float(offset)
        # 1 / ln(gamma), a function of gamma only. Strategies rescale it to
        # their own log approximation.
        self._multiplier = 1.0 / math.log1p(self.gamma - 1.0)
        self.min_possible = float(_FLOAT64.tiny) * self.gamma
        self.max_possible = float(_FLOAT64.max) / self.gamma

    @classmethod
    def from_gamma_offset(cls, gamma: float, offset: float) -> "KeyMapping":
        """Rebuild a mapping from the parameters carried by the wire format."""
        if not gamma > 1.0:
            raise IllegalArgumentError(f"gamma must be > 1, got {gamma!r}")
        relative_accuracy = (gamma - 1.0) / (gamma + 1.0)
        return cls(relative_accuracy, offset=offset, gamma=gamma)

    @property
    def offset(self) -> float:
        return self._offset

    @abstractmethod
    def _log_gamma(self, value: float) -> float:
        """(An approximation of) the logarithm of ``value`` base gamma."""

    @abstractmethod
    def _pow_gamma(self, value: float) -> float:
        """(An approximation of) gamma to the power ``value``."""

    def key(self, value: float) -> int:
        """The key of the bucket holding ``value``; non-decreasing in ``value``."""
        return int(math.ceil(self._log_gamma(value)) + self._offset)

    def value(self, key: int) -> float:
        """The representative value of bucket ``key``.

        The factor ``2 / (1 + gamma)`` centres the value inside the bucket so
        that the relative error is the same towards both bucket bounds.
        """
        return self._pow_gamma(key - self._offset) * (2.0 / (1.0 + self.gamma))

    def to_proto(self, key_shift: int = 0):
        """Encode as an ``IndexMapping``; ``key_shift`` is taken off the offset."""
        proto = IndexMappingProto()
        proto.gamma = self.gamma
        proto.indexOffset = self._offset - key_shift
        proto.interpolation = int(self.interpolation)
        return proto

    @staticmethod
    def from_proto(proto) -> "KeyMapping":
        """Decode an ``IndexMapping`` message into the matching strategy."""
        if not proto.HasField("gamma") or not proto.HasField("indexOffset"):
            raise MalformedMessageError("IndexMapping requires gamma and indexOffset")
        raw_tag = proto.interpolation if proto.HasField("interpolation") else Interpolation.NONE
        try:
            interpolation = Interpolation(raw_tag)
            cls = _MAPPINGS[interpolation]
        except (ValueError, KeyError):
            raise MalformedMessageError(f"unsupported interpolation {raw_tag!r}") from None
        try:
            return cls.from_gamma_offset(proto.gamma, proto.indexOffset)
        except IllegalArgumentError as exc:
            raise MalformedMessageError(str(exc)) from exc

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyMapping):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.gamma == other.gamma
            and self._offset == other._offset
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.gamma, self._offset))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(relative_accuracy={self.relative_accuracy!r}, "
            f"offset={self._offset!r})"
        )


class LogarithmicMapping(KeyMapping):
    """Memory-optimal mapping: keys are the ceiling of ``log_gamma(value)``."""

    interpolation = Interpolation.NONE

    def __init__(self, relative_accuracy: float, offset: float = 0.0, gamma: Optional[float] = None):
        super().__init__(relative_accuracy, offset=offset, gamma=gamma)
        self._multiplier *= math.log(2.0)

    def _log_gamma(self, value: float) -> float:
        return math.log2(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        # 2**x as 2**frac(x) * 2**floor(x); ldexp saturates past the float range.
        power = value / self._multiplier
        exponent = math.floor(power)
        return ldexp(2.0 ** (power - exponent), exponent)


class LinearlyInterpolatedMapping(KeyMapping):
    """Approximates ``log2`` by the line through the exact values at powers of two."""

    interpolation = Interpolation.LINEAR

    def __init__(self, relative_accuracy: float, offset: float = 0.0, gamma: Optional[float] = None):
        super().__init__(relative_accuracy, offset=offset, gamma=gamma)

    @staticmethod
    def _log2_approx(value: float) -> float:
        # v = m * 2**e with m in [0.5, 1), i.e. v = (s + 1) * 2**(e - 1), s in [0, 1)
        mantissa, exponent = frexp(value)
        significand = 2.0 * mantissa - 1.0
        return significand + (exponent - 1)

    @staticmethod
    def _exp2_approx(value: float) -> float:
        exponent = math.floor(value) + 1
        mantissa = (value - exponent + 2.0) / 2.0
        return ldexp(mantissa, exponent)

    def _log_gamma(self, value: float) -> float:
        return self._log2_approx(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        return self._exp2_approx(value / self._multiplier)


class CubicallyInterpolatedMapping(KeyMapping):
    """Approximates ``log2`` with a cubic polynomial of the significand.

    The coefficients make the polynomial match ``log2`` at both ends of each
    binade and keep the first derivative continuous across binades. The inverse
    solves the cubic in closed form with Cardano's formula.
    """

    interpolation = Interpolation.CUBIC

    A = 6.0 / 35.0
    B = -3.0 / 5.0
    C = 10.0 / 7.0

    def __init__(self, relative_accuracy: float, offset: float = 0.0, gamma: Optional[float] = None):
        super().__init__(relative_accuracy, offset=offset, gamma=gamma)
        self._multiplier /= self.C

    def _cubic_log2_approx(self, value: float) -> float:
        mantissa, exponent = frexp(value)
        significand = 2.0 * mantissa - 1.0
        return ((self.A * significand + self.B) * significand + self.C) * significand + (
            exponent - 1
        )

    def _cubic_exp2_approx(self, value: float) -> float:
        exponent = math.floor(value)
        delta_0 = self.B * self.B - 3.0 * self.A * self.C
        delta_1 = (
            2.0 * self.B * self.B * self.B
            - 9.0 * self.A * self.B * self.C
            - 27.0 * self.A * self.A * (value - exponent)
        )
        cardano = cbrt((delta_1 - math.sqrt(delta_1 * delta_1 - 4.0 * delta_0 * delta_0 * delta_0)) / 2.0)
        significand_plus_one = -(self.B + cardano + delta_0 / cardano) / (3.0 * self.A) + 1.0
        mantissa = significand_plus_one / 2.0
        return ldexp(mantissa, exponent + 1)

    def _log_gamma(self, value: float) -> float:
        return self._cubic_log2_approx(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        return self._cubic_exp2_approx(value / self._multiplier)


_MAPPINGS = {
    Interpolation.NONE: LogarithmicMapping,
    Interpolation.LINEAR: LinearlyInterpolatedMapping,
    Interpolation.CUBIC: CubicallyInterpolatedMapping,
}


def mapping_for(
    interpolation: Interpolation, relative_accuracy: float, offset: float = 0.0
) -> KeyMapping:
    """Instantiate the mapping strategy tagged by ``interpolation``."""
    try:
        cls = _MAPPINGS[Interpolation(interpolation)]
    except (ValueError, KeyError):
        raise IllegalArgumentError(f"unsupported interpolation {interpolation!r}") from None
    return cls(relative_accuracy, offset=offset)


__all__ = [
    "Interpolation",
    "KeyMapping",
    "LogarithmicMapping",
    "LinearlyInterpolatedMapping",
    "CubicallyInterpolatedMapping",
    "mapping_for",
]

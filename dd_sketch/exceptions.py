"""Exceptions raised by :mod:`dd_sketch`.

Argument and payload errors derive from :class:`ValueError` so callers that
only guard against the built-in error keep working.
"""
from __future__ import annotations


class DDSketchError(Exception):
    """Base class for every error raised by the sketch."""


class IllegalArgumentError(DDSketchError, ValueError):
    """A constructor or method argument is outside its valid domain."""


class InvalidAccuracyError(IllegalArgumentError):
    """``relative_accuracy`` is not in the open interval (0, 1)."""


class InvalidWeightError(IllegalArgumentError):
    """A non-positive weight was passed to :meth:`BaseDDSketch.accept`."""


class NotMergeableError(DDSketchError):
    """The sketches do not share the same ``gamma`` and cannot be merged."""


class MalformedMessageError(DDSketchError, ValueError):
    """A serialized sketch is missing required fields or cannot be parsed."""


__all__ = [
    "DDSketchError",
    "IllegalArgumentError",
    "InvalidAccuracyError",
    "InvalidWeightError",
    "NotMergeableError",
    "MalformedMessageError",
]

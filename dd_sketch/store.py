"""Stores map integer bucket keys to counters.

Every store keeps a contiguous window of bins plus an ``offset`` translating
keys into list indices (``index = key - offset``). The window grows in chunks
of ``chunk_size`` bins and is re-centred on the occupied key range whenever it
moves, so that later growth in either direction is amortised.

The collapsing variants cap the window at ``bin_limit`` bins. Once the key
range would need more bins, the bins at one end are folded into the boundary
bin: :class:`CollapsingLowestDenseStore` sacrifices the lowest keys (positive
values), :class:`CollapsingHighestDenseStore` the highest ones (magnitudes of
negative values). Collapsing cannot be undone.
"""
from __future__ import annotations

import copy
import logging
import math
from abc import ABC, abstractmethod
from typing import List

from ._proto import StoreProto
from .exceptions import IllegalArgumentError

log = logging.getLogger(__name__)

# ------------------------------ Tunable constants ------------------------------
CHUNK_SIZE = 128            # bins added per growth step
DEFAULT_BIN_LIMIT = 2048    # window cap of the collapsing stores


class Store(ABC):
    """Interface shared by all stores.

    Attributes:
        count: sum of the counts of all bins.
        min_key: smallest key with a (possibly collapsed) count, ``+inf`` when empty.
        max_key: largest key with a (possibly collapsed) count, ``-inf`` when empty.
    """

    def __init__(self) -> None:
        self.count = 0.0
        self.min_key = math.inf
        self.max_key = -math.inf

    @abstractmethod
    def copy(self, store: "Store") -> None:
        """Replace the content of this store with a deep copy of ``store``."""

    @abstractmethod
    def length(self) -> int:
        """The number of allocated bins."""

    @abstractmethod
    def add(self, key: int, weight: float = 1.0) -> None:
        """Add ``weight`` to the bin of ``key``, growing the bins if necessary."""

    @abstractmethod
    def key_at_rank(self, rank: float, lower: bool = True) -> int:
        """Return the key holding the value of (zero-based) ``rank``.

        With non-zero bins ``[1, 1]`` for keys ``a`` and ``b``::

            lower=True:   a for rank in [0, 1), b for rank in [1, 2)
            lower=False:  a for rank in (-1, 0], b for rank in (0, 1]
        """

    @abstractmethod
    def merge(self, store: "Store") -> None:
        """Add the content of ``store`` into this store; ``store`` is left untouched."""

    @abstractmethod
    def shifted(self, key_shift: int) -> "Store":
        """A read-only view of this store with every key moved by ``key_shift``."""

    @abstractmethod
    def to_proto(self, key_shift: int = 0):
        """Encode the store as a ``Store`` message, keys moved by ``-key_shift``."""

    def replay_proto(self, proto) -> None:
        """Add every non-empty bin of a ``Store`` message into this store."""
        for key, count in proto.binCounts.items():
            if count > 0:
                self.add(key, count)
        for index, count in enumerate(proto.contiguousBinCounts):
            if count > 0:
                self.add(proto.contiguousBinIndexOffset + index, count)


class DenseStore(Store):
    """Unbounded store keeping every bin between ``min_key`` and ``max_key``.

    Args:
        chunk_size: number of bins to grow by.

    Attributes:
        offset: key of ``bins[0]``.
        bins: per-key counters.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        super().__init__()
        if int(chunk_size) != chunk_size or chunk_size < 1:
            raise IllegalArgumentError(f"chunk_size must be a positive integer, got {chunk_size!r}")
        self.chunk_size = int(chunk_size)
        self.offset = 0
        self.bins: List[float] = []

    def __repr__(self) -> str:
        occupied = ", ".join(
            f"{index + self.offset}: {count}" for index, count in enumerate(self.bins) if count
        )
        return (
            f"{type(self).__name__}({{{occupied}}}, min_key={self.min_key}, "
            f"max_key={self.max_key}, offset={self.offset})"
        )

    def copy(self, store: "DenseStore") -> None:
        self.bins = list(store.bins)
        self.offset = store.offset
        self.count = store.count
        self.min_key, self.max_key = store.min_key, store.max_key

    def length(self) -> int:
        return len(self.bins)

    # ------------------------------- Public API --------------------------------
    def add(self, key: int, weight: float = 1.0) -> None:
        self.bins[self._slot(key)] += weight
        self.count += weight

    def key_at_rank(self, rank: float, lower: bool = True) -> int:
        threshold = rank if lower else rank + 1
        seen = 0.0
        for index, bin_count in enumerate(self.bins):
            seen += bin_count
            if seen > threshold or (not lower and seen == threshold):
                return index + self.offset
        return self.max_key

    def merge(self, store: "DenseStore") -> None:
        if not store.count:
            return
        if not self.count:
            self.copy(store)
            return

        self._cover(min(self.min_key, store.min_key), max(self.max_key, store.max_key))
        for index, bin_count in enumerate(store.bins):
            if bin_count:
                self.bins[self._clamp(index + store.offset) - self.offset] += bin_count
        self.count += store.count

    def shifted(self, key_shift: int) -> "DenseStore":
        # Shares ``bins`` with this store; merge and copy only read it.
        view = copy.copy(self)
        view.offset += key_shift
        view.min_key += key_shift
        view.max_key += key_shift
        return view

    def to_proto(self, key_shift: int = 0):
        proto = StoreProto()
        if not self.count:
            proto.contiguousBinIndexOffset = 0
            return proto
        first, last = self.min_key - self.offset, self.max_key - self.offset
        proto.contiguousBinIndexOffset = self.min_key - key_shift
        proto.contiguousBinCounts.extend(self.bins[first : last + 1])
        return proto

    # ------------------------------- Internals ---------------------------------
    def _slot(self, key: int) -> int:
        """Index of the bin counting ``key``, moving the window if needed."""
        if not self.min_key <= key <= self.max_key:
            self._cover(min(key, self.min_key), max(key, self.max_key))
        return self._clamp(key) - self.offset

    def _clamp(self, key: int) -> int:
        """The key whose bin counts ``key``; only collapsing stores redirect."""
        return key

    def _window_length(self, span: int) -> int:
        return self.chunk_size * math.ceil(span / self.chunk_size)

    def _cover(self, low: int, high: int) -> None:
        """Make ``[low, high]`` addressable and record it as the occupied range."""
        if self.bins and self.offset <= low and high < self.offset + len(self.bins):
            self.min_key, self.max_key = low, high
            return

        needed = self._window_length(high - low + 1)
        if needed > len(self.bins):
            self.bins.extend([0.0] * (needed - len(self.bins)))
        middle = low + (high - low + 1) // 2
        self._rebase(middle - len(self.bins) // 2)
        self.min_key, self.max_key = low, high

    def _rebase(self, new_offset: int) -> None:
        """Move the window so that ``bins[0]`` holds key ``new_offset``.

        Non-zero bins must lie inside both the old and the new window.
        """
        shift = self.offset - new_offset
        size = len(self.bins)
        if abs(shift) >= size:
            self.bins = [0.0] * size
        elif shift > 0:
            self.bins = [0.0] * shift + self.bins[: size - shift]
        elif shift < 0:
            self.bins = self.bins[-shift:] + [0.0] * -shift
        self.offset = new_offset


class _CollapsingDenseStore(DenseStore):
    """Dense store whose window never exceeds ``bin_limit`` bins."""

    def __init__(self, bin_limit: int = DEFAULT_BIN_LIMIT, chunk_size: int = CHUNK_SIZE) -> None:
        super().__init__(chunk_size=chunk_size)
        if isinstance(bin_limit, bool) or int(bin_limit) != bin_limit or bin_limit < 1:
            raise IllegalArgumentError(f"bin_limit must be a positive integer, got {bin_limit!r}")
        self.bin_limit = int(bin_limit)
        self.is_collapsed = False

    def __repr__(self) -> str:
        return f"{super().__repr__()[:-1]}, bin_limit={self.bin_limit}, is_collapsed={self.is_collapsed})"

    def copy(self, store: "_CollapsingDenseStore") -> None:
        super().copy(store)
        self.bin_limit = store.bin_limit
        self.is_collapsed = store.is_collapsed

    def _window_length(self, span: int) -> int:
        return min(super()._window_length(span), self.bin_limit)

    def _cover(self, low: int, high: int) -> None:
        if high - low + 1 <= self.bin_limit:
            super()._cover(low, high)
            return
        if len(self.bins) < self.bin_limit:
            self.bins.extend([0.0] * (self.bin_limit - len(self.bins)))
        self._fold(low, high)
        if not self.is_collapsed:
            log.debug(
                "%s reached bin_limit=%d, collapsing keys outside [%s, %s]",
                type(self).__name__,
                self.bin_limit,
                self.min_key,
                self.max_key,
            )
        self.is_collapsed = True

    def _take(self, first: int, last: int) -> float:
        """Zero the bins of keys ``first..last`` (window-clipped) and return their total."""
        first, last = max(first, self.min_key), min(last, self.max_key)
        if first > last:
            return 0.0
        start, stop = first - self.offset, last - self.offset + 1
        total = sum(self.bins[start:stop])
        self.bins[start:stop] = [0.0] * (stop - start)
        return total

    @abstractmethod
    def _fold(self, low: int, high: int) -> None:
        """Fit ``[low, high]`` into ``bin_limit`` bins, folding the sacrificed end."""


class CollapsingLowestDenseStore(_CollapsingDenseStore):
    """Bounded dense store collapsing the lowest keys into the lowest bin.

    Args:
        bin_limit: the maximum number of bins.
        chunk_size: number of bins to grow by.
    """

    def _slot(self, key: int) -> int:
        if key < self.min_key and self.is_collapsed:
            return 0
        return super()._slot(key)

    def _clamp(self, key: int) -> int:
        return max(key, self.min_key)

    def _fold(self, low: int, high: int) -> None:
        # Keep the top bin_limit keys; bins[0] becomes the lowest one.
        kept_low = high - self.bin_limit + 1
        folded = self._take(low, kept_low - 1)
        self._rebase(kept_low)
        self.bins[0] += folded
        self.min_key, self.max_key = kept_low, high


class CollapsingHighestDenseStore(_CollapsingDenseStore):
    """Bounded dense store collapsing the highest keys into the highest bin.

    Args:
        bin_limit: the maximum number of bins.
        chunk_size: number of bins to grow by.
    """

    def _slot(self, key: int) -> int:
        if key > self.max_key and self.is_collapsed:
            return len(self.bins) - 1
        return super()._slot(key)

    def _clamp(self, key: int) -> int:
        return min(key, self.max_key)

    def _fold(self, low: int, high: int) -> None:
        # Keep the bottom bin_limit keys; bins[-1] becomes the highest one.
        kept_high = low + self.bin_limit - 1
        folded = self._take(kept_high + 1, high)
        self._rebase(low)
        self.bins[-1] += folded
        self.min_key, self.max_key = low, kept_high


__all__ = [
    "CHUNK_SIZE",
    "DEFAULT_BIN_LIMIT",
    "Store",
    "DenseStore",
    "CollapsingLowestDenseStore",
    "CollapsingHighestDenseStore",
]

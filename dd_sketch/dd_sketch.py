# DDSketch: streaming quantiles with a relative-error guarantee (Python)
# - Pluggable key mapping (logarithmic, linear or cubic interpolation)
# - Bounded memory through collapsing dense stores
# - Signed values: positive store, negative store and a zero bucket
# - Weighted ingestion, merge, protobuf-compatible serialization
# Python 3.9+

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Tuple

from google.protobuf.message import DecodeError

from ._proto import DDSketchProto
from .exceptions import (
    IllegalArgumentError,
    InvalidWeightError,
    MalformedMessageError,
    NotMergeableError,
)
from .mapping import Interpolation, KeyMapping, LogarithmicMapping, mapping_for
from .store import (
    DEFAULT_BIN_LIMIT,
    CollapsingHighestDenseStore,
    CollapsingLowestDenseStore,
    Store,
)

log = logging.getLogger(__name__)

DEFAULT_REL_ACC = 0.01  # "alpha" in the paper

# Range of the sint32 key fields of the Store message.
_SINT32_MIN = -(2**31)
_SINT32_MAX = 2**31 - 1


class BaseDDSketch:
    """
    DDSketch with an explicit mapping and explicit stores.

    Paper:
      - Masson, Rim and Lee. "DDSketch: A Fast and Fully-Mergeable Quantile
        Sketch with Relative-Error Guarantees." VLDB 2019.

    Strategy (high level):
      - The mapping sends a positive value ``v`` to the integer key
        ``ceil(log_gamma(v))``; every value of a bucket is within
        ``relative_accuracy`` of the bucket's representative value.
      - Positive values are counted in ``store``, negative values in
        ``negative_store`` (keyed by their magnitude), and values too close to
        zero for the mapping in ``zero_count``.
      - A quantile is answered by locating its rank among the three
        partitions: negatives (in reverse key order), the zero bucket, then
        positives.

    Sketches are mergeable iff their mappings share the same ``gamma``; the
    other sketch's keys are moved onto this sketch's mapping offset. Merge
    is associative and commutative (up to floating point rounding) so the
    intended way to scale ingestion is one sketch per writer, merged later.
    A sketch is not safe for concurrent mutation.

    Public API:
      accept(x, weight=1) / add, extend(xs), get_value_at_quantile(q) / quantile,
      quantiles_at(qs), median(), merge(other), mergeable(other), copy(other),
      to_proto(), to_bytes(), from_proto(), from_bytes()
    """

    __slots__ = ("mapping", "store", "negative_store", "zero_count", "_count", "_sum", "_min", "_max")

    def __init__(
        self,
        mapping: KeyMapping,
        store: Store,
        negative_store: Store,
        zero_count: float = 0.0,
    ) -> None:
        self.mapping = mapping
        self.store = store
        self.negative_store = negative_store
        self.zero_count = zero_count

        self._count = self.negative_store.count + self.zero_count + self.store.count
        self._sum = 0.0
        self._min = math.inf
        self._max = -math.inf

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(mapping={self.mapping!r}, store={self.store!r}, "
            f"negative_store={self.negative_store!r}, zero_count={self.zero_count}, "
            f"count={self._count}, sum={self._sum}, min={self._min}, max={self._max})"
        )

    # ----------------------------- Summary stats ------------------------------
    @property
    def relative_accuracy(self) -> float:
        return self.mapping.relative_accuracy

    @property
    def count(self) -> float:
        """Total weight of the values added to the sketch."""
        return self._count

    @property
    def num_values(self) -> float:
        return self._count

    @property
    def sum(self) -> float:
        """Exact (weighted) sum of the values added to the sketch."""
        return self._sum

    @property
    def avg(self) -> float:
        """Exact (weighted) mean, NaN for an empty sketch."""
        if self._count == 0:
            return math.nan
        return self._sum / self._count

    @property
    def min(self) -> float:
        return self._min

    @property
    def max(self) -> float:
        return self._max

    # ------------------------------- Public API --------------------------------
    def accept(self, value: float, weight: float = 1.0) -> None:
        """Add ``value`` with a positive (possibly fractional) ``weight``."""
        if not weight > 0.0:
            raise InvalidWeightError(f"weight must be > 0, got {weight!r}")

        if value > self.mapping.min_possible:
            self.store.add(self.mapping.key(value), weight)
        elif value < -self.mapping.min_possible:
            self.negative_store.add(self.mapping.key(-value), weight)
        else:
            self.zero_count += weight

        self._count += weight
        self._sum += value * weight
        if value < self._min:
            self._min = value
        if value > self._max:
            self._max = value

    add = accept

    def extend(self, values: Iterable[float]) -> None:
        for value in values:
            self.accept(value)

    def get_value_at_quantile(self, quantile: float) -> float:
        """Approximate value at ``quantile``; NaN if out of [0, 1] or the sketch is empty."""
        if not 0.0 <= quantile <= 1.0 or self._count == 0:
            return math.nan

        rank = quantile * (self._count - 1)
        negative_count = self.negative_store.count
        if rank < negative_count:
            reversed_rank = negative_count - rank - 1
            key = self.negative_store.key_at_rank(reversed_rank, lower=False)
            return -self.mapping.value(key)
        if rank < self.zero_count + negative_count:
            return 0.0
        key = self.store.key_at_rank(rank - self.zero_count - negative_count)
        return self.mapping.value(key)

    quantile = get_value_at_quantile

    def quantiles_at(self, quantiles: Iterable[float]) -> List[float]:
        return [self.get_value_at_quantile(q) for q in quantiles]

    def median(self) -> float:
        return self.get_value_at_quantile(0.5)

    def mergeable(self, other: "BaseDDSketch") -> bool:
        """Two sketches can be merged only if their gammas are equal."""
        return self.mapping.gamma == other.mapping.gamma

    def merge(self, other: "BaseDDSketch") -> None:
        """Fold ``other`` into this sketch; ``other`` is not modified."""
        if not self.mergeable(other):
            raise NotMergeableError(
                f"cannot merge sketches with gamma {self.mapping.gamma!r} and {other.mapping.gamma!r}"
            )

        if other.count == 0:
            return

        if self._count == 0:
            self.copy(other)
            return

        store, negative_store = self._aligned_stores(other)
        self.store.merge(store)
        self.negative_store.merge(negative_store)
        self.zero_count += other.zero_count

        self._count += other.count
        self._sum += other.sum
        if other.min < self._min:
            self._min = other.min
        if other.max > self._max:
            self._max = other.max

    def copy(self, other: "BaseDDSketch") -> None:
        """Replace the content of this sketch with a deep copy of ``other``.

        This sketch keeps its own mapping; ``other``'s keys are moved to it.
        """
        store, negative_store = self._aligned_stores(other)
        self.store.copy(store)
        self.negative_store.copy(negative_store)
        self.zero_count = other.zero_count
        self._count = other.count
        self._sum = other.sum
        self._min = other.min
        self._max = other.max

    # ----------------------------- Serialization -------------------------------
    def to_proto(self):
        """Encode the mapping, both stores and the zero count as a ``DDSketch`` message.

        ``min``, ``max`` and ``sum`` are not part of the wire format. Keys are
        ``sint32`` on the wire: when the occupied keys fall outside that range
        they are re-based around their midpoint and the mapping offset is
        written with the same shift, so decoders see identical values.

        Raises:
            IllegalArgumentError: the occupied keys span more than the
                ``sint32`` range and cannot be re-based.
        """
        key_shift = self._wire_key_shift()
        proto = DDSketchProto()
        proto.mapping.CopyFrom(self.mapping.to_proto(key_shift))
        proto.positiveValues.CopyFrom(self.store.to_proto(key_shift))
        proto.negativeValues.CopyFrom(self.negative_store.to_proto(key_shift))
        proto.zeroCount = self.zero_count
        return proto

    def to_bytes(self) -> bytes:
        return self.to_proto().SerializeToString()

    @classmethod
    def from_proto(cls, proto, bin_limit: Optional[int] = None) -> "BaseDDSketch":
        """Rebuild a sketch from a ``DDSketch`` message.

        The stores are collapsing dense stores with ``bin_limit`` bins (default
        2048). The decoded sketch keeps the bins, the zero count and therefore
        the quantiles and ``count``, but not ``min``, ``max`` or ``sum``, which
        the wire format does not carry: they read ``+inf``, ``-inf`` and ``0``.
        """
        if not proto.HasField("mapping"):
            raise MalformedMessageError("DDSketch message has no mapping")
        mapping = KeyMapping.from_proto(proto.mapping)

        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT
        store = CollapsingLowestDenseStore(bin_limit)
        negative_store = CollapsingHighestDenseStore(bin_limit)
        for field, target in (("positiveValues", store), ("negativeValues", negative_store)):
            if not proto.HasField(field):
                raise MalformedMessageError(f"DDSketch message has no {field}")
            _check_store_proto(field, getattr(proto, field))
            target.replay_proto(getattr(proto, field))

        zero_count = proto.zeroCount
        if not zero_count >= 0.0:
            raise MalformedMessageError(f"zeroCount must be >= 0, got {zero_count!r}")

        sketch = cls.__new__(cls)
        BaseDDSketch.__init__(sketch, mapping, store, negative_store, zero_count)
        return sketch

    @classmethod
    def from_bytes(cls, payload: bytes, bin_limit: Optional[int] = None) -> "BaseDDSketch":
        """Rehydrate a sketch from :meth:`to_bytes` output (see :meth:`from_proto`)."""
        try:
            proto = DDSketchProto.FromString(payload)
        except DecodeError as exc:
            raise MalformedMessageError(f"cannot parse DDSketch message: {exc}") from exc
        sketch = cls.from_proto(proto, bin_limit=bin_limit)
        log.debug(
            "decoded %s from %d bytes: count=%s, gamma=%r",
            type(sketch).__name__,
            len(payload),
            sketch.count,
            sketch.mapping.gamma,
        )
        return sketch

    # ------------------------------- Internals ---------------------------------
    def _aligned_stores(self, other: "BaseDDSketch") -> Tuple[Store, Store]:
        """``other``'s stores with keys expressed in this sketch's mapping."""
        # key = ceil(log_gamma(v)) + offset, so equal gammas differ by the offsets only.
        key_shift = int(self.mapping.offset - other.mapping.offset)
        if not key_shift:
            return other.store, other.negative_store
        return other.store.shifted(key_shift), other.negative_store.shifted(key_shift)

    def _wire_key_shift(self) -> int:
        occupied = [s for s in (self.store, self.negative_store) if s.count]
        if not occupied:
            return 0
        low = min(s.min_key for s in occupied)
        high = max(s.max_key for s in occupied)
        if _SINT32_MIN <= low and high <= _SINT32_MAX:
            return 0
        if high - low > _SINT32_MAX - _SINT32_MIN - 1:
            raise IllegalArgumentError(
                f"keys [{low}, {high}] span more than the sint32 wire range"
            )
        return low + (high - low) // 2


class DDSketch(BaseDDSketch):
    """The default sketch: cubically interpolated mapping and bounded stores.

    Positive values go to a :class:`CollapsingLowestDenseStore` and negative
    values to a :class:`CollapsingHighestDenseStore`, both limited to
    ``bin_limit`` bins. Both stores collapse the buckets holding the smallest
    values (small positive magnitudes, large negative magnitudes), so
    collapsing only ever degrades the lowest quantiles. For the default limit
    and ``relative_accuracy=0.01`` it does not happen unless the data spans an
    extreme range of magnitudes.

    Args:
        relative_accuracy: accuracy guarantee in (0, 1), default 0.01.
        bin_limit: maximum number of bins per store, default 2048.
        interpolation: mapping strategy, default :attr:`Interpolation.CUBIC`.
    """

    __slots__ = ()

    def __init__(
        self,
        relative_accuracy: Optional[float] = None,
        bin_limit: Optional[int] = None,
        interpolation: Interpolation = Interpolation.CUBIC,
    ) -> None:
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT

        mapping = mapping_for(interpolation, relative_accuracy)
        super().__init__(
            mapping=mapping,
            store=CollapsingLowestDenseStore(bin_limit),
            negative_store=CollapsingHighestDenseStore(bin_limit),
            zero_count=0.0,
        )


class LogCollapsingLowestDenseDDSketch(BaseDDSketch):
    """Logarithmic mapping, both stores collapsing their lowest keys.

    Memory-optimal but slower to ingest than :class:`DDSketch`. Once
    ``bin_limit`` is reached the high quantiles of the negative values and the
    low quantiles of the positive values lose their accuracy.
    """

    __slots__ = ()

    def __init__(self, relative_accuracy: Optional[float] = None, bin_limit: Optional[int] = None) -> None:
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT
        super().__init__(
            mapping=LogarithmicMapping(relative_accuracy),
            store=CollapsingLowestDenseStore(bin_limit),
            negative_store=CollapsingLowestDenseStore(bin_limit),
        )


class LogCollapsingHighestDenseDDSketch(BaseDDSketch):
    """Logarithmic mapping, both stores collapsing their highest keys.

    Once ``bin_limit`` is reached the accuracy is lost on the largest
    magnitudes: the highest positive and the lowest negative quantiles.
    """

    __slots__ = ()

    def __init__(self, relative_accuracy: Optional[float] = None, bin_limit: Optional[int] = None) -> None:
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT
        super().__init__(
            mapping=LogarithmicMapping(relative_accuracy),
            store=CollapsingHighestDenseStore(bin_limit),
            negative_store=CollapsingHighestDenseStore(bin_limit),
        )


def _check_store_proto(field: str, proto) -> None:
    if not proto.HasField("contiguousBinIndexOffset") and (
        len(proto.contiguousBinCounts) or not len(proto.binCounts)
    ):
        raise MalformedMessageError(f"{field} has no contiguousBinIndexOffset")
    for count in proto.contiguousBinCounts:
        if not count >= 0.0:
            raise MalformedMessageError(f"{field} holds an invalid bin count {count!r}")
    for count in proto.binCounts.values():
        if not count >= 0.0:
            raise MalformedMessageError(f"{field} holds an invalid bin count {count!r}")


__all__ = [
    "BaseDDSketch",
    "DDSketch",
    "LogCollapsingLowestDenseDDSketch",
    "LogCollapsingHighestDenseDDSketch",
    "DEFAULT_REL_ACC",
]

"""Deterministic accuracy and API tests for :mod:`dd_sketch`."""
from __future__ import annotations

import math
import random
import sys
from collections import Counter

import pytest

from dd_sketch import (
    BaseDDSketch,
    CollapsingHighestDenseStore,
    CollapsingLowestDenseStore,
    CubicallyInterpolatedMapping,
    DDSketch,
    Interpolation,
    InvalidAccuracyError,
    InvalidWeightError,
    LinearlyInterpolatedMapping,
    LogarithmicMapping,
    LogCollapsingHighestDenseDDSketch,
    LogCollapsingLowestDenseDDSketch,
    NotMergeableError,
)

from sketch_datasets import DATASETS, TEST_QUANTILES, assert_relative_accuracy, exact_quantile

RELATIVE_ACCURACY = 0.05
TEST_SIZES = [3, 5, 10, 100, 1_000, 5_000]

SKETCH_FACTORIES = {
    "cubic": lambda: DDSketch(RELATIVE_ACCURACY),
    "linear": lambda: DDSketch(RELATIVE_ACCURACY, interpolation=Interpolation.LINEAR),
    "logarithmic": lambda: DDSketch(RELATIVE_ACCURACY, interpolation=Interpolation.NONE),
    "log_collapsing_lowest": lambda: LogCollapsingLowestDenseDDSketch(RELATIVE_ACCURACY),
    "log_collapsing_highest": lambda: LogCollapsingHighestDenseDDSketch(RELATIVE_ACCURACY),
}


@pytest.fixture(params=sorted(SKETCH_FACTORIES))
def make_sketch(request):
    return SKETCH_FACTORIES[request.param]


@pytest.mark.parametrize("dataset", sorted(DATASETS))
@pytest.mark.parametrize("size", TEST_SIZES)
def test_dataset_accuracy(make_sketch, dataset: str, size: int) -> None:
    values = DATASETS[dataset](size)
    sketch = make_sketch()
    sketch.extend(values)

    assert sketch.count == size
    assert_relative_accuracy(sketch, values)


def test_default_construction() -> None:
    sketch = DDSketch()
    assert sketch.relative_accuracy == 0.01
    assert isinstance(sketch.mapping, CubicallyInterpolatedMapping)
    assert isinstance(sketch.store, CollapsingLowestDenseStore)
    assert isinstance(sketch.negative_store, CollapsingHighestDenseStore)
    assert sketch.store.bin_limit == 2048
    assert sketch.negative_store.bin_limit == 2048

    values = DATASETS["increasing"](5)
    sketch.extend(values)
    assert_relative_accuracy(sketch, values)


@pytest.mark.parametrize(
    "interpolation, mapping_cls",
    [
        (Interpolation.NONE, LogarithmicMapping),
        (Interpolation.LINEAR, LinearlyInterpolatedMapping),
        (Interpolation.CUBIC, CubicallyInterpolatedMapping),
    ],
)
def test_interpolation_selects_mapping(interpolation, mapping_cls) -> None:
    assert type(DDSketch(interpolation=interpolation).mapping) is mapping_cls


def test_presets_use_logarithmic_mapping() -> None:
    lowest = LogCollapsingLowestDenseDDSketch(bin_limit=64)
    highest = LogCollapsingHighestDenseDDSketch(bin_limit=64)
    assert type(lowest.mapping) is LogarithmicMapping
    assert type(highest.mapping) is LogarithmicMapping
    assert isinstance(lowest.negative_store, CollapsingLowestDenseStore)
    assert isinstance(highest.store, CollapsingHighestDenseStore)
    assert lowest.store.bin_limit == 64


def test_median_of_first_hundred_integers() -> None:
    sketch = DDSketch(relative_accuracy=0.05)
    sketch.extend(range(100))
    median = sketch.median()
    assert abs(median - 49) <= 0.05 * 49 + 1e-15


def test_integer_weights_match_repeats() -> None:
    values = DATASETS["random_integers"](100)
    weighted = DDSketch(RELATIVE_ACCURACY)
    for value, count in Counter(values).items():
        weighted.accept(value, count)

    repeated = DDSketch(RELATIVE_ACCURACY)
    repeated.extend(values)

    assert weighted.count == repeated.count == len(values)
    assert weighted.quantiles_at(TEST_QUANTILES) == repeated.quantiles_at(TEST_QUANTILES)
    assert_relative_accuracy(weighted, values)


def test_decimal_weights() -> None:
    sketch = DDSketch(RELATIVE_ACCURACY)
    for value in DATASETS["increasing"](100):
        sketch.accept(value, 1.1)
    sketch.accept(100.0, 110.0)

    median = sketch.get_value_at_quantile(0.5)
    assert abs(median - 99) - RELATIVE_ACCURACY * 99 <= 1e-15
    assert sketch.count == pytest.approx(220.0)
    assert sketch.sum == pytest.approx(5445.0 + 11000.0)
    assert sketch.avg == pytest.approx(74.75)


def test_add_is_an_alias_of_accept() -> None:
    sketch = DDSketch()
    sketch.add(3.0)
    sketch.add(4.0, weight=2.0)
    assert sketch.count == 3.0
    assert sketch.quantile(1.0) == pytest.approx(4.0, rel=0.01)


def test_empty_sketch() -> None:
    sketch = DDSketch()
    assert sketch.count == 0
    assert math.isnan(sketch.get_value_at_quantile(0.5))
    assert math.isnan(sketch.median())
    assert math.isnan(sketch.avg)
    assert sketch.min == math.inf
    assert sketch.max == -math.inf
    assert sketch.sum == 0


@pytest.mark.parametrize("quantile", [-0.1, 1.1, -math.inf, math.inf, math.nan])
def test_out_of_range_quantile_is_nan(quantile: float) -> None:
    sketch = DDSketch()
    sketch.extend([1.0, 2.0, 3.0])
    assert math.isnan(sketch.get_value_at_quantile(quantile))


@pytest.mark.parametrize("weight", [0.0, -1.0, math.nan, -math.inf])
def test_invalid_weight_leaves_sketch_unchanged(weight: float) -> None:
    sketch = DDSketch()
    sketch.extend([-2.0, 0.0, 5.0])
    before = (sketch.count, sketch.sum, sketch.zero_count, sketch.store.count, sketch.negative_store.count)

    with pytest.raises(InvalidWeightError):
        sketch.accept(7.0, weight)
    with pytest.raises(ValueError):
        sketch.accept(0.0, weight)

    after = (sketch.count, sketch.sum, sketch.zero_count, sketch.store.count, sketch.negative_store.count)
    assert after == before


@pytest.mark.parametrize("relative_accuracy", [0.0, 1.0, -0.5, 2.0])
def test_invalid_relative_accuracy(relative_accuracy: float) -> None:
    with pytest.raises(InvalidAccuracyError):
        DDSketch(relative_accuracy)
    with pytest.raises(InvalidAccuracyError):
        LogCollapsingLowestDenseDDSketch(relative_accuracy)


def test_summary_statistics() -> None:
    sketch = DDSketch()
    sketch.extend([-3.0, 0.0, 2.5, 10.0])
    assert sketch.count == 4
    assert sketch.num_values == 4
    assert sketch.sum == 9.5
    assert sketch.avg == 2.375
    assert sketch.min == -3.0
    assert sketch.max == 10.0


def test_zero_band_returns_exact_zero() -> None:
    sketch = DDSketch()
    sketch.extend([0.0, 0.0, 1e-320, -1e-320, 5.0])
    assert sketch.zero_count == 4
    assert sketch.get_value_at_quantile(0.0) == 0.0
    assert sketch.get_value_at_quantile(0.5) == 0.0
    assert sketch.get_value_at_quantile(1.0) == pytest.approx(5.0, rel=0.01)


def test_negative_values_keep_their_order() -> None:
    sketch = DDSketch(RELATIVE_ACCURACY)
    values = [-float(i) for i in range(1, 101)]
    sketch.extend(values)
    estimates = sketch.quantiles_at([0.0, 0.25, 0.5, 0.75, 1.0])
    assert estimates == sorted(estimates)
    assert estimates[0] == pytest.approx(-100.0, rel=RELATIVE_ACCURACY)
    assert estimates[-1] == pytest.approx(-1.0, rel=RELATIVE_ACCURACY)
    assert_relative_accuracy(sketch, values)


def test_quantiles_are_monotone() -> None:
    rng = random.Random(3)
    sketch = DDSketch()
    sketch.extend(rng.gauss(0.0, 100.0) for _ in range(10_000))
    quantiles = [i / 200 for i in range(201)]
    estimates = sketch.quantiles_at(quantiles)
    assert estimates == sorted(estimates)


@pytest.mark.parametrize("size", TEST_SIZES)
def test_merge_alternating_split(make_sketch, size: int) -> None:
    values = DATASETS["increasing"](size)
    left, right = make_sketch(), make_sketch()
    for i, value in enumerate(values):
        (left if i % 2 == 0 else right).accept(value)

    left.merge(right)
    assert left.count == size
    assert left.min == min(values)
    assert left.max == max(values)
    assert_relative_accuracy(left, values)


def test_merge_matches_single_sketch() -> None:
    rng = random.Random(5)
    values = [rng.uniform(-1_000.0, 1_000.0) for _ in range(3_000)]
    parts = [DDSketch() for _ in range(3)]
    whole = DDSketch()
    for i, value in enumerate(values):
        parts[i % 3].accept(value)
        whole.accept(value)

    merged = DDSketch()
    for part in parts:
        merged.merge(part)

    assert merged.count == whole.count
    assert merged.sum == pytest.approx(whole.sum)
    assert merged.quantiles_at(TEST_QUANTILES) == whole.quantiles_at(TEST_QUANTILES)


def test_merge_into_empty_sketch_is_a_deep_copy() -> None:
    source = DDSketch(RELATIVE_ACCURACY)
    source.extend(DATASETS["positive_and_negative"](100))
    target = DDSketch(RELATIVE_ACCURACY)
    target.merge(source)

    assert target.count == source.count
    assert target.min == source.min
    assert target.max == source.max
    assert target.quantiles_at(TEST_QUANTILES) == source.quantiles_at(TEST_QUANTILES)

    target.accept(1e6)
    assert source.count == 100
    assert source.max == 49.0


def test_merge_does_not_modify_argument() -> None:
    data1 = DATASETS["uniform"](100)
    data2 = DATASETS["uniform"](50)
    sketch1 = DDSketch(RELATIVE_ACCURACY)
    sketch2 = DDSketch(RELATIVE_ACCURACY)
    sketch1.extend(data1)

    sketch1.merge(sketch2)
    assert_relative_accuracy(sketch1, data1)
    assert sketch2.count == 0

    sketch2.extend(data2)
    sketch2.merge(sketch1)
    sketch1.accept(100_000.0)

    assert sketch2.count == 150
    assert_relative_accuracy(sketch2, data1 + data2)


def test_merge_with_empty_sketch_is_a_no_op() -> None:
    sketch = DDSketch()
    sketch.extend([1.0, 2.0])
    sketch.merge(DDSketch())
    assert sketch.count == 2
    assert sketch.min == 1.0


def test_merge_requires_same_gamma() -> None:
    sketch = DDSketch(0.01)
    other = DDSketch(0.02)
    other.accept(1.0)
    assert not sketch.mergeable(other)
    with pytest.raises(NotMergeableError):
        sketch.merge(other)
    assert sketch.count == 0


def _sketch_with_offset(offset: float, values) -> BaseDDSketch:
    sketch = BaseDDSketch(
        mapping=CubicallyInterpolatedMapping(RELATIVE_ACCURACY, offset=offset),
        store=CollapsingLowestDenseStore(),
        negative_store=CollapsingHighestDenseStore(),
    )
    sketch.extend(values)
    return sketch


@pytest.mark.parametrize("offset", [-250.0, 100.0])
def test_merge_across_mapping_offsets(offset: float) -> None:
    local_values = [float(i) for i in range(1, 101)]
    other_values = [float(-i) for i in range(1, 51)] + [float(i) for i in range(50, 151)]
    sketch = DDSketch(RELATIVE_ACCURACY)
    sketch.extend(local_values)
    other = _sketch_with_offset(offset, other_values)

    assert sketch.mergeable(other)
    sketch.merge(other)

    assert sketch.mapping.offset == 0.0
    assert sketch.count == len(local_values) + len(other_values)
    assert_relative_accuracy(sketch, local_values + other_values)
    assert other.store.min_key == other.mapping.key(50.0)


@pytest.mark.parametrize("offset", [-250.0, 100.0])
def test_merge_into_empty_sketch_across_mapping_offsets(offset: float) -> None:
    other = _sketch_with_offset(offset, [50.0, -3.0])
    sketch = DDSketch(RELATIVE_ACCURACY)
    sketch.merge(other)

    assert sketch.quantile(1.0) == pytest.approx(50.0, rel=RELATIVE_ACCURACY)
    assert sketch.quantile(0.0) == pytest.approx(-3.0, rel=RELATIVE_ACCURACY)
    # Keys now follow the receiver's mapping: 50.0 lands in the merged bin.
    sketch.accept(50.0)
    assert sketch.store.count == 2
    assert sketch.store.min_key == sketch.store.max_key == sketch.mapping.key(50.0)


def test_copy_across_mapping_offsets() -> None:
    other = _sketch_with_offset(100.0, [2.0, 8.0, -4.0])
    clone = DDSketch(RELATIVE_ACCURACY)
    clone.copy(other)
    assert clone.quantiles_at(TEST_QUANTILES) == pytest.approx(
        other.quantiles_at(TEST_QUANTILES), rel=1e-12
    )


@pytest.mark.parametrize(
    "factory", [DDSketch, LogCollapsingLowestDenseDDSketch, LogCollapsingHighestDenseDDSketch]
)
def test_largest_float_is_queryable(factory) -> None:
    sketch = factory(0.01)
    sketch.accept(sys.float_info.max)

    for q in (0.0, 0.5, 1.0):
        estimate = sketch.get_value_at_quantile(q)
        assert estimate == math.inf or estimate == pytest.approx(sys.float_info.max, rel=0.01)
    assert DDSketch.from_bytes(sketch.to_bytes()).count == 1


def test_copy_is_independent() -> None:
    source = DDSketch()
    source.extend([-5.0, 0.0, 5.0])
    clone = DDSketch()
    clone.copy(source)
    clone.accept(50.0)

    assert source.count == 3
    assert clone.count == 4
    assert source.quantile(1.0) == pytest.approx(5.0, rel=0.01)


def test_positive_store_collapses_lowest_values() -> None:
    rng = random.Random(9)
    values = [10.0 ** rng.uniform(-10.0, 10.0) for _ in range(5_000)]
    sketch = DDSketch(relative_accuracy=0.01, bin_limit=50)
    sketch.extend(values)

    assert sketch.store.is_collapsed
    assert sketch.store.length() <= 50
    assert sketch.count == len(values)
    assert_relative_accuracy(sketch, values, quantiles=[0.99, 0.999, 1.0])
    assert sketch.get_value_at_quantile(0.0) > min(values)


def test_negative_store_collapses_largest_magnitudes() -> None:
    rng = random.Random(10)
    values = [-(10.0 ** rng.uniform(-10.0, 10.0)) for _ in range(5_000)]
    sketch = DDSketch(relative_accuracy=0.01, bin_limit=50)
    sketch.extend(values)

    assert sketch.negative_store.is_collapsed
    assert sketch.negative_store.length() <= 50
    assert_relative_accuracy(sketch, values, quantiles=[0.99, 0.999, 1.0])
    assert sketch.get_value_at_quantile(0.0) > exact_quantile(values, 0.0)


def test_log_collapsing_highest_keeps_low_quantiles() -> None:
    rng = random.Random(11)
    values = [10.0 ** rng.uniform(-10.0, 10.0) for _ in range(5_000)]
    sketch = LogCollapsingHighestDenseDDSketch(relative_accuracy=0.01, bin_limit=50)
    sketch.extend(values)

    assert sketch.store.is_collapsed
    assert_relative_accuracy(sketch, values, quantiles=[0.0, 0.001, 0.01])
    assert sketch.get_value_at_quantile(1.0) < max(values)


def test_repr_mentions_class_and_count() -> None:
    sketch = DDSketch()
    sketch.accept(1.0)
    text = repr(sketch)
    assert text.startswith("DDSketch(")
    assert "count=1.0" in text

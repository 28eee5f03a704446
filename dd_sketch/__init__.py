"""dd_sketch package public API."""
from ._metadata import __version__
from .dd_sketch import (
    DEFAULT_REL_ACC,
    BaseDDSketch,
    DDSketch,
    LogCollapsingHighestDenseDDSketch,
    LogCollapsingLowestDenseDDSketch,
)
from .exceptions import (
    DDSketchError,
    IllegalArgumentError,
    InvalidAccuracyError,
    InvalidWeightError,
    MalformedMessageError,
    NotMergeableError,
)
from .mapping import (
    CubicallyInterpolatedMapping,
    Interpolation,
    KeyMapping,
    LinearlyInterpolatedMapping,
    LogarithmicMapping,
    mapping_for,
)
from .store import (
    DEFAULT_BIN_LIMIT,
    CollapsingHighestDenseStore,
    CollapsingLowestDenseStore,
    DenseStore,
    Store,
)

__all__ = [
    "BaseDDSketch",
    "DDSketch",
    "LogCollapsingLowestDenseDDSketch",
    "LogCollapsingHighestDenseDDSketch",
    "DEFAULT_REL_ACC",
    "DEFAULT_BIN_LIMIT",
    "KeyMapping",
    "LogarithmicMapping",
    "LinearlyInterpolatedMapping",
    "CubicallyInterpolatedMapping",
    "Interpolation",
    "mapping_for",
    "Store",
    "DenseStore",
    "CollapsingLowestDenseStore",
    "CollapsingHighestDenseStore",
    "DDSketchError",
    "IllegalArgumentError",
    "InvalidAccuracyError",
    "InvalidWeightError",
    "NotMergeableError",
    "MalformedMessageError",
    "__version__",
]

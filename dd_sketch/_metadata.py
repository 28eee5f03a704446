"""Project metadata, read by ``dd_sketch.__version__`` and the in-tree build backend.

Kept free of third-party imports: the backend loads this module before numpy
or protobuf are available.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

PYTHON_VERSIONS = ("3.9", "3.10", "3.11", "3.12")

RUNTIME_REQUIREMENTS: List[str] = [
    "numpy>=1.22",
    "protobuf>=4.22",
]

EXTRAS: Dict[str, List[str]] = {
    # Benchmark scripts under benchmarks/ and tests/bench.
    "bench": ["numpy>=1.22", "pandas>=2.0", "matplotlib>=3.7", "pytest-benchmark>=4.0"],
    "test": ["pytest>=7.4", "hypothesis>=6.88", "pytest-cov>=4.1"],
}


@dataclass(frozen=True)
class Author:
    name: str
    email: Optional[str] = None


PROJECT_METADATA: Mapping[str, object] = {
    "name": "dd-sketch",
    "version": "1.0.0",
    "summary": "DDSketch streaming quantile sketch with relative-error guarantees (mergeable, bounded, protobuf-serializable)",
    "readme": {"path": _PROJECT_ROOT / "README.md", "content_type": "text/markdown"},
    "requires_python": f">={PYTHON_VERSIONS[0]}",
    "license": {"text": "Apache-2.0", "files": ["LICENSE"]},
    "authors": [Author(name="dd-sketch contributors")],
    "keywords": ["ddsketch", "quantiles", "percentiles", "relative-error", "streaming", "latency"],
    "classifiers": [
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3 :: Only",
        *(f"Programming Language :: Python :: {version}" for version in PYTHON_VERSIONS),
        "Topic :: System :: Monitoring",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
    "dependencies": RUNTIME_REQUIREMENTS,
    "optional-dependencies": EXTRAS,
}

__version__ = PROJECT_METADATA["version"]  # type: ignore[index]

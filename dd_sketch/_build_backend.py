"""Self-contained PEP 517 / PEP 660 backend with no build-time dependencies.

``pyproject.toml`` loads this file as a top-level module through
``backend-path = ["dd_sketch"]`` so that building never imports the
``dd_sketch`` package itself (and therefore never needs numpy or protobuf in
the isolated build environment).

Wheels are written in one pass: every archive member is hashed as it is added
and the ``RECORD`` is emitted last.
"""
from __future__ import annotations

import base64
import hashlib
import io
import tarfile
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Tuple
from zipfile import ZIP_DEFLATED, ZipFile

from _metadata import PROJECT_METADATA

PROJECT_ROOT = Path(__file__).resolve().parent.parent
IMPORT_NAME = "dd_sketch"
NAME: str = PROJECT_METADATA["name"]  # type: ignore[assignment]
VERSION: str = PROJECT_METADATA["version"]  # type: ignore[assignment]
DIST_NAME = NAME.replace("-", "_")
DIST_INFO = f"{DIST_NAME}-{VERSION}.dist-info"
WHEEL_TAG = "py3-none-any"

SDIST_FILES = ("README.md", "LICENSE", "pyproject.toml")
SDIST_TREES = (IMPORT_NAME, "benchmarks", "tests")
_SKIPPED_SUFFIXES = (".pyc", ".pyo", ".swp")

ConfigSettings = Optional[Mapping[str, object]]


# ------------------------------- Metadata ------------------------------------
def _header_fields() -> Iterator[Tuple[str, str]]:
    meta = PROJECT_METADATA
    yield "Metadata-Version", "2.1"
    yield "Name", NAME
    yield "Version", VERSION
    if meta.get("summary"):
        yield "Summary", meta["summary"]  # type: ignore[misc]
    for author in meta.get("authors", []):  # type: ignore[union-attr]
        yield "Author", author.name
        if author.email:
            yield "Author-email", f"{author.name} <{author.email}>"
    if meta.get("requires_python"):
        yield "Requires-Python", meta["requires_python"]  # type: ignore[misc]
    keywords = meta.get("keywords", [])
    if keywords:
        yield "Keywords", ",".join(keywords)  # type: ignore[arg-type]
    for classifier in meta.get("classifiers", []):  # type: ignore[union-attr]
        yield "Classifier", classifier
    for label, url in meta.get("urls", {}).items():  # type: ignore[union-attr]
        yield "Project-URL", f"{label}, {url}"
    license_info = meta.get("license", {})
    if license_info.get("text"):  # type: ignore[union-attr]
        yield "License", license_info["text"]  # type: ignore[index]
    for requirement in meta.get("dependencies", []):  # type: ignore[union-attr]
        yield "Requires-Dist", requirement
    for extra, requirements in meta.get("optional-dependencies", {}).items():  # type: ignore[union-attr]
        yield "Provides-Extra", extra
        for requirement in requirements:
            yield "Requires-Dist", f"{requirement}; extra == '{extra}'"
    yield "Description-Content-Type", meta["readme"]["content_type"]  # type: ignore[index]


def metadata_text() -> str:
    """The core metadata file (``METADATA`` / ``PKG-INFO``) with the README as body."""
    readme = Path(PROJECT_METADATA["readme"]["path"])  # type: ignore[index]
    body = readme.read_text(encoding="utf-8") if readme.exists() else ""
    header = "".join(f"{key}: {value}\n" for key, value in _header_fields())
    return f"{header}\n{body}"


def _wheel_text() -> str:
    return (
        "Wheel-Version: 1.0\n"
        "Generator: dd-sketch in-tree backend\n"
        "Root-Is-Purelib: true\n"
        f"Tag: {WHEEL_TAG}\n"
    )


def _license_files() -> List[Path]:
    names = PROJECT_METADATA.get("license", {}).get("files", [])  # type: ignore[union-attr]
    return [PROJECT_ROOT / name for name in names if (PROJECT_ROOT / name).is_file()]


def _source_files(tree: Path) -> Iterator[Path]:
    for path in sorted(tree.rglob("*")):
        if not path.is_file() or "__pycache__" in path.parts or path.suffix in _SKIPPED_SUFFIXES:
            continue
        yield path


# --------------------------------- Wheel -------------------------------------
class _WheelWriter:
    """Zip writer that keeps the ``RECORD`` entry of every member it adds."""

    def __init__(self, wheel_directory: str) -> None:
        self.filename = f"{DIST_NAME}-{VERSION}-{WHEEL_TAG}.whl"
        self._zip = ZipFile(Path(wheel_directory) / self.filename, "w", ZIP_DEFLATED)
        self._records: List[str] = []

    def add(self, arcname: str, data: bytes) -> None:
        digest = base64.urlsafe_b64encode(hashlib.sha256(data).digest()).decode().rstrip("=")
        self._records.append(f"{arcname},sha256={digest},{len(data)}")
        self._zip.writestr(arcname, data)

    def add_tree(self, tree: Path) -> None:
        for path in _source_files(tree):
            self.add(path.relative_to(tree.parent).as_posix(), path.read_bytes())

    def finish(self) -> str:
        self.add(f"{DIST_INFO}/METADATA", metadata_text().encode("utf-8"))
        self.add(f"{DIST_INFO}/WHEEL", _wheel_text().encode("utf-8"))
        for license_file in _license_files():
            self.add(f"{DIST_INFO}/{license_file.name}", license_file.read_bytes())
        self._records.append(f"{DIST_INFO}/RECORD,,")
        self._zip.writestr(f"{DIST_INFO}/RECORD", "\n".join(self._records) + "\n")
        self._zip.close()
        return self.filename


def build_wheel(
    wheel_directory: str,
    config_settings: ConfigSettings = None,
    metadata_directory: Optional[str] = None,
) -> str:
    writer = _WheelWriter(wheel_directory)
    writer.add_tree(PROJECT_ROOT / IMPORT_NAME)
    return writer.finish()


def build_editable(
    wheel_directory: str,
    config_settings: ConfigSettings = None,
    metadata_directory: Optional[str] = None,
) -> str:
    writer = _WheelWriter(wheel_directory)
    # Puts the source checkout on sys.path.
    writer.add(f"_{DIST_NAME}_editable.pth", f"{PROJECT_ROOT}\n".encode("utf-8"))
    return writer.finish()


def prepare_metadata_for_build_wheel(metadata_directory: str, config_settings: ConfigSettings = None) -> str:
    dist_info = Path(metadata_directory) / DIST_INFO
    dist_info.mkdir(parents=True, exist_ok=True)
    (dist_info / "METADATA").write_text(metadata_text(), encoding="utf-8")
    (dist_info / "WHEEL").write_text(_wheel_text(), encoding="utf-8")
    return dist_info.name


prepare_metadata_for_build_editable = prepare_metadata_for_build_wheel


def get_requires_for_build_wheel(config_settings: ConfigSettings = None) -> List[str]:
    return []


get_requires_for_build_editable = get_requires_for_build_wheel
get_requires_for_build_sdist = get_requires_for_build_wheel


# --------------------------------- Sdist -------------------------------------
def build_sdist(sdist_directory: str, config_settings: ConfigSettings = None) -> str:
    base = f"{DIST_NAME}-{VERSION}"
    filename = f"{base}.tar.gz"
    members = [PROJECT_ROOT / name for name in SDIST_FILES if (PROJECT_ROOT / name).is_file()]
    for tree in SDIST_TREES:
        if (PROJECT_ROOT / tree).is_dir():
            members.extend(_source_files(PROJECT_ROOT / tree))

    with tarfile.open(Path(sdist_directory) / filename, "w:gz", format=tarfile.PAX_FORMAT) as tar:
        pkg_info = metadata_text().encode("utf-8")
        info = tarfile.TarInfo(f"{base}/PKG-INFO")
        info.size = len(pkg_info)
        tar.addfile(info, io.BytesIO(pkg_info))
        for path in members:
            tar.add(path, arcname=f"{base}/{path.relative_to(PROJECT_ROOT).as_posix()}", recursive=False)
    return filename

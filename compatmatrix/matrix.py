"""Compatibility matrix lookup and loading.

Matrix documents live in ``<matrix package>/versions/`` and are named
``{decorator}-{core}.json`` with dots replaced by underscores, e.g.
``3_12_0-3_12_0.json``. Each maps a package name to one allowed version
specifier or a list of them, in ascending order.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

from compatmatrix.config import DEFAULT_CORE_PACKAGE, DEFAULT_DECORATOR_PACKAGE, DEFAULT_MATRIX_PACKAGE
from compatmatrix.errors import MatrixParseError
from compatmatrix.reporting import NullReporter, Reporter, escape

VERSIONS_DIR = "versions"

CompatibilityMatrix = dict[str, list[str]]


def matrix_filename(decorator_version: str, core_version: str) -> str:
    return f"{decorator_version.replace('.', '_')}-{core_version.replace('.', '_')}.json"


class MatrixLocator:
    """Finds the matrix document for a (decorator, core) version pair."""

    def __init__(
        self,
        base_dir: str | Path,
        reporter: Reporter | None = None,
        core_package: str = DEFAULT_CORE_PACKAGE,
        decorator_package: str = DEFAULT_DECORATOR_PACKAGE,
        matrix_package: str = DEFAULT_MATRIX_PACKAGE,
    ):
        self.base_dir = Path(base_dir)
        self.reporter = reporter or NullReporter()
        self.core_package = core_package
        self.decorator_package = decorator_package
        self.matrix_package = matrix_package

    def candidates(self, core_version: str, decorator_version: str | None = None) -> list[Path]:
        """Ordered candidate paths: the exact pair, then the core paired with itself."""
        # Since the decorator package was merged into core the two versions move together
        decorator_version = decorator_version or core_version
        versions_dir = self.base_dir / VERSIONS_DIR
        paths = [versions_dir / matrix_filename(decorator_version, core_version)]
        fallback = versions_dir / matrix_filename(core_version, core_version)
        if fallback != paths[0]:
            paths.append(fallback)
        return paths

    def locate(self, core_version: str, decorator_version: str | None = None) -> Path | None:
        for path in self.candidates(core_version, decorator_version):
            if path.exists():
                return path

        self.reporter.info("*" * 50)
        self.reporter.error(
            f">> Current version {escape(self.decorator_package)}({escape(decorator_version or core_version)}) "
            f"and {escape(self.core_package)}({escape(core_version)}) not found in "
            f"{escape(self.matrix_package)}, please check it."
        )
        self.reporter.info("*" * 50)
        return None


def normalize_entry(value: str | list[str] | tuple[str, ...]) -> list[str]:
    """Turn a matrix entry into a list of specifiers."""
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def merge_overrides(
    matrix: Mapping[str, str | list[str]],
    overrides: Mapping[str, str | list[str]] | None = None,
) -> CompatibilityMatrix:
    """Normalised copy of *matrix* with *overrides* applied on top."""
    merged = {name: normalize_entry(value) for name, value in matrix.items()}
    for name, value in (overrides or {}).items():
        merged[name] = normalize_entry(value)
    return merged


def load_matrix(
    path: str | Path,
    overrides: Mapping[str, str | list[str]] | None = None,
) -> CompatibilityMatrix:
    """Read a matrix document and merge caller overrides into it."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise MatrixParseError(f"Compatibility matrix {path} cannot be read: {e}") from e
    except ValueError as e:
        raise MatrixParseError(f"Compatibility matrix {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MatrixParseError(f"Compatibility matrix {path} must be a JSON object")

    return merge_overrides(data, overrides)

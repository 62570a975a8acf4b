"""Installed-version lookup in the local dependency store (node_modules)."""

from __future__ import annotations

import json
import os
from pathlib import Path


class VersionResolver:
    """Reads the version of an installed package from its package.json.

    Lookups are never cached: every call hits the filesystem, so a package
    installed between two calls is seen by the second one.
    """

    def __init__(self, base_dir: str | Path | None = None, node_path: str | None = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        if node_path is None:
            node_path = os.environ.get("NODE_PATH", "")
        self.extra_paths = [Path(p) for p in node_path.split(os.pathsep) if p]

    def resolve(self, package_name: str) -> str | None:
        """Installed version of *package_name*, or ``None`` if it is not installed."""
        version = self.resolve_local(package_name)
        if version is None:
            version = self.resolve_path(package_name)
        return version

    def resolve_local(self, package_name: str) -> str | None:
        """Look only in ``<base_dir>/node_modules``."""
        return _read_version(self.base_dir / "node_modules" / package_name / "package.json")

    def resolve_path(self, package_name: str) -> str | None:
        """Look along the resolution path: ancestor node_modules, then NODE_PATH."""
        pkg_dir = self._search(package_name, self._resolution_path())
        if pkg_dir is None:
            return None
        return _read_version(pkg_dir / "package.json")

    def package_dir(self, package_name: str) -> Path | None:
        """Directory the package is installed in, searching local store first."""
        local = self.base_dir / "node_modules"
        return self._search(package_name, [local] + self._resolution_path())

    def read_package_json(self, package_name: str) -> dict | None:
        pkg_dir = self.package_dir(package_name)
        if pkg_dir is None:
            return None
        return _read_json(pkg_dir / "package.json")

    def _resolution_path(self) -> list[Path]:
        base = self.base_dir.resolve()
        return [parent / "node_modules" for parent in base.parents] + self.extra_paths

    @staticmethod
    def _search(package_name: str, roots: list[Path]) -> Path | None:
        for root in roots:
            candidate = root / package_name
            if (candidate / "package.json").is_file():
                return candidate
        return None


def _read_json(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _read_version(path: Path) -> str | None:
    data = _read_json(path)
    if not data:
        return None
    version = data.get("version")
    return version if isinstance(version, str) and version else None

"""Run-time settings, read once from the process environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from compatmatrix.errors import CompatMatrixError

DEFAULT_CORE_PACKAGE = "@midwayjs/core"
DEFAULT_DECORATOR_PACKAGE = "@midwayjs/decorator"
DEFAULT_MATRIX_PACKAGE = "@midwayjs/version"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Everything the runner needs to know about the environment."""

    project_root: Path
    user_agent: str = ""
    core_package: str = DEFAULT_CORE_PACKAGE
    decorator_package: str = DEFAULT_DECORATOR_PACKAGE
    matrix_package: str = DEFAULT_MATRIX_PACKAGE
    npm_client: str = "npm"
    skip_fetch: bool = False
    is_npx_run: bool = False

    @classmethod
    def from_env(
        cls,
        cwd: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        env = os.environ if environ is None else environ
        root = Path(cwd) if cwd else Path.cwd()
        return cls(
            project_root=root,
            user_agent=env.get("npm_config_user_agent", ""),
            npm_client=env.get("COMPATMATRIX_NPM_CLIENT", "npm") or "npm",
            skip_fetch=env.get("COMPATMATRIX_SKIP_FETCH", "").lower() in _TRUTHY,
            is_npx_run=_installed_outside(root),
        )

    @property
    def manifest_path(self) -> Path:
        return self.project_root / "package.json"


def _installed_outside(project_root: Path) -> bool:
    """True when this tool is not installed inside the project (e.g. run via npx/pipx)."""
    here = Path(__file__).resolve()
    try:
        here.relative_to(project_root.resolve())
    except ValueError:
        return True
    return False


def load_overrides(path: str | Path | None) -> dict[str, str | list[str]]:
    """Load a caller override mapping from a YAML (or JSON) file.

    The file must hold a mapping of package name to a version specifier or
    a list of specifiers. Specifiers must be strings; an unquoted YAML number
    such as ``1.10`` is rejected rather than read as ``1.1``. An empty file
    yields an empty mapping.
    """
    if not path:
        return {}

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CompatMatrixError(f"Overrides file {path} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CompatMatrixError(f"Overrides file {path} must contain a mapping")

    overrides: dict[str, str | list[str]] = {}
    for name, value in data.items():
        if isinstance(value, list):
            overrides[str(name)] = [_specifier(path, name, v) for v in value]
        else:
            overrides[str(name)] = _specifier(path, name, value)
    return overrides


def _specifier(path, name, value) -> str:
    # YAML reads an unquoted 1.10 as the float 1.1
    if not isinstance(value, str):
        raise CompatMatrixError(
            f"Overrides file {path}: version {value!r} for {name} must be a quoted string"
        )
    return value

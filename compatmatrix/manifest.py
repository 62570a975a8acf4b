"""package.json handling — declared dependency lookup and version rewriting.

Edits are applied to an in-memory copy and only written back once every
planned change has been computed, so a failure never leaves a half-edited
package.json behind.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path

from compatmatrix.errors import ManifestParseError, MissingPrerequisite
from compatmatrix.models import DeclaredDependency, DependencyClass, Discrepancy, PlanOptions

RANGE_PREFIXES = ("^", "~")


def rewrite_specifier(old: str, new: str, retain_prefix: bool = True) -> str:
    """New specifier for a dependency moving from *old* to version *new*.

    ``^``/``~`` are carried over when *retain_prefix* is set; anything else
    (``>=``, ``*``, tags, ...) is replaced by the bare version.
    """
    if old == new:
        return old

    if retain_prefix and old.startswith(RANGE_PREFIXES):
        return f"{old[0]}{new}"

    return new


def strip_prefix(specifier: str) -> str:
    if specifier.startswith(RANGE_PREFIXES):
        return specifier[1:]
    return specifier


class Manifest:
    """A parsed package.json with typed access to its two dependency groups."""

    def __init__(self, data: dict, path: str | Path | None = None):
        self.data = data
        self.path = Path(path) if path else None

    @classmethod
    def load(cls, path: str | Path) -> "Manifest":
        path = Path(path)
        if not path.exists():
            raise MissingPrerequisite(">> Package.json not found in current cwd, please check it.")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseError(">> Package.json read error, please check it.") from e
        return cls.from_text(text, path)

    @classmethod
    def from_text(cls, text: str, path: str | Path | None = None) -> "Manifest":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ManifestParseError(">> Package.json parse error, please check it.") from e
        if not isinstance(data, dict):
            raise ManifestParseError(">> Package.json parse error, please check it.")
        return cls(data, path)

    def group(self, dep_class: DependencyClass) -> dict:
        deps = self.data.get(dep_class.value)
        return deps if isinstance(deps, dict) else {}

    def get(self, name: str) -> DeclaredDependency | None:
        """The declaration of *name*; ``dependencies`` wins over ``devDependencies``."""
        for dep_class in DependencyClass:
            specifier = self.group(dep_class).get(name)
            if specifier:
                return DeclaredDependency(name=name, specifier=specifier, dep_class=dep_class)
        return None

    def upsert(self, name: str, specifier: str, dep_class: DependencyClass) -> None:
        """Set *name* to *specifier* inside the given dependency group."""
        deps = self.data.get(dep_class.value)
        if not isinstance(deps, dict):
            deps = {}
            self.data[dep_class.value] = deps
        deps[name] = specifier

    def copy(self) -> "Manifest":
        return Manifest(copy.deepcopy(self.data), self.path)

    def to_json(self) -> str:
        return json.dumps(self.data, indent=2, ensure_ascii=False) + "\n"

    def save(self, path: str | Path | None = None) -> Path:
        target = Path(path) if path else self.path
        if target is None:
            raise ValueError("Manifest has no path to save to")
        target.write_text(self.to_json(), encoding="utf-8")
        return target


@dataclass
class EditResult:
    """Outcome of applying an upgrade plan to a manifest."""

    manifest: Manifest
    install_specs: list[str] = field(default_factory=list)
    needs_lock_refresh: bool = False


class ManifestEditor:
    """Applies planned version changes to package.json."""

    def apply(
        self,
        manifest: Manifest,
        plan: list[Discrepancy],
        options: PlanOptions,
    ) -> EditResult:
        """Return an edited copy of *manifest*; the original is left untouched."""
        updated = manifest.copy()
        result = EditResult(manifest=updated, needs_lock_refresh=options.has_lockfile)

        for item in plan:
            declared = updated.get(item.name)
            if declared is None and not options.include_undeclared:
                continue

            result.install_specs.append(item.install_spec)

            # Force-included packages go to the lockfile refresh but are not added to package.json
            if declared is None:
                continue

            new_spec = rewrite_specifier(declared.specifier, item.latest_version, options.retain_prefix)
            updated.upsert(item.name, new_spec, declared.dep_class)

        return result

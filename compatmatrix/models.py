"""Data models for version reconciliation — discrepancies, declared deps, policies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResolutionPolicy(Enum):
    """How upgrade targets are written back to the manifest."""

    EXACT = "exact"  # -u: newest matrix entry, keep ^/~ prefixes
    COMPATIBLE = "compatible"  # -m: keep prefixes only when a lockfile pins them


class DependencyClass(Enum):
    """The manifest section a dependency is declared in."""

    REGULAR = "dependencies"
    DEVELOPMENT = "devDependencies"


class DiscrepancyKind:
    MANIFEST_ONLY = "manifest_only"  # Installed copy is fine, manifest string is stale
    FULL = "full"  # Installed copy and manifest are both stale
    PIN = "pin"  # Core package pinned because no lockfile exists


@dataclass
class DeclaredDependency:
    """A dependency as written in package.json."""

    name: str
    specifier: str
    dep_class: DependencyClass = DependencyClass.REGULAR


@dataclass
class Discrepancy:
    """A package whose installed or declared version is off-matrix.

    The checker fills ``allowed``; the planner fills ``latest_version``.
    """

    name: str
    current: str
    allowed: list[str] = field(default_factory=list)
    latest_version: str = ""
    kind: str = ""
    forced: bool = False  # Not declared in package.json, included by --include-pkg-not-exists

    @property
    def install_spec(self) -> str:
        return f"{self.name}@{self.latest_version}"


@dataclass
class PlanOptions:
    """Run-time options for the upgrade planner and manifest editor."""

    policy: ResolutionPolicy = ResolutionPolicy.EXACT
    include_undeclared: bool = False
    has_lockfile: bool = False

    @property
    def is_compatible(self) -> bool:
        return self.policy is ResolutionPolicy.COMPATIBLE

    @property
    def retain_prefix(self) -> bool:
        """Exact mode always keeps ^/~; compatible mode only when a lockfile exists."""
        if self.is_compatible:
            return self.has_lockfile
        return True

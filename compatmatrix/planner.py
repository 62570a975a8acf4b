"""Upgrade planning — the write path.

For every matrix package that is installed (and declared, unless
undeclared packages are force-included) the planner decides whether the
manifest, the installed copy, or both are behind the newest matrix entry.

The newest entry is simply the last one in the list; matrix documents
list allowed versions in ascending order.
"""

from __future__ import annotations

from typing import Mapping

from compatmatrix.config import DEFAULT_CORE_PACKAGE
from compatmatrix.manifest import Manifest, strip_prefix
from compatmatrix.matrix import CompatibilityMatrix, MatrixLocator, load_matrix
from compatmatrix.models import Discrepancy, DiscrepancyKind, PlanOptions
from compatmatrix.reporting import NullReporter, Reporter, escape
from compatmatrix.resolver import VersionResolver


class UpgradePlanner:
    """Computes which packages need a manifest edit, a reinstall, or both."""

    def __init__(
        self,
        resolver: VersionResolver,
        locator: MatrixLocator,
        reporter: Reporter | None = None,
        core_package: str = DEFAULT_CORE_PACKAGE,
    ):
        self.resolver = resolver
        self.locator = locator
        self.reporter = reporter or NullReporter()
        self.core_package = core_package

    def plan(
        self,
        core_version: str,
        manifest: Manifest,
        overrides: Mapping[str, str | list[str]] | None = None,
        options: PlanOptions | None = None,
        decorator_version: str | None = None,
        current_core_version: str | None = None,
    ) -> list[Discrepancy] | None:
        """Plan upgrades against the matrix for (*decorator_version*, *core_version*).

        *current_core_version* is the installed core version, used for the
        compatible-mode pin; it defaults to *core_version*. Returns ``None``
        when no matrix exists for the pair.
        """
        matrix_path = self.locator.locate(core_version, decorator_version)
        if matrix_path is None:
            return None

        return self.plan_matrix(
            load_matrix(matrix_path, overrides),
            manifest,
            options,
            current_core_version or core_version,
        )

    def plan_matrix(
        self,
        matrix: CompatibilityMatrix,
        manifest: Manifest,
        options: PlanOptions | None = None,
        current_core_version: str | None = None,
    ) -> list[Discrepancy]:
        options = options or PlanOptions()
        self.reporter.info(">> Start to check your component versions...\n")
        result: list[Discrepancy] = []

        for name, allowed in matrix.items():
            version = self.resolver.resolve(name)
            if not version:
                continue

            declared = manifest.get(name)
            if declared is None and not options.include_undeclared:
                continue

            if not allowed:
                continue
            latest_version = allowed[-1]
            forced = declared is None

            if latest_version == version:
                # Installed copy is already right; only a stale manifest string needs fixing
                if declared is not None and latest_version not in declared.specifier:
                    item = Discrepancy(
                        name=name,
                        current=declared.specifier,
                        latest_version=latest_version,
                        kind=DiscrepancyKind.MANIFEST_ONLY,
                    )
                    result.append(item)
                    self._report(item, strip_prefix(declared.specifier))
            else:
                item = Discrepancy(
                    name=name,
                    current=version,
                    latest_version=latest_version,
                    kind=DiscrepancyKind.FULL,
                    forced=forced,
                )
                result.append(item)
                self._report(item, version)

        if (
            options.is_compatible
            and not options.has_lockfile
            and current_core_version
            and not any(r.name == self.core_package for r in result)
        ):
            # Without a lockfile nothing else pins core, so write its version explicitly
            declared_core = manifest.get(self.core_package)
            if declared_core is None or declared_core.specifier != current_core_version:
                result.append(
                    Discrepancy(
                        name=self.core_package,
                        current=current_core_version,
                        latest_version=current_core_version,
                        kind=DiscrepancyKind.PIN,
                        forced=declared_core is None,
                    )
                )

        return result

    def _report(self, item: Discrepancy, shown_current: str) -> None:
        line = f"{item.name:<40}{shown_current:<15} => "
        if item.forced:
            self.reporter.dim(f"▫️ {escape(line + item.latest_version)} (force include)")
        else:
            self.reporter.warn(f"▫️ {escape(line + f'{item.latest_version:<15}')}")

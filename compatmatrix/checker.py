"""Compliance check — the read-only audit path.

A package passes when its installed version is listed verbatim in the
matrix or satisfies one of the listed ranges. Packages that are not
installed are never a problem.
"""

from __future__ import annotations

import json
from typing import Mapping

from compatmatrix.config import DEFAULT_DECORATOR_PACKAGE
from compatmatrix.matrix import CompatibilityMatrix, MatrixLocator, load_matrix
from compatmatrix.models import Discrepancy
from compatmatrix.reporting import NullReporter, Reporter, escape
from compatmatrix.resolver import VersionResolver
from compatmatrix.semver import Satisfies, satisfies as semver_satisfies


def is_allowed(version: str, allowed: list[str], satisfies: Satisfies = semver_satisfies) -> bool:
    if version in allowed:
        return True
    return any(satisfies(version, spec) for spec in allowed)


class ComplianceChecker:
    """Compares installed versions with the compatibility matrix."""

    def __init__(
        self,
        resolver: VersionResolver,
        locator: MatrixLocator,
        reporter: Reporter | None = None,
        satisfies: Satisfies = semver_satisfies,
        decorator_package: str = DEFAULT_DECORATOR_PACKAGE,
    ):
        self.resolver = resolver
        self.locator = locator
        self.reporter = reporter or NullReporter()
        self.satisfies = satisfies
        self.decorator_package = decorator_package

    def check(
        self,
        core_version: str,
        overrides: Mapping[str, str | list[str]] | None = None,
        decorator_version: str | None = None,
    ) -> list[Discrepancy] | None:
        """Audit every package in the matrix for *core_version*.

        Returns ``None`` when no matrix exists for the version pair,
        otherwise the (possibly empty) list of discrepancies.
        """
        if decorator_version is None:
            decorator_version = self.resolver.resolve(self.decorator_package)

        matrix_path = self.locator.locate(core_version, decorator_version)
        if matrix_path is None:
            return None

        result = self.check_matrix(load_matrix(matrix_path, overrides))
        self._report_summary(len(result))
        return result

    def check_matrix(self, matrix: CompatibilityMatrix) -> list[Discrepancy]:
        self.reporter.info(">> Start to check your component versions...\n")
        result: list[Discrepancy] = []

        for name, allowed in matrix.items():
            version = self.resolver.resolve(name)
            if not version:
                self.reporter.info(f"[green]✓[/] {escape(name)}(not installed)")
                continue

            if is_allowed(version, allowed, self.satisfies):
                self.reporter.info(f"[green]✓[/] {escape(name)}({escape(version)})")
                continue

            result.append(Discrepancy(name=name, current=version, allowed=list(allowed)))
            self.reporter.error(
                f"✖ {escape(name)}(current: {escape(version)}, allow: {escape(json.dumps(allowed))})"
            )

        return result

    def _report_summary(self, fail: int) -> None:
        if fail > 0:
            self.reporter.banner([
                f">> Check complete, found [white on red] {fail} [/] problem.",
                ">> Use [bold cyan]-u[/] to show update list that can be upgraded to the latest version.",
                ">> Use [bold cyan]-m[/] to show updates that can be upgraded to the most compatible version.",
                ">> Use [bold cyan]-u -w[/] or [bold cyan]-m -w[/] to write to the package.json file "
                "and update the lock file if it exists.",
                ">> Please check the result above.",
            ])
        else:
            self.reporter.banner(">> Check complete, all versions are healthy.")

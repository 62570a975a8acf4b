"""Top-level orchestration — picks the audit or upgrade path and wires components.

Missing prerequisites, a missing matrix or a broken package.json are
reported and end the run early with ``None``. A failed external command
terminates the process with exit status 0 so install pipelines that call
this tool keep going.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Mapping

from compatmatrix.checker import ComplianceChecker
from compatmatrix.config import Settings
from compatmatrix.errors import (
    CompatMatrixError,
    ExternalCommandFailure,
    MissingPrerequisite,
)
from compatmatrix.manifest import Manifest, ManifestEditor
from compatmatrix.matrix import MatrixLocator
from compatmatrix.models import Discrepancy, PlanOptions, ResolutionPolicy
from compatmatrix.package_manager import (
    detect_package_manager,
    fetch_latest_matrix_package,
    has_lockfile,
    lock_refresh_command,
    lockfile_name,
    run_cmd,
)
from compatmatrix.planner import UpgradePlanner
from compatmatrix.reporting import ConsoleReporter, NullReporter, Reporter, escape
from compatmatrix.resolver import VersionResolver
from compatmatrix.semver import compare_versions

Overrides = Mapping[str, str | list[str]]

_INCLUDE_HINT = ">> Use [bold cyan]--include-pkg-not-exists[/] include dependencies not exists."


def store_root(package_dir: Path) -> Path:
    """Directory holding the ``node_modules`` that *package_dir* lives in."""
    for parent in package_dir.parents:
        if parent.name == "node_modules":
            return parent.parent
    return package_dir.parent


class Auditor:
    """Runs a check or an upgrade for one project."""

    def __init__(self, settings: Settings, reporter: Reporter | None = None):
        self.settings = settings
        self.reporter = reporter or NullReporter()
        self.resolver = VersionResolver(settings.project_root)
        self.package_manager = detect_package_manager(settings.user_agent)

    # -- entry point ---------------------------------------------------------

    def run(
        self,
        update: bool = False,
        compatible: bool = False,
        write: bool = False,
        include_undeclared: bool = False,
        overrides: Overrides | None = None,
    ) -> list[Discrepancy] | None:
        """Dispatch on the CLI flags: ``-u`` wins over ``-m``, default is a plain check."""
        try:
            core_version = self.resolver.resolve(self.settings.core_package)
            if not core_version:
                self.reporter.banner(
                    f">> Please install {escape(self.settings.core_package)} first", level="error"
                )
                return None

            if not self.check_update(core_version):
                return None

            if update or compatible:
                policy = ResolutionPolicy.EXACT if update else ResolutionPolicy.COMPATIBLE
                return self.check_package_update(
                    overrides,
                    policy=policy,
                    write=write,
                    include_undeclared=include_undeclared,
                    core_version=core_version,
                )
            return self.check_version(core_version, overrides)
        except ExternalCommandFailure as e:
            self.reporter.banner(
                [escape(str(e)), f"err={escape(e.output)}"], level="error"
            )
            sys.exit(0)
        except CompatMatrixError as e:
            self.reporter.banner(escape(str(e)), level="error")
            return None

    # -- staleness guard -----------------------------------------------------

    def check_update(self, core_version: str) -> bool:
        """False when the installed matrix package is older than core."""
        matrix_version = self.resolver.resolve(self.settings.matrix_package)
        if not matrix_version:
            return True
        try:
            newer = compare_versions(core_version, matrix_version) > 0
        except ValueError:
            return True
        if not newer:
            return True

        is_pnpm = (self.settings.project_root / "node_modules" / ".pnpm").exists()
        if self.settings.is_npx_run:
            if is_pnpm:
                self.reporter.banner(">> Please use pnpx to run the command.")
            else:
                self.reporter.banner(
                    '>> Current version is too old, please run "npx clear-npx-cache" '
                    "by yourself and re-run the command."
                )
        else:
            self.reporter.banner(
                ">> Current version is too old, please upgrade dependencies and re-run the command."
            )
        return False

    # -- audit path ----------------------------------------------------------

    def check_version(
        self, core_version: str, overrides: Overrides | None = None
    ) -> list[Discrepancy] | None:
        checker = ComplianceChecker(
            self.resolver,
            self._locator(self._matrix_dir()),
            reporter=self.reporter,
            decorator_package=self.settings.decorator_package,
        )
        return checker.check(core_version, overrides)

    # -- upgrade path --------------------------------------------------------

    def check_package_update(
        self,
        overrides: Overrides | None = None,
        policy: ResolutionPolicy = ResolutionPolicy.EXACT,
        write: bool = False,
        include_undeclared: bool = False,
        core_version: str | None = None,
    ) -> list[Discrepancy] | None:
        settings = self.settings
        current_core = core_version or self.resolver.resolve(settings.core_package)
        manifest = Manifest.load(settings.manifest_path)

        matrix_dir = self._matrix_dir()
        if not settings.skip_fetch:
            fetch_latest_matrix_package(
                settings.matrix_package,
                store_root(matrix_dir),
                settings.npm_client,
                self.reporter,
            )

        options = PlanOptions(
            policy=policy,
            include_undeclared=include_undeclared,
            has_lockfile=has_lockfile(settings.project_root, self.package_manager),
        )

        if options.is_compatible:
            decorator_version = self.resolver.resolve(settings.decorator_package)
            target_core = current_core
        else:
            target_core, decorator_version = self._matrix_target(matrix_dir)

        if not target_core:
            raise MissingPrerequisite(f">> Please install {settings.core_package} first")

        planner = UpgradePlanner(
            self.resolver,
            self._locator(matrix_dir),
            reporter=self.reporter,
            core_package=settings.core_package,
        )
        plan = planner.plan(
            target_core,
            manifest,
            overrides,
            options,
            decorator_version=decorator_version,
            current_core_version=current_core,
        )
        if plan is None:
            return None

        if write:
            self._write(manifest, plan, options)
        else:
            self._report_plan(plan, options)
        return plan

    def _write(self, manifest: Manifest, plan: list[Discrepancy], options: PlanOptions) -> None:
        if not plan:
            self.reporter.banner(">> Check complete, all versions are healthy.")
            return

        edit = ManifestEditor().apply(manifest, plan, options)
        edit.manifest.save(self.settings.manifest_path)

        if not edit.needs_lock_refresh:
            self.reporter.banner(">> Write complete, please re-run install command.")
            return

        cmd = lock_refresh_command(self.package_manager, edit.install_specs)
        if cmd and edit.install_specs:
            run_cmd(cmd, self.settings.project_root)
        self.reporter.banner(
            f">> Write package.json and {lockfile_name(self.package_manager)} complete, "
            "please re-run install command."
        )

    def _report_plan(self, plan: list[Discrepancy], options: PlanOptions) -> None:
        if plan:
            flags = "-m -w" if options.is_compatible else "-u -w"
            self.reporter.banner([
                f">> Check complete, found [white on red]{len(plan)}[/] package can be update.",
                f">> Use [bold cyan]{flags}[/] to write to the package.json file "
                "and update the lock file if it exists.",
                _INCLUDE_HINT,
                ">> Please check the result above.",
            ])
        else:
            self.reporter.banner([">> Check complete, all versions are healthy.", _INCLUDE_HINT])

    # -- helpers -------------------------------------------------------------

    def _matrix_dir(self) -> Path:
        matrix_dir = self.resolver.package_dir(self.settings.matrix_package)
        if matrix_dir is None:
            raise MissingPrerequisite(f">> Please install {self.settings.matrix_package} first")
        return matrix_dir

    def _matrix_target(self, matrix_dir: Path) -> tuple[str | None, str | None]:
        """(core, decorator) versions the newest matrix package was published for."""
        info = VersionResolver(store_root(matrix_dir)).read_package_json(self.settings.matrix_package) or {}
        core = info.get("core") or info.get("version")
        decorator = info.get("decorator") or core
        return core, decorator

    def _locator(self, matrix_dir: Path) -> MatrixLocator:
        return MatrixLocator(
            matrix_dir,
            reporter=self.reporter,
            core_package=self.settings.core_package,
            decorator_package=self.settings.decorator_package,
            matrix_package=self.settings.matrix_package,
        )


def check(
    output: bool = False,
    overrides: Overrides | None = None,
    settings: Settings | None = None,
    **flags,
) -> list[Discrepancy] | None:
    """Library entry point; ``output=False`` keeps everything silent."""
    reporter: Reporter = ConsoleReporter() if output else NullReporter()
    auditor = Auditor(settings or Settings.from_env(), reporter)
    return auditor.run(overrides=overrides, **flags)

"""Package-manager plumbing — detection, lockfiles, and external commands.

All commands block until they finish. A failure raises
``ExternalCommandFailure``; the runner turns that into a process exit,
since a half-finished install leaves node_modules in an unknown state.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

from compatmatrix.errors import ExternalCommandFailure
from compatmatrix.reporting import NullReporter, Reporter, escape
from compatmatrix.resolver import VersionResolver


class PackageManager:
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    UNKNOWN = "unknown"


LOCKFILES = {
    PackageManager.NPM: "package-lock.json",
    PackageManager.PNPM: "pnpm-lock.yaml",
    PackageManager.YARN: "yarn.lock",
}


def detect_package_manager(user_agent: str | None) -> str:
    """Infer the package manager from ``npm_config_user_agent``.

    pnpm is checked first because its user agent also mentions npm.
    """
    if user_agent:
        if "pnpm" in user_agent:
            return PackageManager.PNPM
        elif "npm" in user_agent:
            return PackageManager.NPM
        elif "yarn" in user_agent:
            return PackageManager.YARN
    return PackageManager.UNKNOWN


def lockfile_name(manager: str) -> str | None:
    return LOCKFILES.get(manager)


def has_lockfile(project_root: str | Path, manager: str) -> bool:
    name = lockfile_name(manager)
    if not name:
        return False
    return (Path(project_root) / name).exists()


def lock_refresh_command(manager: str, install_specs: list[str]) -> str | None:
    """Command that rewrites only the lockfile for *install_specs*."""
    specs = " ".join(install_specs)
    if manager == PackageManager.NPM:
        return f"npm install {specs} --package-lock-only"
    if manager == PackageManager.PNPM:
        return f"pnpm install {specs} --lockfile-only"
    if manager == PackageManager.YARN:
        return f"yarn add {specs} --ignore-scripts --prefer-offline"
    return None


def run_cmd(cmd: str, cwd: str | Path | None = None) -> str:
    """Run a shell command and return its stdout.

    Commands without an explicit cwd run from the home directory so the
    project's own .npmrc/workspace settings do not interfere.
    """
    try:
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=cwd or Path.home(),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ExternalCommandFailure(cmd, str(e)) from e

    if proc.returncode != 0:
        raise ExternalCommandFailure(cmd, proc.stdout or proc.stderr)
    return proc.stdout


def tarball_name(package: str, version: str) -> str:
    """File name produced by ``npm pack`` (``@scope/name`` -> ``scope-name-x.y.z.tgz``)."""
    return f"{package.lstrip('@').replace('/', '-')}-{version}.tgz"


def fetch_latest_matrix_package(
    package: str,
    base_dir: str | Path,
    npm_client: str = "npm",
    reporter: Reporter | None = None,
) -> str:
    """Make sure the newest published *package* is installed under *base_dir*.

    Returns the version the registry reports as ``latest``.
    """
    reporter = reporter or NullReporter()
    base = Path(base_dir)
    resolver = VersionResolver(base)

    output = run_cmd(f"{npm_client} view {package} dist-tags --json")
    try:
        remote_version = json.loads(output)["latest"]
    except (ValueError, KeyError, TypeError) as e:
        raise ExternalCommandFailure(f"{npm_client} view {package} dist-tags --json", output) from e

    if resolver.resolve_local(package) == remote_version:
        return remote_version

    node_modules = base / "node_modules"
    node_modules.mkdir(parents=True, exist_ok=True)

    run_cmd(f"{npm_client} pack {package} --quiet --pack-destination={node_modules}")
    run_cmd(
        f"{npm_client} install --quiet --no-save --no-package-lock "
        f"{node_modules / tarball_name(package, remote_version)}",
        base,
    )

    if resolver.resolve_local(package) != remote_version:
        reporter.banner(
            f"{escape(package)} install error and version is not equals", level="error"
        )
    return remote_version

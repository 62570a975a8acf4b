"""compatmatrix CLI — check component versions against the compatibility matrix."""

import click
from rich.console import Console

from compatmatrix import __version__

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("-u", "--update", is_flag=True, help="Show packages that can be upgraded to the latest matrix version")
@click.option("-m", "--compatible", is_flag=True, help="Show packages that can be upgraded to the most compatible version")
@click.option("-w", "--write", is_flag=True, help="Write upgrades to package.json and refresh the lock file")
@click.option(
    "--include-pkg-not-exists",
    "include_undeclared",
    is_flag=True,
    help="Also upgrade matrix packages that are installed but not declared in package.json",
)
@click.option("--npm-client", default=None, help="Client used to query the registry (default: npm)")
@click.option(
    "--overrides",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML/JSON file of extra allowed versions, merged over the matrix",
)
@click.option("--cwd", type=click.Path(file_okay=False), default=None, help="Project root (default: current directory)")
@click.option("--quiet", "-q", is_flag=True, help="Suppress all output")
@click.option("--strict", is_flag=True, help="Exit with status 1 when problems are found")
def main(
    update: bool,
    compatible: bool,
    write: bool,
    include_undeclared: bool,
    npm_client: str | None,
    overrides: str | None,
    cwd: str | None,
    quiet: bool,
    strict: bool,
):
    """Audit installed component versions against the compatibility matrix.

    Without flags, every installed package listed in the matrix is checked
    and problems are reported. Use -u or -m to plan upgrades, and add -w to
    apply them.
    """
    from compatmatrix.config import Settings, load_overrides
    from compatmatrix.errors import CompatMatrixError
    from compatmatrix.reporting import ConsoleReporter, NullReporter, escape
    from compatmatrix.runner import Auditor

    reporter = NullReporter() if quiet else ConsoleReporter(console, err_console)

    try:
        extra = load_overrides(overrides)
    except (CompatMatrixError, OSError) as e:
        err_console.print(f"[red]Failed to load overrides:[/] {escape(str(e))}")
        raise SystemExit(1)

    settings = Settings.from_env(cwd)
    if npm_client:
        settings.npm_client = npm_client

    auditor = Auditor(settings, reporter)
    result = auditor.run(
        update=update,
        compatible=compatible,
        write=write,
        include_undeclared=include_undeclared,
        overrides=extra,
    )

    if strict and result:
        raise SystemExit(1)


if __name__ == "__main__":
    main()

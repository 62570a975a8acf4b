"""End-to-end tests for the runner and the CLI against fake projects."""

import json
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from compatmatrix import runner as runner_module
from compatmatrix.cli import main
from compatmatrix.config import Settings
from compatmatrix.errors import ExternalCommandFailure
from compatmatrix.reporting import Reporter
from compatmatrix.runner import Auditor, store_root

CORE = "@midwayjs/core"
MATRIX_PKG = "@midwayjs/version"


class _Recorder(Reporter):
    def __init__(self):
        self.lines = []

    def emit(self, level, message):
        self.lines.append((level, message))

    def text(self) -> str:
        return "\n".join(m for _, m in self.lines)


def _install(root: Path, name: str, version: str, **extra) -> Path:
    pkg_dir = root / "node_modules" / name
    pkg_dir.mkdir(parents=True, exist_ok=True)
    (pkg_dir / "package.json").write_text(json.dumps({"name": name, "version": version, **extra}))
    return pkg_dir


def _project(
    root: Path,
    installed: dict,
    dependencies: dict,
    matrix: dict,
    core: str = "3.2.0",
    dev_dependencies: dict | None = None,
) -> None:
    _install(root, CORE, core)
    for name, version in installed.items():
        _install(root, name, version)
    matrix_dir = _install(root, MATRIX_PKG, core, core=core, decorator=core)
    versions = matrix_dir / "versions"
    versions.mkdir()
    name = f"{core.replace('.', '_')}-{core.replace('.', '_')}.json"
    (versions / name).write_text(json.dumps(matrix))
    (root / "package.json").write_text(
        json.dumps({"name": "app", "dependencies": dependencies, "devDependencies": dev_dependencies or {}})
    )


def _settings(root: Path, user_agent: str = "npm/9.5.1 node/v18.16.0") -> Settings:
    return Settings(project_root=root, user_agent=user_agent, skip_fetch=True)


@pytest.fixture(autouse=True)
def _no_node_path(monkeypatch):
    monkeypatch.delenv("NODE_PATH", raising=False)
    monkeypatch.delenv("npm_config_user_agent", raising=False)


def test_reporter_base_requires_emit():
    with pytest.raises(TypeError):
        Reporter()
    recorder = _Recorder()
    recorder.banner("[bold]done[/]")
    assert [len(m) for _, m in recorder.lines] == [70, len("[bold]done[/]"), 70]


def test_store_root_scoped_and_plain():
    assert store_root(Path("/app/node_modules/@midwayjs/version")) == Path("/app")
    assert store_root(Path("/app/node_modules/lodash")) == Path("/app")


def test_check_reports_discrepancies():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.1.0", "pkgB": "1.9.0"},
            dependencies={"pkgA": "^1.1.0", "pkgB": "^1.9.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"], "pkgB": "2.0.0", "@midwayjs/core": "^3.0.0"},
        )
        recorder = _Recorder()
        result = Auditor(_settings(root), recorder).run()

    assert [(d.name, d.current, d.allowed) for d in result] == [("pkgB", "1.9.0", ["2.0.0"])]
    assert "problem" in recorder.text()


def test_missing_core_short_circuits():
    with tempfile.TemporaryDirectory() as tmpdir:
        recorder = _Recorder()
        assert Auditor(_settings(Path(tmpdir)), recorder).run() is None
    assert any(level == "error" and "Please install" in m for level, m in recorder.lines)


def test_missing_matrix_package_short_circuits():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _install(root, CORE, "3.2.0")
        recorder = _Recorder()
        assert Auditor(_settings(root), recorder).run() is None
    assert MATRIX_PKG in recorder.text()


def test_stale_matrix_package_stops_run():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(root, installed={}, dependencies={}, matrix={})
        _install(root, CORE, "3.3.0")
        recorder = _Recorder()
        assert Auditor(_settings(root), recorder).run() is None
    assert "too old" in recorder.text() or "pnpx" in recorder.text()


def test_update_without_write_leaves_manifest():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.0.0"},
            dependencies={"pkgA": "^1.0.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"]},
        )
        before = (root / "package.json").read_text()
        recorder = _Recorder()
        plan = Auditor(_settings(root), recorder).run(update=True)

        assert [(p.name, p.latest_version) for p in plan] == [("pkgA", "1.1.0")]
        assert (root / "package.json").read_text() == before
        assert "-u -w" in recorder.text()


def test_update_write_with_lockfile_refreshes_lock(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.0.0", "pkgB": "2.0.0"},
            dependencies={"pkgA": "^1.0.0"},
            dev_dependencies={"pkgB": "~2.0.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"], "pkgB": ["2.0.0", "2.0.3"]},
        )
        (root / "package-lock.json").write_text("{}")
        commands = []
        monkeypatch.setattr(runner_module, "run_cmd", lambda cmd, cwd=None: commands.append((cmd, cwd)) or "")

        Auditor(_settings(root), _Recorder()).run(update=True, write=True)
        data = json.loads((root / "package.json").read_text())

    assert data["dependencies"]["pkgA"] == "^1.1.0"
    assert data["devDependencies"]["pkgB"] == "~2.0.3"
    assert commands == [("npm install pkgA@1.1.0 pkgB@2.0.3 --package-lock-only", root)]


def test_compatible_write_without_lockfile_pins_core(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.0.0"},
            dependencies={"pkgA": "^1.0.0", CORE: "^3.2.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"], CORE: ["3.2.0"]},
        )
        monkeypatch.setattr(runner_module, "run_cmd", lambda cmd, cwd=None: pytest.fail("no lockfile, no command"))

        recorder = _Recorder()
        plan = Auditor(_settings(root), recorder).run(compatible=True, write=True)
        data = json.loads((root / "package.json").read_text())

    assert {p.name for p in plan} == {"pkgA", CORE}
    assert data["dependencies"]["pkgA"] == "1.1.0"
    assert data["dependencies"][CORE] == "3.2.0"
    assert "Write complete" in recorder.text()


def test_write_with_nothing_to_do_reports_healthy():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.1.0"},
            dependencies={"pkgA": "^1.1.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"]},
        )
        before = (root / "package.json").read_text()
        recorder = _Recorder()
        assert Auditor(_settings(root), recorder).run(update=True, write=True) == []
        assert (root / "package.json").read_text() == before
    assert "healthy" in recorder.text()


def test_update_with_broken_manifest_aborts():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(root, installed={}, dependencies={}, matrix={})
        (root / "package.json").write_text("{broken")
        recorder = _Recorder()
        assert Auditor(_settings(root), recorder).run(update=True, write=True) is None
        assert (root / "package.json").read_text() == "{broken"
    assert "parse error" in recorder.text()


def test_update_with_non_utf8_manifest_aborts():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(root, installed={}, dependencies={}, matrix={})
        (root / "package.json").write_bytes(b'{"name": "\xff\xfe"}')
        recorder = _Recorder()
        assert Auditor(_settings(root), recorder).run(update=True) is None
    assert "read error" in recorder.text()


def test_external_failure_exits_with_zero(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(root, installed={}, dependencies={}, matrix={})
        settings = _settings(root)
        settings.skip_fetch = False

        def failing(*args, **kwargs):
            raise ExternalCommandFailure("npm view @midwayjs/version dist-tags --json", "E404")

        monkeypatch.setattr(runner_module, "fetch_latest_matrix_package", failing)
        recorder = _Recorder()
        with pytest.raises(SystemExit) as exc_info:
            Auditor(settings, recorder).run(update=True)

    assert exc_info.value.code == 0
    assert "E404" in recorder.text()


# --- CLI ---


def test_cli_check_and_strict():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgB": "1.9.0"},
            dependencies={"pkgB": "^1.9.0"},
            matrix={"pkgB": "2.0.0"},
        )
        cli = CliRunner()
        result = cli.invoke(main, ["--cwd", str(root)])
        assert result.exit_code == 0
        assert "pkgB" in result.output

        strict = cli.invoke(main, ["--cwd", str(root), "--strict"])
        assert strict.exit_code == 1

        quiet = cli.invoke(main, ["--cwd", str(root), "-q"])
        assert quiet.exit_code == 0
        assert quiet.output == ""


def test_cli_overrides_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgB": "1.9.0"},
            dependencies={"pkgB": "^1.9.0"},
            matrix={"pkgB": "2.0.0"},
        )
        overrides = root / "overrides.yaml"
        overrides.write_text("pkgB:\n  - 1.9.0\n  - 2.0.0\n")
        result = CliRunner().invoke(main, ["--cwd", str(root), "--overrides", str(overrides), "--strict"])

    assert result.exit_code == 0
    assert "healthy" in result.output


def test_cli_overrides_error_with_brackets_is_printed_verbatim():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        overrides = root / "overrides.yaml"
        overrides.write_text('"[/oops]": 1.10\n')
        result = CliRunner().invoke(main, ["--cwd", str(root), "--overrides", str(overrides)])

    assert result.exit_code == 1
    assert "[/oops]" in result.output


def test_cli_update_uses_skip_fetch_env():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.0.0"},
            dependencies={"pkgA": "^1.0.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"]},
        )
        result = CliRunner().invoke(
            main, ["--cwd", str(root), "-u"], env={"COMPATMATRIX_SKIP_FETCH": "1"}
        )

    assert result.exit_code == 0
    assert "pkgA" in result.output
    assert "1.1.0" in result.output


def test_library_check_entry_point_is_silent_by_default(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        _project(
            root,
            installed={"pkgA": "1.1.0", "pkgB": "1.9.0"},
            dependencies={"pkgA": "^1.1.0", "pkgB": "^1.9.0"},
            matrix={"pkgA": ["1.0.0", "1.1.0"], "pkgB": "2.0.0"},
        )
        result = runner_module.check(settings=_settings(root))

    assert [d.name for d in result] == ["pkgB"]
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == ""

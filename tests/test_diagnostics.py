"""
Tests for diagnostic actions and the interactive diagnostics menu.
"""

from netbox_installer.core.services import diagnostics
from netbox_installer.core.services.diagnostics import DIAGNOSTICS, DiagnosticResult
from netbox_installer.core.use_cases.install import build_context
from netbox_installer.ui.cli.diagnose import DiagnosticsMenu, MenuState


def _ctx(host, settings):
    return build_context(host, settings, host.os_release())


# ── Actions ──────────────────────────────────────────────────────────


class TestActionsOnInstalledHost:
    def test_service_status(self, installed_host, settings):
        result = diagnostics.service_status(_ctx(installed_host, settings))
        assert result.ok
        assert len(result.details) == len(settings.summary_services)

    def test_service_status_reports_inactive(self, installed_host, settings):
        installed_host.run(["systemctl", "stop", "nginx"], sudo=True)
        result = diagnostics.service_status(_ctx(installed_host, settings))
        assert not result.ok
        assert "nginx" in result.message

    def test_python_runtime_healthy(self, installed_host, settings):
        result = diagnostics.fix_python_runtime(_ctx(installed_host, settings))
        assert result.ok
        assert result.message == "Python runtime is healthy"

    def test_python_runtime_rebuilt(self, installed_host, settings):
        installed_host.remove(settings.venv_python)
        result = diagnostics.fix_python_runtime(_ctx(installed_host, settings))
        assert result.ok
        assert installed_host.ran("python3 -m venv --clear")
        assert installed_host.exists(settings.venv_python)

    def test_fix_permissions(self, installed_host, settings):
        installed_host.dirs[settings.release_dir] = "root"
        installed_host.files[installed_host._resolve(settings.configuration_path)].mode = 0o644

        result = diagnostics.fix_permissions(_ctx(installed_host, settings))
        assert result.ok
        assert installed_host.dirs[settings.release_dir] == settings.netbox_user
        assert installed_host.file_mode(settings.configuration_path) == 0o600

    def test_reinstall_dependencies(self, installed_host, settings):
        result = diagnostics.reinstall_dependencies(_ctx(installed_host, settings))
        assert result.ok
        assert installed_host.ran(f"{settings.venv_dir}/bin/pip install --force-reinstall")

    def test_check_configuration(self, installed_host, settings):
        assert diagnostics.check_configuration(_ctx(installed_host, settings)).ok

    def test_check_configuration_missing(self, installed_host, settings):
        installed_host.remove(settings.configuration_path)
        result = diagnostics.check_configuration(_ctx(installed_host, settings))
        assert not result.ok
        assert "missing" in result.message

    def test_check_database(self, installed_host, settings):
        result = diagnostics.check_database(_ctx(installed_host, settings))
        assert result.ok
        assert "database netbox: present" in result.details

    def test_check_database_server_down(self, installed_host, settings):
        installed_host.run(["systemctl", "stop", "postgresql"], sudo=True)
        result = diagnostics.check_database(_ctx(installed_host, settings))
        assert not result.ok
        assert "not accepting connections" in result.message

    def test_check_database_wrong_password(self, installed_host, settings):
        installed_host.db.roles[settings.db_user] = "rotated"
        result = diagnostics.check_database(_ctx(installed_host, settings))
        assert not result.ok
        assert "password authentication failed" in result.details[-1]

    def test_check_redis(self, installed_host, settings):
        assert diagnostics.check_redis(_ctx(installed_host, settings)).ok

    def test_check_redis_down(self, installed_host, settings):
        installed_host.run(["systemctl", "stop", "redis-server"], sudo=True)
        result = diagnostics.check_redis(_ctx(installed_host, settings))
        assert not result.ok

    def test_run_migrations_noop_when_applied(self, installed_host, settings):
        result = diagnostics.run_migrations(_ctx(installed_host, settings))
        assert result.ok
        assert result.message == "No unapplied migrations"

    def test_run_migrations_applies(self, installed_host, settings):
        installed_host.migrated = False
        result = diagnostics.run_migrations(_ctx(installed_host, settings))
        assert result.message == "Migrations applied"
        assert installed_host.migrated

    def test_collect_static(self, installed_host, settings):
        assert diagnostics.collect_static(_ctx(installed_host, settings)).ok

    def test_show_logs(self, installed_host, settings):
        result = diagnostics.show_logs(_ctx(installed_host, settings))
        assert result.ok
        assert any("netbox" in line for line in result.details)


class TestRunDiagnostic:
    def test_exception_becomes_failed_result(self, installed_host, settings):
        installed_host.set_failure(["chown"], stderr="chown: Operation not permitted")
        diagnostic = diagnostics.get_diagnostic("3")
        result = diagnostics.run_diagnostic(diagnostic, _ctx(installed_host, settings))

        assert not result.ok
        assert result.name == "fix-permissions"
        assert "Operation not permitted" in result.message

    def test_unexpected_exception_converted(self, mock_host, settings):
        def explode(ctx):
            raise RuntimeError("kaboom")

        diagnostic = diagnostics.Diagnostic("99", "explode", "Explode", explode)
        result = diagnostics.run_diagnostic(diagnostic, _ctx(mock_host, settings))
        assert not result.ok
        assert "kaboom" in result.message

    def test_run_all_never_aborts(self, mock_host, settings):
        results = diagnostics.run_all(_ctx(mock_host, settings))
        assert [r.name for r in results] == [d.name for d in DIAGNOSTICS]
        assert all(isinstance(r, DiagnosticResult) for r in results)
        assert not results[0].ok

    def test_menu_numbers(self):
        assert [d.key for d in DIAGNOSTICS] == [str(n) for n in range(1, 11)]
        assert diagnostics.get_diagnostic("11") is None


# ── Menu state machine ───────────────────────────────────────────────


class _Console:
    def __init__(self, *inputs: str):
        self._inputs = iter(inputs)
        self.lines: list[str] = []

    def prompt(self) -> str:
        return next(self._inputs)

    def echo(self, message: str = "", **kwargs) -> None:
        self.lines.append(message)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _menu(host, settings, *inputs):
    console = _Console(*inputs)
    menu = DiagnosticsMenu(_ctx(host, settings), prompt=console.prompt, echo=console.echo)
    return menu, console


class TestDiagnosticsMenu:
    def test_exit_immediately(self, mock_host, settings):
        menu, console = _menu(mock_host, settings, "12")
        assert menu.loop() == []
        assert menu.state == MenuState.DONE
        assert "12) Exit" in console.text

    def test_transitions(self, installed_host, settings):
        menu, _ = _menu(installed_host, settings, "1", "12")
        assert menu.state == MenuState.DISPLAYING
        assert menu.step() == MenuState.AWAITING
        assert menu.step() == MenuState.EXECUTING
        assert menu.step() == MenuState.DISPLAYING
        menu.step()
        assert menu.step() == MenuState.DONE

    def test_out_of_range_returns_to_menu(self, mock_host, settings):
        menu, console = _menu(mock_host, settings, "13", "0", "abc", "", "12")
        results = menu.loop()

        assert results == []
        assert menu.state == MenuState.DONE
        assert console.text.count("Invalid option") == 4
        assert console.text.count("NetBox diagnostics") == 5

    def test_single_action(self, installed_host, settings):
        menu, console = _menu(installed_host, settings, "7", "12")
        results = menu.loop()
        assert [r.name for r in results] == ["check-redis"]
        assert "✅ check-redis" in console.text

    def test_run_all(self, installed_host, settings):
        menu, _ = _menu(installed_host, settings, "11", "12")
        results = menu.loop()
        assert len(results) == 10
        assert all(r.ok for r in results)

    def test_failure_does_not_end_loop(self, mock_host, settings):
        menu, console = _menu(mock_host, settings, "5", "6", "12")
        results = menu.loop()
        assert [r.ok for r in results] == [False, False]
        assert menu.state == MenuState.DONE
        assert "❌ check-configuration" in console.text

    def test_whitespace_tolerated(self, mock_host, settings):
        menu, _ = _menu(mock_host, settings, " 12 ")
        menu.loop()
        assert menu.state == MenuState.DONE

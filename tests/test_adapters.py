"""
Tests for host adapters: command wrapping, result handling, the mock host.
"""

import subprocess

import pytest

from netbox_installer.adapters import system
from netbox_installer.adapters.base import CommandError, CommandResult, parse_os_release
from netbox_installer.adapters.mock import APT_UPDATE_STAMP, MockHost
from netbox_installer.adapters.system import SystemHost


class _Completed:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@pytest.fixture
def unprivileged(monkeypatch):
    monkeypatch.setattr(SystemHost, "is_superuser", lambda self: False)
    return SystemHost()


# ── CommandResult ────────────────────────────────────────────────────


class TestCommandResult:
    def test_ok(self):
        result = CommandResult(argv=["true"])
        assert result.ok
        assert result.check() is result

    def test_check_raises_with_last_stderr_line(self):
        result = CommandResult(argv=["apt-get", "install"], returncode=100, stderr="W: one\nE: broken\n")
        with pytest.raises(CommandError) as exc:
            result.check()
        assert exc.value.returncode == 100
        assert str(exc.value) == "'apt-get install' exited with code 100: E: broken"

    def test_error_without_stderr(self):
        err = CommandError(["false"], 1)
        assert str(err) == "'false' exited with code 1"


class TestParseOsRelease:
    def test_quotes_and_comments(self):
        text = '# comment\nID=ubuntu\nVERSION_ID="22.04"\nPRETTY_NAME=\'Ubuntu 22.04 LTS\'\n\ngarbage\n'
        assert parse_os_release(text) == {
            "ID": "ubuntu",
            "VERSION_ID": "22.04",
            "PRETTY_NAME": "Ubuntu 22.04 LTS",
        }

    def test_empty(self):
        assert parse_os_release("") == {}


# ── SystemHost ───────────────────────────────────────────────────────


class TestSystemHostWrap:
    def test_plain(self, unprivileged):
        assert unprivileged._wrap(["ls"], False, None, None) == ["ls"]

    def test_sudo(self, unprivileged):
        assert unprivileged._wrap(["apt-get", "update"], True, None, None) == [
            "sudo", "--", "apt-get", "update",
        ]

    def test_sudo_skipped_for_root(self, monkeypatch):
        monkeypatch.setattr(SystemHost, "is_superuser", lambda self: True)
        assert SystemHost()._wrap(["apt-get", "update"], True, None, None) == ["apt-get", "update"]

    def test_run_as_user(self, unprivileged):
        assert unprivileged._wrap(["pip", "install"], False, "netbox", None) == [
            "sudo", "-u", "netbox", "--", "pip", "install",
        ]

    def test_env_prefix(self, unprivileged):
        cmd = unprivileged._wrap(["apt-get", "install"], True, None, {"DEBIAN_FRONTEND": "noninteractive"})
        assert cmd == ["sudo", "--", "env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install"]


class TestSystemHostRun:
    def test_missing_binary(self):
        result = SystemHost().run(["netbox-installer-no-such-binary"])
        assert result.returncode == 127
        assert "Command not found" in result.stderr

    def test_passes_stdin_and_wrapped_argv(self, monkeypatch, unprivileged):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            seen["input"] = kwargs["input"]
            return _Completed(stdout="done\n")

        monkeypatch.setattr(system.subprocess, "run", fake_run)
        result = unprivileged.run(["tee", "/tmp/x"], sudo=True, input="secret")

        assert seen == {"cmd": ["sudo", "--", "tee", "/tmp/x"], "input": "secret"}
        assert result.argv == ["tee", "/tmp/x"]
        assert result.stdout == "done\n"

    def test_timeout(self, monkeypatch, unprivileged):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(system.subprocess, "run", fake_run)
        result = unprivileged.run(["sleep", "99"], timeout=3)
        assert result.returncode == 124
        assert "3s" in result.stderr

    def test_failure_returned_not_raised(self, monkeypatch, unprivileged):
        monkeypatch.setattr(
            system.subprocess, "run", lambda cmd, **kw: _Completed(2, stderr="boom")
        )
        result = unprivileged.run(["false"])
        assert not result.ok
        with pytest.raises(CommandError):
            result.check()

    def test_write_file_restricts_before_content(self, monkeypatch, unprivileged):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append((cmd, kwargs["input"]))
            return _Completed()

        monkeypatch.setattr(system.subprocess, "run", fake_run)
        unprivileged.write_file("/tmp/netbox_credentials.txt", "KEY", mode=0o600, owner="netbox")

        assert calls[0] == (
            ["sudo", "--", "install", "-m", "0600", "-o", "netbox", "-g", "netbox", "/dev/null", "/tmp/netbox_credentials.txt"],
            None,
        )
        # The owner fills its own file; root is refused in sticky /tmp
        assert calls[1] == (["sudo", "-u", "netbox", "--", "tee", "/tmp/netbox_credentials.txt"], "KEY")
        assert all("KEY" not in part for cmd, _ in calls for part in cmd)

    def test_write_unowned_file_as_root(self, monkeypatch, unprivileged):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return _Completed()

        monkeypatch.setattr(system.subprocess, "run", fake_run)
        unprivileged.write_file("/etc/nginx/sites-available/netbox", "server {}")

        assert calls == [
            ["sudo", "--", "install", "-m", "0644", "/dev/null", "/etc/nginx/sites-available/netbox"],
            ["sudo", "--", "tee", "/etc/nginx/sites-available/netbox"],
        ]

    def test_read_file(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("hello", encoding="utf-8")
        host = SystemHost()
        assert host.read_file(str(path)) == "hello"
        assert host.read_file(str(tmp_path / "missing")) is None

    def test_file_age(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("x", encoding="utf-8")
        host = SystemHost()
        assert 0 <= host.file_age(str(path)) < 60
        assert host.file_age(str(tmp_path / "missing")) is None


# ── MockHost ─────────────────────────────────────────────────────────


class TestMockHost:
    def test_unprivileged_apt_denied(self, mock_host):
        result = mock_host.run(["apt-get", "install", "-y", "nginx"])
        assert not result.ok
        assert "Permission denied" in result.stderr
        assert "nginx" not in mock_host.packages

    def test_package_side_effects(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "postgresql", "redis-server"], sudo=True)
        assert "postgres" in mock_host.users
        assert mock_host.exists("/etc/redis/redis.conf")
        assert mock_host.run(["dpkg-query", "-W", "postgresql"]).ok
        assert not mock_host.run(["systemctl", "is-active", "postgresql"]).ok

    def test_apt_update_stamp(self, mock_host):
        mock_host.run(["apt-get", "update"], sudo=True)
        assert mock_host.exists(APT_UPDATE_STAMP)

    def test_unknown_unit(self, mock_host):
        result = mock_host.run(["systemctl", "start", "netbox"], sudo=True)
        assert result.returncode == 5

    def test_crashing_service(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx"], sudo=True)
        mock_host.crashing_services.add("nginx")
        assert mock_host.run(["systemctl", "start", "nginx"], sudo=True).ok
        assert not mock_host.run(["systemctl", "is-active", "nginx"]).ok

    def test_psql_requires_postgres_user(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "postgresql"], sudo=True)
        mock_host.run(["systemctl", "start", "postgresql"], sudo=True)
        sql = 'CREATE DATABASE "netbox";'

        assert not mock_host.run(["psql"], input=sql).ok
        assert mock_host.run(["psql"], user="postgres", input=sql).ok
        assert "netbox" in mock_host.db.databases
        assert mock_host.run(["psql"], user="postgres", input=sql).returncode == 3

    def test_symlinks_resolve(self, mock_host):
        mock_host.write_file("/opt/netbox-4.1.3/requirements.txt", "Django\n")
        mock_host.symlink("/opt/netbox-4.1.3", "/opt/netbox")
        assert mock_host.read_file("/opt/netbox/requirements.txt") == "Django\n"
        assert mock_host.run(["test", "-L", "/opt/netbox"]).ok
        assert mock_host.run(["readlink", "-f", "/opt/netbox"]).stdout.strip() == "/opt/netbox-4.1.3"
        mock_host.remove("/opt/netbox")
        assert not mock_host.exists("/opt/netbox")
        assert mock_host.exists("/opt/netbox-4.1.3/requirements.txt")

    def test_injected_failure_times(self, mock_host):
        mock_host.set_failure("curl", stderr="timeout", times=1)
        argv = ["curl", "-fsSL", "-o", "/tmp/x.tar.gz", "https://example.invalid"]
        assert not mock_host.run(argv).ok
        assert mock_host.run(argv).ok

    def test_file_age(self):
        now = [1000.0]
        host = MockHost(clock=lambda: now[0])
        host.write_file("/etc/x", "y")
        now[0] = 1060.0
        assert host.file_age("/etc/x") == 60.0
        host.age_file("/etc/x", 3600)
        assert host.file_age("/etc/x") == 3600.0

    def test_call_log_keeps_stdin_out_of_argv(self, mock_host):
        mock_host.run(["psql"], user="postgres", input="secret")
        call = mock_host.call_log[-1]
        assert call.line == "psql"
        assert call.input == "secret"

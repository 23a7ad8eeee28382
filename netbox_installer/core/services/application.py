"""
NetBox application: release download, virtualenv, Django management commands.

The release is unpacked to ``<install_root>/netbox-<version>`` and
``netbox_home`` is a symlink to it, so an upgrade is a new release
directory plus a re-pointed link. Everything under the release runs
as the service account.
"""

from __future__ import annotations

import logging

from netbox_installer.adapters.base import CommandResult, Host
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.step import StepError

logger = logging.getLogger(__name__)

REQUIRED_MODULES = ("django", "gunicorn", "django_rq")


# ── Service account ─────────────────────────────────────────────


def user_exists(host: Host, name: str) -> bool:
    return host.run(["id", "-u", name]).ok


def create_user(host: Host, settings: InstallSettings) -> None:
    logger.info("Creating system user %s", settings.netbox_user)
    host.run(
        [
            "useradd",
            "--system",
            "--user-group",
            "--no-create-home",
            "--home-dir",
            settings.netbox_home,
            "--shell",
            "/usr/sbin/nologin",
            settings.netbox_user,
        ],
        sudo=True,
    ).check()


# ── Release ─────────────────────────────────────────────────────


def release_present(host: Host, settings: InstallSettings) -> bool:
    if not host.exists(f"{settings.release_dir}/netbox/manage.py"):
        return False
    link = host.run(["readlink", "-f", settings.netbox_home])
    return link.ok and link.stdout.strip() == settings.release_dir


def download_release(host: Host, settings: InstallSettings) -> None:
    """Fetch the release tarball, unpack it and point netbox_home at it."""
    home = settings.netbox_home
    if host.exists(home) and not host.run(["test", "-L", home]).ok:
        raise StepError(f"{home} exists and is not a symlink; move it aside first")

    tarball = f"/tmp/netbox-v{settings.netbox_version}.tar.gz"
    logger.info("Downloading NetBox v%s", settings.netbox_version)
    host.run(["curl", "-fsSL", "-o", tarball, settings.download_url]).check()
    host.run(["tar", "-xzf", tarball, "-C", settings.install_root], sudo=True).check()
    host.symlink(settings.release_dir, home)
    host.remove(tarball)


def ownership_ok(host: Host, settings: InstallSettings) -> bool:
    result = host.run(["stat", "-c", "%U", settings.release_dir])
    return result.ok and result.stdout.strip() == settings.netbox_user


def set_ownership(host: Host, settings: InstallSettings) -> None:
    owner = f"{settings.netbox_user}:{settings.netbox_user}"
    host.run(["chown", "-R", owner, settings.release_dir], sudo=True).check()
    host.run(["chown", "-h", owner, settings.netbox_home], sudo=True).check()


def tighten_configuration(host: Host, settings: InstallSettings) -> None:
    """Re-apply owner-only permissions on configuration.py, if present."""
    path = settings.configuration_path
    if not host.exists(path):
        return
    owner = f"{settings.netbox_user}:{settings.netbox_user}"
    host.run(["chown", owner, path], sudo=True).check()
    host.run(["chmod", "0600", path], sudo=True).check()


# ── Python runtime ──────────────────────────────────────────────


def venv_present(host: Host, settings: InstallSettings) -> bool:
    return host.exists(settings.venv_python)


def create_venv(host: Host, settings: InstallSettings, clear: bool = False) -> None:
    user = settings.netbox_user
    cmd = ["python3", "-m", "venv"]
    if clear:
        cmd.append("--clear")
    host.run([*cmd, settings.venv_dir], user=user).check()
    host.run(
        [f"{settings.venv_dir}/bin/pip", "install", "--upgrade", "pip", "wheel"],
        user=user,
    ).check()


def requirements_installed(host: Host, settings: InstallSettings) -> bool:
    probe = f"import {', '.join(REQUIRED_MODULES)}"
    return host.run(
        [settings.venv_python, "-c", probe], user=settings.netbox_user
    ).ok


def install_requirements(host: Host, settings: InstallSettings, reinstall: bool = False) -> None:
    cmd = [f"{settings.venv_dir}/bin/pip", "install"]
    if reinstall:
        cmd.append("--force-reinstall")
    cmd += ["-r", f"{settings.netbox_home}/requirements.txt"]
    logger.info("Installing NetBox Python requirements")
    host.run(cmd, user=settings.netbox_user).check()


# ── Django management ───────────────────────────────────────────


def manage(
    host: Host, settings: InstallSettings, *args: str, input: str | None = None
) -> CommandResult:
    """Run ``manage.py`` as the service account inside the venv."""
    return host.run(
        [settings.venv_python, settings.manage_py, *args],
        user=settings.netbox_user,
        cwd=settings.app_dir,
        input=input,
    )


def migrations_applied(host: Host, settings: InstallSettings) -> bool:
    return manage(host, settings, "migrate", "--check").ok


def run_migrations(host: Host, settings: InstallSettings) -> None:
    logger.info("Applying database migrations")
    manage(host, settings, "migrate", "--no-input").check()


def static_collected(host: Host, settings: InstallSettings) -> bool:
    return host.exists(settings.static_root)


def collect_static(host: Host, settings: InstallSettings) -> None:
    manage(host, settings, "collectstatic", "--no-input").check()


def superuser_exists(host: Host, settings: InstallSettings) -> bool:
    probe = (
        "import sys; from django.contrib.auth import get_user_model; "
        f"sys.exit(0 if get_user_model().objects.filter(username={settings.admin_username!r}).exists() else 1)"
    )
    return manage(host, settings, "shell", "-c", probe).ok


def create_superuser(host: Host, settings: InstallSettings, password: str) -> None:
    """Create the admin account; the password travels on stdin only."""
    script = (
        "from django.contrib.auth import get_user_model\n"
        "get_user_model().objects.create_superuser("
        f"{settings.admin_username!r}, {settings.admin_email!r}, {password!r})\n"
    )
    logger.info("Creating NetBox superuser %s", settings.admin_username)
    manage(host, settings, "shell", input=script).check()


def check_configuration(host: Host, settings: InstallSettings) -> CommandResult:
    """Django system checks against configuration.py."""
    return manage(host, settings, "check")


def check_database_connection(host: Host, settings: InstallSettings) -> CommandResult:
    """Django checks that need a working database connection."""
    return manage(host, settings, "check", "--database", "default")


def recent_logs(host: Host, services: list[str], lines: int = 50) -> str:
    cmd = ["journalctl", "--no-pager", "-n", str(lines)]
    for service in services:
        cmd += ["-u", service]
    result = host.run(cmd, sudo=True)
    return result.stdout if result.ok else result.stderr

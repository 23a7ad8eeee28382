"""
Pre-flight checks: refuse to start before any side effect happens.

The installer must run as a regular user with sudo rights on a
supported Ubuntu release. Each check raises PreflightError with an
operator-facing message; run_preflight() runs them in order.
"""

from __future__ import annotations

import logging

from netbox_installer.adapters.base import Host
from netbox_installer.core.models.settings import InstallSettings

logger = logging.getLogger(__name__)


class PreflightError(Exception):
    """The host or invoking user is not fit for installation."""


def check_not_superuser(host: Host) -> None:
    if host.is_superuser():
        raise PreflightError(
            "This installer should not be run as root. "
            "Run it as a regular user with sudo privileges."
        )


def check_sudo(host: Host) -> None:
    """Prime sudo credentials; fails when the user cannot elevate."""
    result = host.run(["sudo", "-v"])
    if not result.ok:
        raise PreflightError(
            "The current user cannot use sudo. "
            "Add it to the sudo group or run as a user that can."
        )


def check_os(host: Host, settings: InstallSettings) -> dict[str, str]:
    """Verify OS family and release; returns the parsed os-release."""
    info = host.os_release()
    if not info:
        raise PreflightError("Cannot determine OS version (no /etc/os-release)")

    os_id = info.get("ID", "")
    if os_id != settings.supported_os:
        raise PreflightError(
            f"This installer supports {settings.supported_os} only (detected '{os_id or 'unknown'}')"
        )

    version = info.get("VERSION_ID", "")
    if settings.supported_versions and version not in settings.supported_versions:
        raise PreflightError(
            f"Unsupported {settings.supported_os} release {version or '?'} "
            f"(supported: {', '.join(settings.supported_versions)})"
        )

    logger.info("Detected %s", info.get("PRETTY_NAME", f"{os_id} {version}"))
    return info


def run_preflight(host: Host, settings: InstallSettings) -> dict[str, str]:
    """Run every pre-flight check in order; returns os-release."""
    check_not_superuser(host)
    check_sudo(host)
    return check_os(host, settings)

"""
System packages: apt queries and installs.

Read-only probes (dpkg-query, the apt success stamp) back the
idempotency predicates; installs only ever touch missing packages.
"""

from __future__ import annotations

import logging

from netbox_installer.adapters.base import Host

logger = logging.getLogger(__name__)

# Touched by Ubuntu's APT::Update::Post-Invoke-Success hook
APT_UPDATE_STAMP = "/var/lib/apt/periodic/update-success-stamp"

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def is_pkg_installed(host: Host, pkg: str) -> bool:
    """Check one package with ``dpkg-query -W -f='${Status}'``."""
    result = host.run(["dpkg-query", "-W", "-f=${Status}", pkg])
    return "install ok installed" in result.stdout


def missing_packages(host: Host, packages: list[str]) -> list[str]:
    return [pkg for pkg in packages if not is_pkg_installed(host, pkg)]


def apt_lists_fresh(host: Host, max_age_hours: int) -> bool:
    age = host.file_age(APT_UPDATE_STAMP)
    return age is not None and age < max_age_hours * 3600


def update_system(host: Host) -> None:
    logger.info("Updating package lists and upgrading installed packages")
    host.run(["apt-get", "update"], sudo=True, env=_APT_ENV).check()
    host.run(["apt-get", "upgrade", "-y"], sudo=True, env=_APT_ENV).check()


def install_packages(host: Host, packages: list[str]) -> list[str]:
    """Install whichever of ``packages`` are missing; returns what was installed."""
    missing = missing_packages(host, packages)
    if not missing:
        logger.debug("All %d packages already installed", len(packages))
        return []

    logger.info("Installing %d packages: %s", len(missing), " ".join(missing))
    host.run(
        ["apt-get", "install", "-y", *missing], sudo=True, env=_APT_ENV
    ).check()
    return missing

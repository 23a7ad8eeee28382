"""
Status use case: live service summary for an installed NetBox.
"""

from __future__ import annotations

from dataclasses import dataclass

from netbox_installer.adapters.base import Host
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.services import application, health
from netbox_installer.core.services.health import ServiceReport


@dataclass
class StatusResult:
    """Service states plus where NetBox lives on this host."""

    settings: InstallSettings
    services: ServiceReport
    installed: bool = False

    @property
    def urls(self) -> list[str]:
        return [f"http://{self.settings.domain_name}", "http://<server-ip>"]

    def to_dict(self) -> dict:
        s = self.settings
        return {
            "netbox_version": s.netbox_version,
            "installed": self.installed,
            "netbox_home": s.netbox_home,
            "configuration": s.configuration_path,
            "urls": self.urls,
            **self.services.to_dict(),
        }


def get_status(host: Host, settings: InstallSettings) -> StatusResult:
    """Query every summary service now; nothing is cached."""
    return StatusResult(
        settings=settings,
        services=health.check_services(host, settings.summary_services),
        installed=application.release_present(host, settings),
    )

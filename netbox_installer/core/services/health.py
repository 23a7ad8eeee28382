"""
Service health checker: live systemd state for named services.

Every call queries the service manager again. There is no cache and
no retry: callers (the "start" steps, the diagnostics menu, the final
summary) always see the current state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from netbox_installer.adapters.base import Host
from netbox_installer.core.models.service import ServiceStatus

logger = logging.getLogger(__name__)

_INACTIVE_STATES = {"inactive", "failed", "deactivating", "dead"}


def check(host: Host, service: str) -> ServiceStatus:
    """Query ``systemctl is-active`` for one service."""
    result = host.run(["systemctl", "is-active", service])
    state = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""

    if state == "active":
        return ServiceStatus.ACTIVE
    if state in _INACTIVE_STATES:
        return ServiceStatus.INACTIVE
    logger.debug("Service %s reported %r (exit %d)", service, state, result.returncode)
    return ServiceStatus.UNKNOWN


def is_enabled(host: Host, service: str) -> bool:
    result = host.run(["systemctl", "is-enabled", service])
    return result.ok and result.stdout.strip() == "enabled"


@dataclass
class ServiceReport:
    """Status of a set of services at one point in time."""

    statuses: dict[str, ServiceStatus] = field(default_factory=dict)

    @property
    def all_active(self) -> bool:
        return bool(self.statuses) and all(
            s == ServiceStatus.ACTIVE for s in self.statuses.values()
        )

    @property
    def inactive(self) -> list[str]:
        return [n for n, s in self.statuses.items() if s != ServiceStatus.ACTIVE]

    def to_dict(self) -> dict:
        return {
            "all_active": self.all_active,
            "services": {name: str(s) for name, s in self.statuses.items()},
        }


def check_services(host: Host, services: list[str]) -> ServiceReport:
    """Check each service in order."""
    return ServiceReport(statuses={name: check(host, name) for name in services})

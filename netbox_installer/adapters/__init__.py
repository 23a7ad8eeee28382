"""Host adapters: the machine the installer drives.

Public re-exports for convenient access.
"""

from netbox_installer.adapters.base import CommandError, CommandResult, Host
from netbox_installer.adapters.mock import MockHost
from netbox_installer.adapters.system import SystemHost

__all__ = [
    "CommandError",
    "CommandResult",
    "Host",
    "MockHost",
    "SystemHost",
]

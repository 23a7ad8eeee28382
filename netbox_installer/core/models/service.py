"""
Service status model: live state of a systemd unit.
"""

from __future__ import annotations

from enum import StrEnum


class ServiceStatus(StrEnum):
    """State of a named service as reported by the service manager."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"

    @property
    def symbol(self) -> str:
        return {"active": "✓", "inactive": "✗"}.get(self.value, "?")

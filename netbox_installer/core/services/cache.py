"""
Redis: memory limits in redis.conf and liveness checks.
"""

from __future__ import annotations

import logging
import re

from netbox_installer.adapters.base import Host
from netbox_installer.core.models.settings import InstallSettings

logger = logging.getLogger(__name__)


def _directive(text: str, name: str) -> str | None:
    """Value of an uncommented redis.conf directive, last one wins."""
    matches = re.findall(rf"^{name}\s+(\S+)\s*$", text, re.MULTILINE)
    return matches[-1] if matches else None


def memory_configured(host: Host, settings: InstallSettings) -> bool:
    text = host.read_file(settings.redis_config)
    if text is None:
        return False
    return (
        _directive(text, "maxmemory") == settings.redis_maxmemory
        and _directive(text, "maxmemory-policy") == settings.redis_maxmemory_policy
    )


def configure_memory(host: Host, settings: InstallSettings) -> None:
    """Set maxmemory and maxmemory-policy, replacing any previous value."""
    text = host.read_file(settings.redis_config)
    if text is None:
        raise FileNotFoundError(f"Redis config not found: {settings.redis_config}")

    wanted = {
        "maxmemory": settings.redis_maxmemory,
        "maxmemory-policy": settings.redis_maxmemory_policy,
    }
    for name, value in wanted.items():
        active = re.compile(rf"^{name}\s+\S+.*$", re.MULTILINE)
        commented = re.compile(rf"^#\s*{name}\s+\S+.*$", re.MULTILINE)
        line = f"{name} {value}"
        if active.search(text):
            text = active.sub(line, text)
        elif commented.search(text):
            text = commented.sub(line, text, count=1)
        else:
            text = text.rstrip("\n") + f"\n{line}\n"

    host.write_file(settings.redis_config, text, mode=0o640, owner="redis")
    logger.info(
        "Redis memory set to %s (%s)",
        settings.redis_maxmemory,
        settings.redis_maxmemory_policy,
    )


def ping(host: Host, settings: InstallSettings) -> bool:
    result = host.run(
        ["redis-cli", "-h", settings.redis_host, "-p", str(settings.redis_port), "ping"]
    )
    return result.ok and result.stdout.strip() == "PONG"

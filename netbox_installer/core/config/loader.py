"""
Configuration loader: reads netbox-installer.yml into InstallSettings.

Lookup order for the file:
    1. explicit path (--config)
    2. $NETBOX_INSTALLER_CONFIG
    3. ./netbox-installer.yml
    4. /etc/netbox-installer.yml

No file at all is fine: every setting has a default. NBI_<FIELD>
environment variables override file values (comma-separated for
list settings, e.g. NBI_ALLOWED_HOSTS=netbox.example.com,localhost).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from netbox_installer.core.models.settings import InstallSettings

logger = logging.getLogger(__name__)

CONFIG_FILE = "netbox-installer.yml"
SYSTEM_CONFIG = Path("/etc") / CONFIG_FILE
CONFIG_ENV = "NETBOX_INSTALLER_CONFIG"
ENV_PREFIX = "NBI_"


class ConfigError(Exception):
    """Raised when installer configuration is invalid or unreadable."""


def find_config_file(
    start_dir: Path | None = None, environ: Mapping[str, str] | None = None
) -> Path | None:
    """Locate the config file, or None when there is none."""
    environ = os.environ if environ is None else environ

    explicit = environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit)

    local = (start_dir or Path.cwd()) / CONFIG_FILE
    if local.is_file():
        return local

    if SYSTEM_CONFIG.is_file():
        return SYSTEM_CONFIG

    return None


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Settings may sit at top level or under a "netbox" key
    nested = data.get("netbox")
    return dict(nested) if isinstance(nested, dict) else data


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect NBI_<FIELD> overrides for known settings."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for name, info in InstallSettings.model_fields.items():
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        if getattr(info.annotation, "__origin__", None) is list:
            overrides[name] = [v.strip() for v in value.split(",") if v.strip()]
        else:
            overrides[name] = value

    return overrides


def load_settings(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> InstallSettings:
    """Load and validate installer settings.

    Args:
        path: Explicit config path. If None, searches the usual places.
        environ: Environment mapping (default: os.environ).

    Raises:
        ConfigError: If the file is unreadable or the values are invalid.
    """
    if path is None:
        path = find_config_file(environ=environ)

    data: dict[str, Any] = {}
    if path is not None:
        logger.debug("Loading installer config from %s", path)
        data = _read_yaml(path)

    unknown = sorted(set(data) - set(InstallSettings.model_fields))
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    data.update(env_overrides(environ))

    try:
        settings = InstallSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer configuration: {e}") from e

    logger.info(
        "Settings: NetBox %s for %s (config: %s)",
        settings.netbox_version,
        settings.domain_name,
        path or "defaults",
    )
    return settings

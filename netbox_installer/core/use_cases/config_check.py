"""
Config check use case: validate netbox-installer.yml and report issues.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from netbox_installer.core.config.loader import ConfigError, find_config_file, load_settings
from netbox_installer.core.models.settings import InstallSettings

PLACEHOLDER_DOMAIN = "your-domain.com"


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: InstallSettings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "netbox_version": self.settings.netbox_version if self.settings else None,
            "domain_name": self.settings.domain_name if self.settings else None,
        }


def check_config(
    config_path: Path | None = None, environ: Mapping[str, str] | None = None
) -> ConfigCheckResult:
    """Validate installer configuration and report issues.

    Args:
        config_path: Optional explicit path to netbox-installer.yml.
        environ: Environment mapping (default: os.environ).

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file(environ=environ)
    result.config_path = config_path

    try:
        settings = load_settings(config_path, environ=environ)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.settings = settings

    # Semantic checks
    if config_path is None:
        result.warnings.append("No netbox-installer.yml found; using defaults.")

    if settings.domain_name == PLACEHOLDER_DOMAIN:
        result.warnings.append(
            f"domain_name is still the placeholder '{PLACEHOLDER_DOMAIN}'."
        )

    if "*" in settings.allowed_hosts:
        result.warnings.append("allowed_hosts contains '*'; NetBox will answer any Host header.")

    if settings.admin_email.endswith(f"@{PLACEHOLDER_DOMAIN}"):
        result.warnings.append("admin_email uses the placeholder domain.")

    if not settings.netbox_home.startswith(settings.install_root.rstrip("/") + "/"):
        result.warnings.append(
            f"netbox_home {settings.netbox_home} is outside install_root {settings.install_root}."
        )

    result.valid = True
    return result

"""
Operator-facing status lines and shared CLI plumbing.

Colours follow the installer's conventions: info blue, success green,
warning yellow, error red. Errors go to stderr.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from netbox_installer.adapters.base import Host
from netbox_installer.core.config.loader import ConfigError, load_settings
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.observability.logging_config import setup_logging

EXIT_CONFIG = 2


def info(message: str) -> None:
    click.secho(f"[INFO] {message}", fg="blue")


def success(message: str) -> None:
    click.secho(f"✅ {message}", fg="green")


def warning(message: str) -> None:
    click.secho(f"⚠️  {message}", fg="yellow")


def error(message: str) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)


def configure_logging(verbose: bool, quiet: bool, debug: bool) -> None:
    """Set up logging once per process: CLI flag > NBI_LOG_LEVEL > WARNING."""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("NBI_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("NBI_LOG_FILE"),
        log_file_level=os.environ.get("NBI_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def make_host(mock: bool) -> Host:
    if mock:
        from netbox_installer.adapters.mock import MockHost

        return MockHost()

    from netbox_installer.adapters.system import SystemHost

    return SystemHost()


def resolve_settings(ctx: click.Context) -> InstallSettings:
    """Settings for this invocation, loaded once and kept on ctx.obj."""
    obj = ctx.ensure_object(dict)
    if obj.get("settings") is None:
        config_path: Path | None = obj.get("config_path")
        try:
            obj["settings"] = load_settings(config_path)
        except ConfigError as e:
            error(str(e))
            sys.exit(EXIT_CONFIG)
    return obj["settings"]


def resolve_host(ctx: click.Context) -> Host:
    obj = ctx.ensure_object(dict)
    if obj.get("host") is None:
        obj["host"] = make_host(obj.get("mock", False))
    return obj["host"]

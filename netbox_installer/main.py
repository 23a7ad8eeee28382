"""
NetBox installer: CLI entrypoint.

Usage:
    netbox-installer                 # same as 'install'
    netbox-installer install
    netbox-installer plan
    netbox-installer status --json
    netbox-installer config check
    netbox-installer diagnose
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from netbox_installer import __version__
from netbox_installer.core.models.service import ServiceStatus
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.step import Step, StepRecord
from netbox_installer.core.use_cases.install import InstallResult
from netbox_installer.ui.cli import output
from netbox_installer.ui.cli.diagnose import diagnose

_STATUS_COLORS = {
    ServiceStatus.ACTIVE: "green",
    ServiceStatus.INACTIVE: "red",
    ServiceStatus.UNKNOWN: "yellow",
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="netbox-installer")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to netbox-installer.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Run against an in-memory simulated host.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """Install NetBox on Ubuntu: PostgreSQL, Redis, Gunicorn, Nginx."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["mock"] = mock
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    output.configure_logging(verbose=verbose, quiet=quiet, debug=debug)

    if ctx.invoked_subcommand is None:
        ctx.invoke(install)


# ── install ─────────────────────────────────────────────────────


def _print_record(step: Step, record: StepRecord, total: int, quiet: bool) -> None:
    prefix = f"[{record.ordinal}/{total}]"
    if record.status == "completed":
        output.success(f"{prefix} {step.description}")
    elif record.status == "skipped":
        if not quiet:
            output.info(f"{prefix} {step.description}: already done")
    elif record.fatal:
        output.error(f"{prefix} {step.description}: {record.error}")
    else:
        output.warning(f"{prefix} {step.description} failed, continuing: {record.error}")


def _print_summary(result: InstallResult, settings: InstallSettings) -> None:
    click.echo()
    click.secho("🎉 NetBox installation complete", fg="green", bold=True)
    click.echo(f"   Version:       {settings.netbox_version}")
    click.echo(f"   Install path:  {settings.netbox_home} -> {settings.release_dir}")
    click.echo(f"   Configuration: {settings.configuration_path}")
    click.echo(f"   Admin user:    {settings.admin_username}")

    if result.services:
        click.echo()
        click.secho("   Services:", fg="white", bold=True)
        for name, status in result.services.statuses.items():
            click.echo(f"     {status.symbol} {name:<14}", nl=False)
            click.secho(str(status), fg=_STATUS_COLORS[status])

    click.echo()
    click.secho("   Access NetBox at:", fg="white", bold=True)
    click.echo(f"     http://{settings.domain_name}")
    click.echo("     http://<server-ip>")
    click.echo(f"     Admin panel: http://{settings.domain_name}/admin/")

    click.echo()
    click.secho("   Logs:", fg="white", bold=True)
    click.echo("     sudo journalctl -u netbox -u netbox-rq")
    click.echo("     /var/log/nginx/")

    if result.secrets_file:
        click.echo()
        output.warning(f"Credentials were saved to {result.secrets_file}")
        output.warning(f"Note them somewhere safe, then delete the file: sudo rm {result.secrets_file}")
    click.echo()


@cli.command()
@click.pass_context
def install(ctx: click.Context) -> None:
    """Run the full install (the default command)."""
    from netbox_installer.core.services.install_plan import build_install_steps
    from netbox_installer.core.use_cases.install import EXIT_INTERRUPTED, run_install

    settings = output.resolve_settings(ctx)
    host = output.resolve_host(ctx)
    quiet = ctx.obj.get("quiet", False)
    steps = build_install_steps(settings.network_retries)

    def on_record(step: Step, record: StepRecord) -> None:
        _print_record(step, record, len(steps), quiet)

    if not quiet:
        output.info(f"Installing NetBox v{settings.netbox_version} on {host.name} host")

    try:
        result = run_install(
            host,
            settings,
            on_record=on_record,
            steps=steps,
            use_lock=not ctx.obj.get("mock", False),
        )
    except KeyboardInterrupt:
        click.echo()
        output.error("Interrupted. Re-run the installer to resume; finished steps are skipped.")
        sys.exit(EXIT_INTERRUPTED)

    if result.error:
        output.error(result.error)
        if result.run and result.run.rollback_errors:
            for err in result.run.rollback_errors:
                output.warning(f"Rollback: {err}")
        sys.exit(result.exit_code)

    run = result.run
    assert run is not None  # guaranteed when there is no error
    if not quiet:
        output.info(f"{run.completed} completed, {run.skipped} skipped, {run.failed} failed")
    _print_summary(result, settings)


# ── plan ────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """List install steps with their satisfied/pending state."""
    from netbox_installer.core.use_cases.install import plan_install

    result = plan_install(output.resolve_host(ctx), output.resolve_settings(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho("📋 Install plan", fg="cyan", bold=True)
    for entry in result.entries:
        if entry.error:
            click.secho(f"   {entry.ordinal:>2}. ? {entry.name}  ({entry.error})", fg="yellow")
        elif entry.satisfied:
            click.secho(f"   {entry.ordinal:>2}. ✓ {entry.name}", fg="green")
        else:
            click.echo(f"   {entry.ordinal:>2}. · {entry.name}  {entry.description}")
    click.echo(f"\n   {len(result.pending)} of {len(result.entries)} steps pending")


# ── status ──────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show NetBox service status."""
    from netbox_installer.core.use_cases.status import get_status

    result = get_status(output.resolve_host(ctx), output.resolve_settings(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    settings = result.settings
    click.secho(f"\n📋 NetBox {settings.netbox_version}", fg="cyan", bold=True)
    installed = "installed" if result.installed else "not installed"
    click.echo(f"   {settings.netbox_home} ({installed})")
    click.echo()
    for name, state in result.services.statuses.items():
        click.echo(f"   {state.symbol} {name:<14}", nl=False)
        click.secho(str(state), fg=_STATUS_COLORS[state])
    click.echo()

    if not result.services.all_active:
        sys.exit(1)


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Installer configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate netbox-installer.yml configuration."""
    from netbox_installer.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.settings is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Source:  {result.config_path or 'defaults'}")
        click.echo(f"   NetBox:  {result.settings.netbox_version}")
        click.echo(f"   Domain:  {result.settings.domain_name}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


cli.add_command(diagnose)


if __name__ == "__main__":
    cli()

"""
Diagnostics menu: interactive repair loop for an installed NetBox.

A small state machine:

    displaying-menu → awaiting-selection → executing-action → displaying-menu
                                         ↘ done (option 12)

Out-of-range or non-numeric input shows an error and returns to the
menu; only the exit option ends the loop. Input and output are
injectable so the loop can be driven from tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

import click

from netbox_installer.core.models.context import RunContext
from netbox_installer.core.services.diagnostics import (
    DIAGNOSTICS,
    DiagnosticResult,
    get_diagnostic,
    run_all,
    run_diagnostic,
)
from netbox_installer.ui.cli import output

logger = logging.getLogger(__name__)

RUN_ALL_KEY = "11"
EXIT_KEY = "12"


class MenuState(StrEnum):
    DISPLAYING = "displaying-menu"
    AWAITING = "awaiting-selection"
    EXECUTING = "executing-action"
    DONE = "done"


def _prompt() -> str:
    return click.prompt("Select an option", type=str, prompt_suffix=": ")


class DiagnosticsMenu:
    """Drive the diagnostics loop one transition at a time.

    Args:
        ctx: Run context the actions operate on.
        prompt: Returns the operator's next selection.
        echo: Writes one output line; accepts click.secho keywords.
    """

    def __init__(
        self,
        ctx: RunContext,
        prompt: Callable[[], str] = _prompt,
        echo: Callable[..., None] = click.secho,
    ):
        self.ctx = ctx
        self.state = MenuState.DISPLAYING
        self.results: list[DiagnosticResult] = []
        self._prompt = prompt
        self._echo = echo
        self._selection = ""

    @staticmethod
    def menu_lines() -> list[str]:
        lines = [f"{d.key:>2}) {d.label}" for d in DIAGNOSTICS]
        lines.append(f"{RUN_ALL_KEY:>2}) Run all")
        lines.append(f"{EXIT_KEY:>2}) Exit")
        return lines

    def step(self) -> MenuState:
        """Perform the transition out of the current state."""
        if self.state == MenuState.DISPLAYING:
            self._echo("\nNetBox diagnostics", fg="cyan", bold=True)
            for line in self.menu_lines():
                self._echo(f"  {line}")
            self.state = MenuState.AWAITING

        elif self.state == MenuState.AWAITING:
            self._selection = self._prompt().strip()
            self.state = self._route(self._selection)

        elif self.state == MenuState.EXECUTING:
            self._execute(self._selection)
            self.state = MenuState.DISPLAYING

        return self.state

    def loop(self) -> list[DiagnosticResult]:
        while self.state != MenuState.DONE:
            self.step()
        return self.results

    def _route(self, selection: str) -> MenuState:
        if selection == EXIT_KEY:
            self._echo("Goodbye.", fg="blue")
            return MenuState.DONE
        if selection == RUN_ALL_KEY or get_diagnostic(selection) is not None:
            return MenuState.EXECUTING
        self._echo(
            f"❌ Invalid option '{selection}'. Choose 1-{EXIT_KEY}.", fg="red", err=True
        )
        return MenuState.DISPLAYING

    def _execute(self, selection: str) -> None:
        if selection == RUN_ALL_KEY:
            results = run_all(self.ctx)
        else:
            diagnostic = get_diagnostic(selection)
            assert diagnostic is not None  # guaranteed by _route
            results = [run_diagnostic(diagnostic, self.ctx)]

        for result in results:
            self._show(result)
        self.results.extend(results)

    def _show(self, result: DiagnosticResult) -> None:
        if result.ok:
            self._echo(f"✅ {result.name}: {result.message}", fg="green")
        else:
            self._echo(f"❌ {result.name}: {result.message}", fg="red")
        for line in result.details:
            self._echo(f"     {line}")


def _run_menu(ctx: click.Context) -> None:
    from netbox_installer.core.use_cases.install import build_context

    settings = output.resolve_settings(ctx)
    host = output.resolve_host(ctx)
    menu = DiagnosticsMenu(build_context(host, settings, host.os_release()))
    menu.loop()


@click.command("diagnose")
@click.pass_context
def diagnose(ctx: click.Context) -> None:
    """Interactive diagnostics and repair menu."""
    _run_menu(ctx)


@click.command("netbox-diagnose")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
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
def main(
    ctx: click.Context, verbose: bool, debug: bool, config_path: str | None, mock: bool
) -> None:
    """NetBox diagnostics menu."""
    output.configure_logging(verbose=verbose, quiet=False, debug=debug)
    ctx.obj = {"config_path": Path(config_path) if config_path else None, "mock": mock}
    _run_menu(ctx)

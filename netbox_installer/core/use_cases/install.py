"""
Install use case: pre-flight, lock, ordered run, service summary.

This is the top-level orchestrator behind ``netbox-installer install``:
it refuses unfit hosts before any side effect, serializes runs with the
advisory lock, executes the install sequence and reports the final
state of every NetBox service.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field

from netbox_installer.adapters.base import Host
from netbox_installer.core.engine.lock import LockError, run_lock
from netbox_installer.core.engine.registry import StepRegistry
from netbox_installer.core.engine.runner import RecordListener, StepRunner
from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.step import RunResult
from netbox_installer.core.services import health, secrets
from netbox_installer.core.services.health import ServiceReport
from netbox_installer.core.services.install_plan import build_install_steps
from netbox_installer.core.services.preflight import PreflightError, run_preflight

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_PREFLIGHT = 2
EXIT_LOCKED = 3
EXIT_INTERRUPTED = 130


@dataclass
class InstallResult:
    """Result of one install invocation."""

    run: RunResult | None = None
    services: ServiceReport | None = None
    secrets_file: str | None = None
    error: str | None = None
    exit_code: int = EXIT_OK

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.run:
            result["run"] = self.run.to_dict()
        if self.services:
            result["services"] = self.services.to_dict()
        if self.secrets_file:
            result["secrets_file"] = self.secrets_file
        return result


@dataclass
class PlanEntry:
    ordinal: int
    name: str
    description: str
    satisfied: bool = False
    error: str | None = None


@dataclass
class PlanResult:
    """Satisfied/pending state of every step, from predicates only."""

    entries: list[PlanEntry] = field(default_factory=list)

    @property
    def pending(self) -> list[PlanEntry]:
        return [e for e in self.entries if not e.satisfied]

    def to_dict(self) -> dict:
        return {
            "total": len(self.entries),
            "pending": len(self.pending),
            "steps": [
                {
                    "ordinal": e.ordinal,
                    "name": e.name,
                    "description": e.description,
                    "satisfied": e.satisfied,
                    "error": e.error,
                }
                for e in self.entries
            ],
        }


def build_context(
    host: Host, settings: InstallSettings, os_release: dict[str, str] | None = None
) -> RunContext:
    """Fresh run context, carrying secrets left by an earlier run."""
    ctx = RunContext(settings=settings, host=host, os_release=dict(os_release or {}))
    ctx.secrets = secrets.load_existing_secrets(host, settings)
    return ctx


def run_install(
    host: Host,
    settings: InstallSettings,
    on_record: RecordListener | None = None,
    runner: StepRunner | None = None,
    steps: StepRegistry | None = None,
    use_lock: bool = True,
) -> InstallResult:
    """Run the full install sequence.

    Args:
        host: Machine to provision.
        settings: Validated installer settings.
        on_record: Listener for per-step progress lines.
        runner: Optional pre-configured runner (tests pass a no-sleep one).
        steps: Step list override; defaults to the full install sequence.
        use_lock: Hold the advisory run lock for the duration of the run.

    Returns:
        InstallResult; KeyboardInterrupt propagates to the caller.
    """
    result = InstallResult()

    # ── Pre-flight ───────────────────────────────────────────────
    try:
        os_release = run_preflight(host, settings)
    except PreflightError as e:
        result.error = str(e)
        result.exit_code = EXIT_PREFLIGHT
        return result

    ctx = build_context(host, settings, os_release)
    if steps is None:
        steps = build_install_steps(settings.network_retries)
    if runner is None:
        runner = StepRunner(on_record=on_record)

    # ── Run ──────────────────────────────────────────────────────
    lock = run_lock(settings.lock_file) if use_lock else nullcontext()
    try:
        with lock:
            run = runner.run(steps, ctx)
    except LockError as e:
        result.error = str(e)
        result.exit_code = EXIT_LOCKED
        return result

    result.run = run
    if host.exists(settings.secrets_file):
        result.secrets_file = settings.secrets_file

    if not run.ok:
        result.error = str(run.fatal_error)
        result.exit_code = EXIT_ABORTED
        return result

    # ── Summary ──────────────────────────────────────────────────
    result.services = health.check_services(host, settings.summary_services)
    if not result.services.all_active:
        logger.warning("Services not active after install: %s", ", ".join(result.services.inactive))
    return result


def plan_install(host: Host, settings: InstallSettings) -> PlanResult:
    """Evaluate every idempotency predicate without running any action."""
    ctx = build_context(host, settings, host.os_release())
    registry = build_install_steps(settings.network_retries)
    plan = PlanResult()

    for step in registry:
        entry = PlanEntry(registry.ordinal(step.name), step.name, step.description)
        try:
            entry.satisfied = bool(step.check(ctx))
        except Exception as e:
            logger.debug("Predicate of '%s' raised", step.name, exc_info=True)
            entry.error = str(e) or e.__class__.__name__
        plan.entries.append(entry)
    return plan

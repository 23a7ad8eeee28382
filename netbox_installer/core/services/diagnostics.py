"""
Diagnostics: standalone checks and repairs for an installed NetBox.

Each action reuses the install building blocks in isolation, outside
the ordered run, and reports a DiagnosticResult. An action never
raises: exceptions become failed results so the menu keeps going.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from netbox_installer.adapters.base import CommandError
from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.service import ServiceStatus
from netbox_installer.core.services import (
    application,
    cache,
    database,
    health,
    install_plan,
    packages,
)

logger = logging.getLogger(__name__)

PYTHON_RUNTIME_PACKAGES = ["python3", "python3-venv", "python3-dev"]


@dataclass
class DiagnosticResult:
    """Outcome of one diagnostic action."""

    name: str
    ok: bool
    message: str
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ok": self.ok,
            "message": self.message,
            "details": self.details,
        }


DiagnosticAction = Callable[[RunContext], DiagnosticResult]


@dataclass(frozen=True)
class Diagnostic:
    key: str
    name: str
    label: str
    action: DiagnosticAction


# ── Actions ─────────────────────────────────────────────────────


def service_status(ctx: RunContext) -> DiagnosticResult:
    report = health.check_services(ctx.host, ctx.settings.summary_services)
    details = [f"{status.symbol} {name}: {status}" for name, status in report.statuses.items()]
    if report.all_active:
        return DiagnosticResult("service-status", True, "All services are active", details)
    return DiagnosticResult(
        "service-status",
        False,
        f"Not active: {', '.join(report.inactive)}",
        details,
    )


def fix_python_runtime(ctx: RunContext) -> DiagnosticResult:
    """Reinstall the system Python bits and rebuild the virtualenv."""
    s = ctx.settings
    installed = packages.install_packages(ctx.host, PYTHON_RUNTIME_PACKAGES)
    details = [f"installed: {' '.join(installed)}"] if installed else []

    if application.venv_present(ctx.host, s) and ctx.host.run(
        [s.venv_python, "--version"], user=s.netbox_user
    ).ok:
        return DiagnosticResult("fix-python-runtime", True, "Python runtime is healthy", details)

    application.create_venv(ctx.host, s, clear=True)
    application.install_requirements(ctx.host, s)
    details.append(f"recreated {s.venv_dir}")
    return DiagnosticResult("fix-python-runtime", True, "Virtual environment rebuilt", details)


def fix_permissions(ctx: RunContext) -> DiagnosticResult:
    s = ctx.settings
    application.set_ownership(ctx.host, s)
    application.tighten_configuration(ctx.host, s)
    return DiagnosticResult(
        "fix-permissions",
        True,
        f"{s.netbox_home} owned by {s.netbox_user}",
        [f"{s.configuration_path} restricted to 0600"],
    )


def reinstall_dependencies(ctx: RunContext) -> DiagnosticResult:
    application.install_requirements(ctx.host, ctx.settings, reinstall=True)
    ok = application.requirements_installed(ctx.host, ctx.settings)
    message = "Python requirements reinstalled" if ok else "Requirements still not importable"
    return DiagnosticResult("reinstall-dependencies", ok, message)


def check_configuration(ctx: RunContext) -> DiagnosticResult:
    s = ctx.settings
    if not ctx.host.exists(s.configuration_path):
        return DiagnosticResult(
            "check-configuration", False, f"{s.configuration_path} is missing"
        )
    result = application.check_configuration(ctx.host, s)
    output = (result.stdout or result.stderr).strip().splitlines()
    if not result.ok:
        return DiagnosticResult(
            "check-configuration", False, "Django system check failed", output
        )
    return DiagnosticResult("check-configuration", True, "Configuration is valid", output)


def check_database(ctx: RunContext) -> DiagnosticResult:
    s = ctx.settings
    details: list[str] = []
    if not database.server_ready(ctx.host, s):
        return DiagnosticResult(
            "check-database", False, f"PostgreSQL is not accepting connections on {s.db_host}"
        )
    details.append("server accepting connections")

    for label, present in (
        (f"database {s.db_name}", database.database_exists(ctx.host, s.db_name)),
        (f"role {s.db_user}", database.role_exists(ctx.host, s.db_user)),
    ):
        details.append(f"{label}: {'present' if present else 'missing'}")
        if not present:
            return DiagnosticResult("check-database", False, f"{label} is missing", details)

    result = application.check_database_connection(ctx.host, s)
    if not result.ok:
        details.extend(result.stderr.strip().splitlines()[-1:])
        return DiagnosticResult(
            "check-database", False, "NetBox cannot connect to its database", details
        )
    return DiagnosticResult("check-database", True, "Database connection works", details)


def check_redis(ctx: RunContext) -> DiagnosticResult:
    status = health.check(ctx.host, "redis-server")
    details = [f"redis-server: {status}"]
    if status != ServiceStatus.ACTIVE:
        return DiagnosticResult("check-redis", False, "redis-server is not running", details)
    if not cache.ping(ctx.host, ctx.settings):
        return DiagnosticResult("check-redis", False, "Redis did not answer PING", details)
    if not cache.memory_configured(ctx.host, ctx.settings):
        details.append("maxmemory settings differ from the configured values")
    return DiagnosticResult("check-redis", True, "Redis answers PING", details)


def run_migrations(ctx: RunContext) -> DiagnosticResult:
    if application.migrations_applied(ctx.host, ctx.settings):
        return DiagnosticResult("run-migrations", True, "No unapplied migrations")
    install_plan.run_migrations(ctx)
    return DiagnosticResult("run-migrations", True, "Migrations applied")


def collect_static(ctx: RunContext) -> DiagnosticResult:
    install_plan.collect_static(ctx)
    return DiagnosticResult(
        "collect-static", True, f"Static files collected into {ctx.settings.static_root}"
    )


def show_logs(ctx: RunContext, lines: int = 50) -> DiagnosticResult:
    text = application.recent_logs(ctx.host, ctx.settings.managed_services, lines=lines)
    return DiagnosticResult(
        "show-logs", True, f"Last {lines} journal lines", text.rstrip().splitlines()
    )


# ── Menu table ──────────────────────────────────────────────────

DIAGNOSTICS: list[Diagnostic] = [
    Diagnostic("1", "service-status", "Service status", service_status),
    Diagnostic("2", "fix-python-runtime", "Fix missing Python runtime", fix_python_runtime),
    Diagnostic("3", "fix-permissions", "Fix permissions", fix_permissions),
    Diagnostic("4", "reinstall-dependencies", "Reinstall Python dependencies", reinstall_dependencies),
    Diagnostic("5", "check-configuration", "Check configuration", check_configuration),
    Diagnostic("6", "check-database", "Check database connection", check_database),
    Diagnostic("7", "check-redis", "Check Redis", check_redis),
    Diagnostic("8", "run-migrations", "Run migrations", run_migrations),
    Diagnostic("9", "collect-static", "Collect static files", collect_static),
    Diagnostic("10", "show-logs", "Show recent logs", show_logs),
]


def get_diagnostic(key: str) -> Diagnostic | None:
    for diagnostic in DIAGNOSTICS:
        if diagnostic.key == key:
            return diagnostic
    return None


def run_diagnostic(diagnostic: Diagnostic, ctx: RunContext) -> DiagnosticResult:
    """Run one action, turning any exception into a failed result."""
    logger.info("Diagnostic %s: %s", diagnostic.key, diagnostic.label)
    try:
        return diagnostic.action(ctx)
    except CommandError as e:
        logger.debug("Diagnostic %s command failed", diagnostic.key, exc_info=True)
        return DiagnosticResult(diagnostic.name, False, str(e))
    except Exception as e:
        logger.exception("Diagnostic %s raised", diagnostic.key)
        return DiagnosticResult(diagnostic.name, False, f"{type(e).__name__}: {e}")


def run_all(ctx: RunContext) -> list[DiagnosticResult]:
    """Run every diagnostic in menu order; a failure does not stop the rest."""
    return [run_diagnostic(diagnostic, ctx) for diagnostic in DIAGNOSTICS]

"""
Install plan: the declarative NetBox provisioning sequence.

Each step pairs an idempotency predicate with an action. Predicates
only read host state, so a re-run after a partial failure skips what
is already in place and resumes at the first missing effect.

The actions here are also what the diagnostics menu reuses, one at a
time, outside the full ordered run.
"""

from __future__ import annotations

import logging
from typing import Any

from netbox_installer.core.engine.registry import StepRegistry
from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.service import ServiceStatus
from netbox_installer.core.models.step import FailurePolicy, Step, StepError
from netbox_installer.core.models.template import GeneratedFile
from netbox_installer.core.services import (
    application,
    cache,
    database,
    health,
    packages,
    secrets,
    templates,
)

logger = logging.getLogger(__name__)


# ── Shared helpers ──────────────────────────────────────────────


def file_matches(ctx: RunContext, generated: GeneratedFile) -> bool:
    return ctx.host.read_file(generated.path) == generated.content


def write_generated(ctx: RunContext, generated: GeneratedFile) -> None:
    ctx.host.write_file(
        generated.path, generated.content, mode=generated.mode, owner=generated.owner
    )


def services_active(ctx: RunContext, services: list[str]) -> bool:
    return all(health.check(ctx.host, s) == ServiceStatus.ACTIVE for s in services)


def services_enabled(ctx: RunContext, services: list[str]) -> bool:
    return all(health.is_enabled(ctx.host, s) for s in services)


def start_and_verify(ctx: RunContext, services: list[str]) -> None:
    """Start services, then confirm with the health checker.

    A service still inactive after its start command is a failure of
    the calling step.
    """
    for service in services:
        if health.check(ctx.host, service) == ServiceStatus.ACTIVE:
            continue
        ctx.host.run(["systemctl", "start", service], sudo=True).check()
        ctx.remember_service(service)

    for service in services:
        status = health.check(ctx.host, service)
        if status != ServiceStatus.ACTIVE:
            raise StepError(f"service '{service}' is {status} after start")


# ── System ──────────────────────────────────────────────────────


def _apt_fresh(ctx: RunContext) -> bool:
    return packages.apt_lists_fresh(ctx.host, ctx.settings.apt_max_age_hours)


def update_system(ctx: RunContext) -> None:
    packages.update_system(ctx.host)


def _dependencies_present(ctx: RunContext) -> bool:
    return not packages.missing_packages(ctx.host, ctx.settings.system_packages)


def install_dependencies(ctx: RunContext) -> dict[str, Any]:
    installed = packages.install_packages(ctx.host, ctx.settings.system_packages)
    return {"installed_packages": installed}


# ── PostgreSQL / Redis ──────────────────────────────────────────


def _postgres_running(ctx: RunContext) -> bool:
    return services_active(ctx, ["postgresql"]) and services_enabled(ctx, ["postgresql"])


def start_postgresql(ctx: RunContext) -> None:
    ctx.host.run(["systemctl", "enable", "postgresql"], sudo=True).check()
    start_and_verify(ctx, ["postgresql"])


def _redis_configured(ctx: RunContext) -> bool:
    return cache.memory_configured(ctx.host, ctx.settings)


def configure_redis(ctx: RunContext) -> None:
    cache.configure_memory(ctx.host, ctx.settings)
    ctx.host.run(["systemctl", "restart", "redis-server"], sudo=True).check()


def _redis_running(ctx: RunContext) -> bool:
    return services_active(ctx, ["redis-server"]) and services_enabled(
        ctx, ["redis-server"]
    )


def start_redis(ctx: RunContext) -> None:
    ctx.host.run(["systemctl", "enable", "redis-server"], sudo=True).check()
    start_and_verify(ctx, ["redis-server"])


# ── Service account and secrets ─────────────────────────────────


def _user_present(ctx: RunContext) -> bool:
    return application.user_exists(ctx.host, ctx.settings.netbox_user)


def create_service_user(ctx: RunContext) -> None:
    application.create_user(ctx.host, ctx.settings)


def _secrets_present(ctx: RunContext) -> bool:
    return ctx.secrets is not None


def generate_secrets(ctx: RunContext) -> dict[str, Any]:
    bundle = secrets.generate()
    path = ctx.settings.secrets_file
    secrets.write_secrets_file(ctx.host, path, bundle, owner=ctx.settings.netbox_user)
    ctx.remember_artifact(path)
    return {"secrets": bundle}


# Steps that put the generated values on the host
_SECRET_CONSUMERS = ("create-database-user", "write-configuration", "create-superuser")


def remove_written_secrets(ctx: RunContext) -> None:
    """Remove the secrets file of this run unless its values are already in use.

    Once the database role or configuration.py carries the password, the
    file is the operator's only record of it and a re-run needs it.
    """
    path = ctx.settings.secrets_file
    if path not in ctx.written_artifacts:
        return
    applied = [name for name in _SECRET_CONSUMERS if name in ctx.completed]
    if applied:
        logger.warning("Keeping %s: credentials already applied by %s", path, ", ".join(applied))
        return
    secrets.remove_secrets_file(ctx.host, path)
    ctx.written_artifacts.remove(path)


# ── Database ────────────────────────────────────────────────────


def _database_present(ctx: RunContext) -> bool:
    return database.database_exists(ctx.host, ctx.settings.db_name)


def create_database(ctx: RunContext) -> None:
    database.create_database(ctx.host, ctx.settings.db_name)


def _role_present(ctx: RunContext) -> bool:
    # Credentials generated in this run are unknown to an existing role
    if "generate-secrets" in ctx.completed:
        return False
    return database.role_exists(ctx.host, ctx.settings.db_user)


def create_database_user(ctx: RunContext) -> None:
    s = ctx.settings
    password = ctx.require_secrets().db_password
    if database.role_exists(ctx.host, s.db_user):
        logger.warning(
            "Role %s already exists but its password was lost; setting the newly generated one",
            s.db_user,
        )
        database.set_role_password(ctx.host, s.db_user, password)
        return
    database.create_role(ctx.host, s, password)


# ── Application ─────────────────────────────────────────────────


def _release_present(ctx: RunContext) -> bool:
    return application.release_present(ctx.host, ctx.settings)


def download_netbox(ctx: RunContext) -> None:
    application.download_release(ctx.host, ctx.settings)


def _ownership_ok(ctx: RunContext) -> bool:
    return application.ownership_ok(ctx.host, ctx.settings)


def set_ownership(ctx: RunContext) -> None:
    application.set_ownership(ctx.host, ctx.settings)


def _venv_present(ctx: RunContext) -> bool:
    return application.venv_present(ctx.host, ctx.settings)


def create_virtualenv(ctx: RunContext) -> None:
    application.create_venv(ctx.host, ctx.settings)


def _requirements_present(ctx: RunContext) -> bool:
    return application.requirements_installed(ctx.host, ctx.settings)


def install_requirements(ctx: RunContext) -> None:
    application.install_requirements(ctx.host, ctx.settings)


def _configuration_current(ctx: RunContext) -> bool:
    if ctx.secrets is None:
        return False
    return file_matches(ctx, templates.render_configuration(ctx.settings, ctx.secrets))


def write_configuration(ctx: RunContext) -> None:
    generated = templates.render_configuration(ctx.settings, ctx.require_secrets())
    write_generated(ctx, generated)


def _migrations_applied(ctx: RunContext) -> bool:
    return application.migrations_applied(ctx.host, ctx.settings)


def run_migrations(ctx: RunContext) -> None:
    application.run_migrations(ctx.host, ctx.settings)


def _static_present(ctx: RunContext) -> bool:
    return application.static_collected(ctx.host, ctx.settings)


def collect_static(ctx: RunContext) -> None:
    application.collect_static(ctx.host, ctx.settings)


def _superuser_present(ctx: RunContext) -> bool:
    return application.superuser_exists(ctx.host, ctx.settings)


def create_superuser(ctx: RunContext) -> None:
    password = ctx.require_secrets().admin_password
    if not password:
        raise StepError(
            "no admin password in the recovered secrets; "
            "create the account with 'manage.py createsuperuser'"
        )
    application.create_superuser(ctx.host, ctx.settings, password)


# ── Web stack ───────────────────────────────────────────────────


def _gunicorn_current(ctx: RunContext) -> bool:
    return file_matches(ctx, templates.render_gunicorn(ctx.settings))


def write_gunicorn_config(ctx: RunContext) -> None:
    write_generated(ctx, templates.render_gunicorn(ctx.settings))


def _units_current(ctx: RunContext) -> bool:
    return all(file_matches(ctx, unit) for unit in templates.render_units(ctx.settings))


def install_systemd_units(ctx: RunContext) -> None:
    for unit in templates.render_units(ctx.settings):
        write_generated(ctx, unit)
    ctx.host.run(["systemctl", "daemon-reload"], sudo=True).check()


def _nginx_current(ctx: RunContext) -> bool:
    s = ctx.settings
    return (
        file_matches(ctx, templates.render_nginx_site(s))
        and ctx.host.exists(s.nginx_enabled_path)
        and not ctx.host.exists(s.nginx_default_site)
    )


def configure_nginx(ctx: RunContext) -> None:
    s = ctx.settings
    write_generated(ctx, templates.render_nginx_site(s))
    ctx.host.remove(s.nginx_default_site)
    ctx.host.symlink(s.nginx_site_path, s.nginx_enabled_path)
    ctx.host.run(["nginx", "-t"], sudo=True).check()
    ctx.host.run(["systemctl", "reload-or-restart", "nginx"], sudo=True).check()


def _services_enabled_at_boot(ctx: RunContext) -> bool:
    return services_enabled(ctx, ctx.settings.managed_services)


def enable_services(ctx: RunContext) -> None:
    ctx.host.run(["systemctl", "enable", *ctx.settings.managed_services], sudo=True).check()


def _services_running(ctx: RunContext) -> bool:
    return services_active(ctx, ctx.settings.managed_services)


def start_services(ctx: RunContext) -> None:
    start_and_verify(ctx, ctx.settings.managed_services)


def stop_started_services(ctx: RunContext) -> None:
    """Stop and disable whatever this run started, newest first."""
    for service in reversed(list(ctx.started_services)):
        ctx.host.run(["systemctl", "stop", service], sudo=True)
        ctx.host.run(["systemctl", "disable", service], sudo=True)
        ctx.started_services.remove(service)
        logger.info("Stopped %s", service)


# ── Registry ────────────────────────────────────────────────────


def build_install_steps(network_retries: int = 2) -> StepRegistry:
    """The full ordered NetBox install sequence."""
    r = network_retries
    return StepRegistry(
        [
            Step("update-system", "Update system packages", _apt_fresh, update_system, retries=r),
            Step(
                "install-dependencies",
                "Install system dependencies",
                _dependencies_present,
                install_dependencies,
                retries=r,
            ),
            Step(
                "start-postgresql",
                "Start PostgreSQL",
                _postgres_running,
                start_postgresql,
                rollback=stop_started_services,
            ),
            Step("configure-redis", "Configure Redis memory limits", _redis_configured, configure_redis),
            Step(
                "start-redis",
                "Start Redis",
                _redis_running,
                start_redis,
                rollback=stop_started_services,
            ),
            Step("create-service-user", "Create NetBox system user", _user_present, create_service_user),
            Step(
                "generate-secrets",
                "Generate credentials",
                _secrets_present,
                generate_secrets,
                rollback=remove_written_secrets,
            ),
            Step("create-database", "Create NetBox database", _database_present, create_database),
            Step(
                "create-database-user",
                "Create NetBox database user",
                _role_present,
                create_database_user,
            ),
            Step("download-netbox", "Download NetBox release", _release_present, download_netbox, retries=r),
            Step("set-ownership", "Set NetBox file ownership", _ownership_ok, set_ownership),
            Step("create-virtualenv", "Create Python virtual environment", _venv_present, create_virtualenv),
            Step(
                "install-requirements",
                "Install NetBox Python requirements",
                _requirements_present,
                install_requirements,
                retries=r,
            ),
            Step(
                "write-configuration",
                "Write NetBox configuration",
                _configuration_current,
                write_configuration,
            ),
            Step("run-migrations", "Run database migrations", _migrations_applied, run_migrations),
            Step("collect-static", "Collect static files", _static_present, collect_static),
            Step(
                "create-superuser",
                "Create NetBox superuser",
                _superuser_present,
                create_superuser,
                policy=FailurePolicy.WARN,
            ),
            Step("write-gunicorn-config", "Write Gunicorn configuration", _gunicorn_current, write_gunicorn_config),
            Step("install-systemd-units", "Install systemd units", _units_current, install_systemd_units),
            Step("configure-nginx", "Configure Nginx", _nginx_current, configure_nginx),
            Step("enable-services", "Enable NetBox services", _services_enabled_at_boot, enable_services),
            Step(
                "start-services",
                "Start NetBox services",
                _services_running,
                start_services,
                rollback=stop_started_services,
            ),
        ]
    )

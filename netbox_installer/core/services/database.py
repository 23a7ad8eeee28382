"""
PostgreSQL: database and role provisioning through psql.

All SQL is fed to ``psql`` on stdin as the ``postgres`` superuser, so
the role password never appears in a process listing or in logs.
Creation is guarded by catalog lookups, which makes a re-run after a
partial failure a no-op instead of a "already exists" error.
"""

from __future__ import annotations

import logging

from netbox_installer.adapters.base import CommandResult, Host
from netbox_installer.core.models.settings import InstallSettings

logger = logging.getLogger(__name__)

POSTGRES_USER = "postgres"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def quote_ident(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def psql(host: Host, sql: str) -> CommandResult:
    """Run SQL as the postgres superuser (tuples-only, unaligned)."""
    return host.run(
        ["psql", "-v", "ON_ERROR_STOP=1", "-tA"],
        user=POSTGRES_USER,
        input=sql,
    )


def _exists(host: Host, catalog: str, column: str, name: str) -> bool:
    result = psql(
        host, f"SELECT 1 FROM {catalog} WHERE {column} = {quote_literal(name)};\n"
    )
    return result.ok and result.stdout.strip() == "1"


def database_exists(host: Host, name: str) -> bool:
    return _exists(host, "pg_database", "datname", name)


def role_exists(host: Host, name: str) -> bool:
    return _exists(host, "pg_roles", "rolname", name)


def create_database(host: Host, name: str) -> None:
    logger.info("Creating database %s", name)
    psql(host, f"CREATE DATABASE {quote_ident(name)};\n").check()


def create_role(host: Host, settings: InstallSettings, password: str) -> None:
    """Create the application role and hand it the database."""
    user = quote_ident(settings.db_user)
    db = quote_ident(settings.db_name)
    sql = "\n".join(
        [
            f"CREATE USER {user} WITH PASSWORD {quote_literal(password)};",
            f"ALTER ROLE {user} SET client_encoding TO 'utf8';",
            f"ALTER ROLE {user} SET default_transaction_isolation TO 'read committed';",
            f"ALTER ROLE {user} SET timezone TO 'UTC';",
            f"GRANT ALL PRIVILEGES ON DATABASE {db} TO {user};",
            f"ALTER DATABASE {db} OWNER TO {user};",
            f"ALTER USER {user} CREATEDB;",
            "",
        ]
    )
    logger.info("Creating database role %s", settings.db_user)
    psql(host, sql).check()


def set_role_password(host: Host, name: str, password: str) -> None:
    logger.info("Resetting password of database role %s", name)
    psql(host, f"ALTER ROLE {quote_ident(name)} WITH PASSWORD {quote_literal(password)};\n").check()


def server_ready(host: Host, settings: InstallSettings) -> bool:
    return host.run(["pg_isready", "-h", settings.db_host]).ok

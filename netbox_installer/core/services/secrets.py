"""
Credential generator: database password, Django secret key, admin password.

Secrets come from the ``secrets`` module (CSPRNG). The bundle is
written once per run to the secrets file as KEY=VALUE lines, owned by
the service account with mode 0600. The operator is told to delete
the file after noting the values; nothing here deletes it
automatically except rollback of a failed run.
"""

from __future__ import annotations

import logging
import re
import secrets as _secrets
import string

from netbox_installer.adapters.base import Host
from netbox_installer.core.models.context import SecretBundle
from netbox_installer.core.models.settings import InstallSettings

logger = logging.getLogger(__name__)

# Same alphabet as NetBox's generate_secret_key.py; no quotes or
# backslashes, so the key can sit inside a Python string literal.
SECRET_KEY_CHARS = string.ascii_letters + string.digits + "!@#$%^&*(-_=+)"
SECRET_KEY_LENGTH = 50

# 32 random bytes, the same entropy as `openssl rand -base64 32`
DB_PASSWORD_BYTES = 32
ADMIN_PASSWORD_BYTES = 18

_CONFIG_DB_PASSWORD = re.compile(
    r"DATABASE\s*=\s*\{.*?'PASSWORD':\s*'([^']*)'", re.DOTALL
)
_CONFIG_SECRET_KEY = re.compile(r"^SECRET_KEY\s*=\s*'([^']*)'", re.MULTILINE)


def generate_secret_key(length: int = SECRET_KEY_LENGTH) -> str:
    return "".join(_secrets.choice(SECRET_KEY_CHARS) for _ in range(length))


def generate() -> SecretBundle:
    """Generate a fresh SecretBundle from the system CSPRNG."""
    return SecretBundle(
        db_password=_secrets.token_urlsafe(DB_PASSWORD_BYTES),
        secret_key=generate_secret_key(),
        admin_password=_secrets.token_urlsafe(ADMIN_PASSWORD_BYTES),
    )


# ── Secrets file surface ────────────────────────────────────────


def format_secrets(bundle: SecretBundle) -> str:
    return "".join(f"{key}={value}\n" for key, value in bundle.as_env().items())


def parse_secrets(text: str) -> SecretBundle | None:
    """Parse a secrets file; None when required keys are missing."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line or line.lstrip().startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()

    if not values.get("DB_PASSWORD") or not values.get("SECRET_KEY"):
        return None
    return SecretBundle(
        db_password=values["DB_PASSWORD"],
        secret_key=values["SECRET_KEY"],
        admin_password=values.get("ADMIN_PASSWORD", ""),
    )


def write_secrets_file(
    host: Host, path: str, bundle: SecretBundle, owner: str | None = None
) -> None:
    """Write the bundle owner-only (mode 0600) to the secrets file."""
    host.write_file(path, format_secrets(bundle), mode=0o600, owner=owner)
    logger.info("Secrets written to %s", path)


def remove_secrets_file(host: Host, path: str) -> None:
    host.remove(path)
    logger.info("Removed secrets file %s", path)


def load_existing_secrets(host: Host, settings: InstallSettings) -> SecretBundle | None:
    """Recover the bundle of an earlier (possibly partial) run.

    Looks at the secrets file first, then at an existing NetBox
    configuration.py. The configuration does not carry the admin
    password, so a bundle recovered from it has none.
    """
    text = host.read_file(settings.secrets_file)
    if text:
        bundle = parse_secrets(text)
        if bundle is not None:
            logger.debug("Loaded secrets from %s", settings.secrets_file)
            return bundle
        logger.warning("Ignoring unparseable secrets file %s", settings.secrets_file)

    config = host.read_file(settings.configuration_path)
    if config:
        password = _CONFIG_DB_PASSWORD.search(config)
        key = _CONFIG_SECRET_KEY.search(config)
        if password and key:
            logger.debug("Recovered secrets from %s", settings.configuration_path)
            return SecretBundle(db_password=password.group(1), secret_key=key.group(1))

    return None

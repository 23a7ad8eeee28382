"""
Install settings: every operator-supplied input for one installation.

Loaded from netbox-installer.yml (plus NBI_* environment overrides),
these are the free-form strings substituted into templates and
commands. Validation is presence-only: values are not interpreted.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PACKAGES = [
    "python3",
    "python3-pip",
    "python3-venv",
    "python3-dev",
    "build-essential",
    "libxml2-dev",
    "libxslt1-dev",
    "libffi-dev",
    "libpq-dev",
    "libssl-dev",
    "zlib1g-dev",
    "libjpeg-dev",
    "uuid-dev",
    "git",
    "curl",
    "postgresql",
    "postgresql-contrib",
    "redis-server",
    "nginx",
]

DEFAULT_DOWNLOAD_URL = (
    "https://github.com/netbox-community/netbox/archive/refs/tags/v{version}.tar.gz"
)


class InstallSettings(BaseModel):
    """Inputs for one NetBox installation.

    Derived paths (release dir, venv, configuration.py, unit files)
    are exposed as properties so every step agrees on the layout.
    """

    netbox_version: str = Field(default="4.1.3", min_length=1)
    netbox_user: str = Field(default="netbox", min_length=1)
    install_root: str = Field(default="/opt", min_length=1)
    netbox_home: str = Field(default="/opt/netbox", min_length=1)

    db_name: str = Field(default="netbox", min_length=1)
    db_user: str = Field(default="netbox", min_length=1)
    db_host: str = Field(default="localhost", min_length=1)
    db_port: str = ""

    redis_host: str = Field(default="localhost", min_length=1)
    redis_port: int = 6379
    redis_config: str = "/etc/redis/redis.conf"
    redis_maxmemory: str = "512mb"
    redis_maxmemory_policy: str = "allkeys-lru"

    domain_name: str = Field(default="your-domain.com", min_length=1)
    admin_email: str = Field(default="admin@your-domain.com", min_length=1)
    admin_username: str = Field(default="admin", min_length=1)
    allowed_hosts: list[str] = Field(default_factory=lambda: ["*"])

    secrets_file: str = Field(default="/tmp/netbox_credentials.txt", min_length=1)
    gunicorn_bind: str = "127.0.0.1:8001"
    gunicorn_workers: int = 5

    supported_os: str = "ubuntu"
    supported_versions: list[str] = Field(
        default_factory=lambda: ["20.04", "22.04", "24.04"]
    )

    download_url_template: str = DEFAULT_DOWNLOAD_URL
    system_packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_PACKAGES)
    )

    lock_file: str = "/run/lock/netbox-installer.lock"
    network_retries: int = 2
    apt_max_age_hours: int = 24

    # ── Derived layout ──────────────────────────────────────────

    @property
    def release_dir(self) -> str:
        return f"{self.install_root}/netbox-{self.netbox_version}"

    @property
    def download_url(self) -> str:
        return self.download_url_template.format(version=self.netbox_version)

    @property
    def app_dir(self) -> str:
        """Django project root (where manage.py lives)."""
        return f"{self.netbox_home}/netbox"

    @property
    def manage_py(self) -> str:
        return f"{self.app_dir}/manage.py"

    @property
    def venv_dir(self) -> str:
        return f"{self.netbox_home}/venv"

    @property
    def venv_python(self) -> str:
        return f"{self.venv_dir}/bin/python3"

    @property
    def configuration_path(self) -> str:
        return f"{self.app_dir}/netbox/configuration.py"

    @property
    def static_root(self) -> str:
        return f"{self.app_dir}/static"

    @property
    def gunicorn_config_path(self) -> str:
        return f"{self.netbox_home}/gunicorn.py"

    @property
    def pid_file(self) -> str:
        return "/var/tmp/netbox.pid"

    @property
    def nginx_site_path(self) -> str:
        return "/etc/nginx/sites-available/netbox"

    @property
    def nginx_enabled_path(self) -> str:
        return "/etc/nginx/sites-enabled/netbox"

    @property
    def nginx_default_site(self) -> str:
        return "/etc/nginx/sites-enabled/default"

    @property
    def managed_services(self) -> list[str]:
        """Services the installer starts itself, in start order."""
        return ["netbox", "netbox-rq", "nginx"]

    @property
    def summary_services(self) -> list[str]:
        """Services reported in the final summary."""
        return ["netbox", "netbox-rq", "nginx", "postgresql", "redis-server"]

    def unit_path(self, service: str) -> str:
        return f"/etc/systemd/system/{service}.service"

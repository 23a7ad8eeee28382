"""
Template renderers: configuration.py, gunicorn.py, systemd units, Nginx site.

Each renderer is a pure function of the settings (and, for the NetBox
configuration, the SecretBundle). Rendering is deterministic, so the
"already configured" predicates can simply compare the file on the
host with a fresh rendering.
"""

from __future__ import annotations

from netbox_installer.core.models.context import SecretBundle
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.template import GeneratedFile


def _redis_block(settings: InstallSettings, database: int) -> str:
    return f"""\
{{
        'HOST': {settings.redis_host!r},
        'PORT': {settings.redis_port},
        'PASSWORD': '',
        'DATABASE': {database},
        'SSL': False,
    }}"""


def render_configuration(
    settings: InstallSettings, secrets: SecretBundle
) -> GeneratedFile:
    """NetBox configuration.py, owner-only (0600) for the service account."""
    content = f"""\
# Managed by netbox-installer. Local edits are replaced on the next run.

# Database configuration
DATABASE = {{
    'NAME': {settings.db_name!r},
    'USER': {settings.db_user!r},
    'PASSWORD': {secrets.db_password!r},
    'HOST': {settings.db_host!r},
    'PORT': {settings.db_port!r},
    'CONN_MAX_AGE': 300,
}}

# Redis configuration
REDIS = {{
    'tasks': {_redis_block(settings, 0)},
    'caching': {_redis_block(settings, 1)},
}}

# Security
SECRET_KEY = {secrets.secret_key!r}
ALLOWED_HOSTS = {settings.allowed_hosts!r}

# Email configuration (optional)
EMAIL = {{
    'SERVER': 'localhost',
    'PORT': 25,
    'USERNAME': '',
    'PASSWORD': '',
    'USE_SSL': False,
    'USE_TLS': False,
    'TIMEOUT': 10,
    'FROM_EMAIL': {settings.admin_email!r},
}}

# Logging
LOGGING = {{
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {{
        'normal': {{
            'format': '%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s %(message)s',
            'datefmt': '%H:%M:%S',
        }},
    }},
    'handlers': {{
        'normal': {{
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'normal',
        }},
    }},
    'loggers': {{
        'django': {{
            'handlers': ['normal'],
            'level': 'INFO',
        }},
        'netbox': {{
            'handlers': ['normal'],
            'level': 'INFO',
        }},
    }},
}}

TIME_ZONE = 'UTC'
DATE_FORMAT = 'N j, Y'
SHORT_DATE_FORMAT = 'Y-m-d'
TIME_FORMAT = 'g:i a'
SHORT_TIME_FORMAT = 'H:i:s'
DATETIME_FORMAT = 'N j, Y g:i a'
SHORT_DATETIME_FORMAT = 'Y-m-d H:i'
"""
    return GeneratedFile(
        path=settings.configuration_path,
        content=content,
        mode=0o600,
        owner=settings.netbox_user,
        reason="NetBox application configuration",
    )


def render_gunicorn(settings: InstallSettings) -> GeneratedFile:
    content = f"""\
command = '{settings.venv_dir}/bin/gunicorn'
pythonpath = '{settings.app_dir}'
bind = '{settings.gunicorn_bind}'
workers = {settings.gunicorn_workers}
user = '{settings.netbox_user}'
timeout = 120
max_requests = 5000
max_requests_jitter = 500
preload_app = True
"""
    return GeneratedFile(
        path=settings.gunicorn_config_path,
        content=content,
        mode=0o644,
        owner=settings.netbox_user,
        reason="Gunicorn WSGI server settings",
    )


def render_netbox_unit(settings: InstallSettings) -> GeneratedFile:
    content = f"""\
[Unit]
Description=NetBox WSGI
Documentation=https://netboxlabs.com/docs/netbox/
After=network-online.target
Wants=network-online.target

[Service]
Type=notify
User={settings.netbox_user}
Group={settings.netbox_user}
PIDFile={settings.pid_file}
WorkingDirectory={settings.app_dir}
ExecStart={settings.venv_dir}/bin/gunicorn --pid {settings.pid_file} --pythonpath {settings.app_dir} --config {settings.gunicorn_config_path} netbox.wsgi
ExecReload=/bin/kill -s HUP $MAINPID
Restart=on-failure
RestartSec=30
TimeoutStartSec=90
KillMode=mixed
PrivateTmp=true

[Install]
WantedBy=multi-user.target
"""
    return GeneratedFile(
        path=settings.unit_path("netbox"),
        content=content,
        reason="systemd unit for the NetBox web application",
    )


def render_rq_unit(settings: InstallSettings) -> GeneratedFile:
    content = f"""\
[Unit]
Description=NetBox Request Queue Worker
Documentation=https://netboxlabs.com/docs/netbox/
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
User={settings.netbox_user}
Group={settings.netbox_user}
WorkingDirectory={settings.app_dir}
ExecStart={settings.venv_python} {settings.manage_py} rqworker high default low
Restart=on-failure
RestartSec=30
KillMode=mixed
PrivateTmp=true

[Install]
WantedBy=multi-user.target
"""
    return GeneratedFile(
        path=settings.unit_path("netbox-rq"),
        content=content,
        reason="systemd unit for the NetBox background task worker",
    )


def render_nginx_site(settings: InstallSettings) -> GeneratedFile:
    content = f"""\
server {{
    listen 80;
    listen [::]:80;
    server_name {settings.domain_name} _;

    client_max_body_size 25m;

    location /static/ {{
        alias {settings.static_root}/;
    }}

    location / {{
        proxy_pass http://{settings.gunicorn_bind};
        proxy_set_header X-Forwarded-Host $http_host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-Proto $scheme;
    }}
}}
"""
    return GeneratedFile(
        path=settings.nginx_site_path,
        content=content,
        reason="Nginx reverse proxy for NetBox",
    )


def render_units(settings: InstallSettings) -> list[GeneratedFile]:
    return [render_netbox_unit(settings), render_rq_unit(settings)]

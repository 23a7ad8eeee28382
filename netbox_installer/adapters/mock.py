"""
Mock host: an in-memory Ubuntu machine for --mock runs and tests.

Interprets the commands the installer issues (apt/dpkg, useradd, psql,
systemctl, redis-cli, venv/pip, manage.py, curl/tar, nginx) against a
small state model, so predicates and actions see consistent effects.
Unknown commands succeed. Failures can be injected per argv prefix.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from netbox_installer.adapters.base import CommandResult, Host

APT_UPDATE_STAMP = "/var/lib/apt/periodic/update-success-stamp"

DEFAULT_OS_RELEASE = {
    "ID": "ubuntu",
    "VERSION_ID": "22.04",
    "PRETTY_NAME": "Ubuntu 22.04.4 LTS",
}

REDIS_CONF = """\
bind 127.0.0.1 ::1
port 6379
# maxmemory <bytes>
# maxmemory-policy noeviction
"""

# Services a package brings along, and files it lays down
_PACKAGE_SERVICES = {
    "postgresql": "postgresql",
    "redis-server": "redis-server",
    "nginx": "nginx",
}
_PACKAGE_USERS = {"postgresql": "postgres", "redis-server": "redis", "nginx": "www-data"}
_PACKAGE_FILES = {
    "redis-server": {"/etc/redis/redis.conf": REDIS_CONF},
    "nginx": {"/etc/nginx/sites-enabled/default": "server { listen 80 default_server; }\n"},
}

_PRIVILEGED = {"apt-get", "useradd", "chown", "chmod", "tar"}
_SYSTEMCTL_MUTATING = {
    "start",
    "stop",
    "restart",
    "reload-or-restart",
    "enable",
    "disable",
    "daemon-reload",
}

_CONFIG_DB_PASSWORD = re.compile(r"'PASSWORD':\s*'([^']*)'")


@dataclass
class MockFile:
    content: str
    mode: int = 0o644
    owner: str = "root"
    mtime: float = 0.0


@dataclass
class MockService:
    active: bool = False
    enabled: bool = False


@dataclass
class MockCall:
    argv: list[str]
    sudo: bool = False
    user: str | None = None
    input: str | None = None

    @property
    def line(self) -> str:
        return " ".join(self.argv)


@dataclass
class _Failure:
    prefix: tuple[str, ...]
    stderr: str
    returncode: int
    remaining: int | None


@dataclass
class _Db:
    databases: set[str] = field(default_factory=set)
    roles: dict[str, str] = field(default_factory=dict)


class MockHost(Host):
    """In-memory host. By default a fresh Ubuntu 22.04 box with sudo rights.

    Args:
        superuser:          Pretend the installer runs as root.
        sudo_ok:            Whether ``sudo -v`` succeeds.
        os_release:         Contents of /etc/os-release.
        installed_packages: Packages present before the run.
        clock:              Time source for file ages.
    """

    def __init__(
        self,
        *,
        superuser: bool = False,
        sudo_ok: bool = True,
        os_release: dict[str, str] | None = None,
        installed_packages: Sequence[str] = (),
        clock: Callable[[], float] = time.time,
    ):
        self.superuser = superuser
        self.sudo_ok = sudo_ok
        self.release_info = dict(DEFAULT_OS_RELEASE if os_release is None else os_release)
        self.clock = clock

        self.packages: set[str] = set()
        self.users: set[str] = {"root"}
        self.services: dict[str, MockService] = {}
        self.files: dict[str, MockFile] = {}
        self.dirs: dict[str, str] = {}
        self.links: dict[str, str] = {}
        self.db = _Db()
        self.venv_modules: dict[str, set[str]] = {}
        self.migrated = False
        self.admin_users: set[str] = set()
        # Services that exit right after systemctl start
        self.crashing_services: set[str] = set()

        self.call_log: list[MockCall] = []
        self._failures: list[_Failure] = []

        for pkg in installed_packages:
            self._install_package(pkg)

    @property
    def name(self) -> str:
        return "mock"

    # ── Test helpers ────────────────────────────────────────────

    def set_failure(
        self,
        prefix: str | Sequence[str],
        stderr: str = "mock failure",
        returncode: int = 1,
        times: int | None = None,
    ) -> None:
        """Make commands starting with ``prefix`` fail.

        ``times`` limits how many calls fail before the command
        behaves normally again; None fails every call.
        """
        tokens = tuple(prefix.split()) if isinstance(prefix, str) else tuple(prefix)
        self._failures.append(_Failure(tokens, stderr, returncode, times))

    def clear_failures(self) -> None:
        self._failures.clear()

    def commands(self) -> list[str]:
        return [call.line for call in self.call_log]

    def ran(self, prefix: str) -> bool:
        return any(line.startswith(prefix) for line in self.commands())

    def age_file(self, path: str, seconds: float) -> None:
        self.files[self._resolve(path)].mtime = self.clock() - seconds

    # ── Filesystem ──────────────────────────────────────────────

    def _resolve(self, path: str) -> str:
        for _ in range(16):
            for link, target in self.links.items():
                if path == link or path.startswith(link + "/"):
                    path = target + path[len(link):]
                    break
            else:
                return path
        return path

    def _path_exists(self, path: str) -> bool:
        if path in self.links:
            return True
        real = self._resolve(path)
        if real in self.files or real in self.dirs:
            return True
        prefix = real.rstrip("/") + "/"
        return any(p.startswith(prefix) for p in [*self.files, *self.dirs])

    def _owner_of(self, path: str) -> str | None:
        real = self._resolve(path)
        if real in self.files:
            return self.files[real].owner
        return self.dirs.get(real)

    def _put(self, path: str, content: str, owner: str = "root", mode: int = 0o644) -> None:
        self.files[self._resolve(path)] = MockFile(content, mode, owner, self.clock())

    def read_file(self, path: str) -> str | None:
        entry = self.files.get(self._resolve(path))
        return entry.content if entry else None

    def write_file(
        self,
        path: str,
        content: str,
        *,
        mode: int = 0o644,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        self._put(path, content, owner=owner or "root", mode=mode)

    def exists(self, path: str) -> bool:
        return self._path_exists(path)

    def remove(self, path: str) -> None:
        if path in self.links:
            del self.links[path]
            return
        self.files.pop(self._resolve(path), None)

    def symlink(self, target: str, link: str) -> None:
        self.files.pop(link, None)
        self.links[link] = target

    def file_age(self, path: str) -> float | None:
        entry = self.files.get(self._resolve(path))
        if entry is None:
            return None
        return max(0.0, self.clock() - entry.mtime)

    def file_mode(self, path: str) -> int | None:
        entry = self.files.get(self._resolve(path))
        return entry.mode if entry else None

    def is_superuser(self) -> bool:
        return self.superuser

    def os_release(self) -> dict[str, str]:
        return dict(self.release_info)

    # ── Commands ────────────────────────────────────────────────

    def run(
        self,
        argv: Sequence[str],
        *,
        sudo: bool = False,
        user: str | None = None,
        cwd: str | None = None,
        input: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        argv = list(argv)
        self.call_log.append(MockCall(argv, sudo=sudo, user=user, input=input))

        injected = self._injected_failure(argv)
        if injected is not None:
            return injected

        elevated = sudo or user is not None or self.superuser
        if not elevated and self._needs_root(argv):
            return self._fail(argv, f"{argv[0]}: Permission denied", 1)

        handler = self._handlers().get(self._program(argv[0]))
        if handler is None:
            return self._ok(argv)
        return handler(argv, user, input)

    def _injected_failure(self, argv: list[str]) -> CommandResult | None:
        for failure in self._failures:
            if tuple(argv[: len(failure.prefix)]) != failure.prefix:
                continue
            if failure.remaining is not None:
                if failure.remaining <= 0:
                    continue
                failure.remaining -= 1
            return self._fail(argv, failure.stderr, failure.returncode)
        return None

    @staticmethod
    def _needs_root(argv: list[str]) -> bool:
        if argv[0] in _PRIVILEGED:
            return True
        return argv[0] == "systemctl" and len(argv) > 1 and argv[1] in _SYSTEMCTL_MUTATING

    @staticmethod
    def _program(arg0: str) -> str:
        base = arg0.rsplit("/", 1)[-1]
        if arg0.endswith("/bin/python3"):
            return "venv-python"
        if arg0.endswith("/bin/pip"):
            return "venv-pip"
        return base

    def _handlers(self) -> dict[str, Callable[[list[str], str | None, str | None], CommandResult]]:
        return {
            "sudo": self._sudo,
            "dpkg-query": self._dpkg_query,
            "apt-get": self._apt_get,
            "id": self._id,
            "useradd": self._useradd,
            "psql": self._psql,
            "systemctl": self._systemctl,
            "redis-cli": self._redis_cli,
            "pg_isready": self._pg_isready,
            "readlink": self._readlink,
            "test": self._test,
            "stat": self._stat,
            "chown": self._chown,
            "chmod": self._chmod,
            "curl": self._curl,
            "tar": self._tar,
            "python3": self._python3,
            "venv-pip": self._venv_pip,
            "venv-python": self._venv_python,
            "nginx": self._nginx,
            "journalctl": self._journalctl,
        }

    @staticmethod
    def _ok(argv: list[str], stdout: str = "", stderr: str = "") -> CommandResult:
        return CommandResult(argv=argv, returncode=0, stdout=stdout, stderr=stderr)

    @staticmethod
    def _fail(argv: list[str], stderr: str, returncode: int = 1, stdout: str = "") -> CommandResult:
        return CommandResult(argv=argv, returncode=returncode, stdout=stdout, stderr=stderr)

    # ── sudo / users ────────────────────────────────────────────

    def _sudo(self, argv, user, input):
        if argv[1:2] == ["-v"] and not self.sudo_ok:
            return self._fail(argv, "Sorry, user may not run sudo on mock.")
        return self._ok(argv)

    def _id(self, argv, user, input):
        name = argv[-1]
        if name not in self.users:
            return self._fail(argv, f"id: '{name}': no such user")
        return self._ok(argv, stdout=f"{sorted(self.users).index(name) + 900}\n")

    def _useradd(self, argv, user, input):
        name = argv[-1]
        if name in self.users:
            return self._fail(argv, f"useradd: user '{name}' already exists", 9)
        self.users.add(name)
        return self._ok(argv)

    # ── Packages ────────────────────────────────────────────────

    def _install_package(self, pkg: str) -> None:
        self.packages.add(pkg)
        if pkg in _PACKAGE_SERVICES:
            self.services.setdefault(_PACKAGE_SERVICES[pkg], MockService())
        if pkg in _PACKAGE_USERS:
            self.users.add(_PACKAGE_USERS[pkg])
        for path, content in _PACKAGE_FILES.get(pkg, {}).items():
            if self._resolve(path) not in self.files:
                self._put(path, content)

    def _dpkg_query(self, argv, user, input):
        pkg = argv[-1]
        if pkg not in self.packages:
            return self._fail(argv, f"dpkg-query: no packages found matching {pkg}")
        return self._ok(argv, stdout="install ok installed")

    def _apt_get(self, argv, user, input):
        action = argv[1] if len(argv) > 1 else ""
        if action == "update":
            self._put(APT_UPDATE_STAMP, "")
        elif action == "install":
            for pkg in argv[2:]:
                if not pkg.startswith("-"):
                    self._install_package(pkg)
        return self._ok(argv)

    # ── Services ────────────────────────────────────────────────

    def _unit_known(self, service: str) -> bool:
        return service in self.services or f"/etc/systemd/system/{service}.service" in self.files

    def _service(self, service: str) -> MockService:
        return self.services.setdefault(service, MockService())

    def _systemctl(self, argv, user, input):
        action = argv[1] if len(argv) > 1 else ""
        names = argv[2:]

        if action == "daemon-reload":
            return self._ok(argv)

        if action == "is-active":
            svc = self.services.get(names[0]) if names else None
            if svc is not None and svc.active:
                return self._ok(argv, stdout="active\n")
            return self._fail(argv, "", 3, stdout="inactive\n")

        if action == "is-enabled":
            if not names or not self._unit_known(names[0]):
                return self._fail(argv, f"Failed to get unit file state for {names[0] if names else ''}.service: No such file or directory")
            if self._service(names[0]).enabled:
                return self._ok(argv, stdout="enabled\n")
            return self._fail(argv, "", 1, stdout="disabled\n")

        for name in names:
            if not self._unit_known(name):
                return self._fail(argv, f"Failed to {action} {name}.service: Unit {name}.service not found.", 5)

        for name in names:
            svc = self._service(name)
            if action in ("start", "restart", "reload-or-restart"):
                svc.active = name not in self.crashing_services
            elif action == "stop":
                svc.active = False
            elif action == "enable":
                svc.enabled = True
            elif action == "disable":
                svc.enabled = False
        return self._ok(argv)

    def _active(self, service: str) -> bool:
        svc = self.services.get(service)
        return svc is not None and svc.active

    def _redis_cli(self, argv, user, input):
        if not self._active("redis-server"):
            return self._fail(argv, "Could not connect to Redis at 127.0.0.1:6379: Connection refused")
        return self._ok(argv, stdout="PONG\n")

    def _pg_isready(self, argv, user, input):
        if not self._active("postgresql"):
            return self._fail(argv, "", 2, stdout="localhost:5432 - no response\n")
        return self._ok(argv, stdout="localhost:5432 - accepting connections\n")

    # ── PostgreSQL ──────────────────────────────────────────────

    def _psql(self, argv, user, input):
        if user != "postgres":
            return self._fail(argv, f'psql: error: FATAL:  role "{user or "root"}" does not exist', 2)
        if not self._active("postgresql"):
            return self._fail(argv, "psql: error: connection to server failed: No such file or directory", 2)

        sql = input or ""
        lookup = re.search(r"SELECT 1 FROM (pg_database|pg_roles) WHERE \w+ = '([^']*)'", sql)
        if lookup:
            catalog, name = lookup.groups()
            found = name in (self.db.databases if catalog == "pg_database" else self.db.roles)
            return self._ok(argv, stdout="1\n" if found else "")

        create_db = re.search(r'CREATE DATABASE "([^"]+)"', sql)
        if create_db:
            name = create_db.group(1)
            if name in self.db.databases:
                return self._fail(argv, f'ERROR:  database "{name}" already exists', 3)
            self.db.databases.add(name)

        create_role = re.search(r"CREATE USER \"([^\"]+)\" WITH PASSWORD '((?:[^']|'')*)'", sql)
        if create_role:
            name, password = create_role.group(1), create_role.group(2).replace("''", "'")
            if name in self.db.roles:
                return self._fail(argv, f'ERROR:  role "{name}" already exists', 3)
            self.db.roles[name] = password

        alter_role = re.search(r"ALTER ROLE \"([^\"]+)\" WITH PASSWORD '((?:[^']|'')*)'", sql)
        if alter_role:
            name, password = alter_role.group(1), alter_role.group(2).replace("''", "'")
            if name not in self.db.roles:
                return self._fail(argv, f'ERROR:  role "{name}" does not exist', 3)
            self.db.roles[name] = password
        return self._ok(argv)

    # ── Files and ownership ─────────────────────────────────────

    def _readlink(self, argv, user, input):
        return self._ok(argv, stdout=self._resolve(argv[-1]) + "\n")

    def _test(self, argv, user, input):
        flag, path = argv[1], argv[-1]
        found = path in self.links if flag == "-L" else self._path_exists(path)
        return self._ok(argv) if found else self._fail(argv, "", 1)

    def _stat(self, argv, user, input):
        path = argv[-1]
        if not self._path_exists(path):
            return self._fail(argv, f"stat: cannot statx '{path}': No such file or directory")
        if argv[2] == "%Y":
            entry = self.files.get(self._resolve(path))
            return self._ok(argv, stdout=f"{int(entry.mtime if entry else self.clock())}\n")
        return self._ok(argv, stdout=f"{self._owner_of(path) or 'root'}\n")

    def _chown(self, argv, user, input):
        owner = argv[-2].split(":", 1)[0]
        path = argv[-1]
        if not self._path_exists(path):
            return self._fail(argv, f"chown: cannot access '{path}': No such file or directory")
        if "-h" in argv and path in self.links:
            return self._ok(argv)
        real = self._resolve(path)
        if real in self.files:
            self.files[real].owner = owner
        if real in self.dirs:
            self.dirs[real] = owner
        if "-R" in argv:
            prefix = real.rstrip("/") + "/"
            for p, entry in self.files.items():
                if p.startswith(prefix):
                    entry.owner = owner
            for p in self.dirs:
                if p.startswith(prefix):
                    self.dirs[p] = owner
        return self._ok(argv)

    def _chmod(self, argv, user, input):
        entry = self.files.get(self._resolve(argv[-1]))
        if entry is None:
            return self._fail(argv, f"chmod: cannot access '{argv[-1]}': No such file or directory")
        entry.mode = int(argv[-2], 8)
        return self._ok(argv)

    # ── Release download ────────────────────────────────────────

    def _curl(self, argv, user, input):
        target = argv[argv.index("-o") + 1]
        self._put(target, "mock tarball", owner=user or "root")
        return self._ok(argv)

    def _tar(self, argv, user, input):
        tarball = argv[argv.index("-xzf") + 1]
        root = argv[argv.index("-C") + 1]
        if tarball not in self.files:
            return self._fail(argv, f"tar: {tarball}: Cannot open: No such file or directory", 2)
        match = re.search(r"netbox-v([^/]+)\.tar\.gz$", tarball)
        release = f"{root}/netbox-{match.group(1) if match else 'unknown'}"
        for d in (release, f"{release}/netbox", f"{release}/netbox/netbox"):
            self.dirs[d] = "root"
        self._put(f"{release}/netbox/manage.py", "#!/usr/bin/env python3\n")
        self._put(f"{release}/requirements.txt", "Django\ndjango-rq\ngunicorn\n")
        self._put(f"{release}/netbox/netbox/configuration_example.py", "# example\n")
        return self._ok(argv)

    # ── Python runtime ──────────────────────────────────────────

    def _python3(self, argv, user, input):
        if argv[1:3] != ["-m", "venv"]:
            return self._ok(argv)
        if "python3-venv" not in self.packages:
            return self._fail(argv, "The virtual environment was not created successfully because ensurepip is not available.")
        venv = self._resolve(argv[-1])
        owner = user or "root"
        self.dirs[venv] = owner
        self._put(f"{venv}/bin/python3", "", owner=owner, mode=0o755)
        self._put(f"{venv}/bin/pip", "", owner=owner, mode=0o755)
        if "--clear" in argv or venv not in self.venv_modules:
            self.venv_modules[venv] = set()
        return self._ok(argv)

    def _venv_of(self, arg0: str) -> str:
        return self._resolve(arg0.rsplit("/bin/", 1)[0])

    def _venv_pip(self, argv, user, input):
        venv = self._venv_of(argv[0])
        if f"{venv}/bin/pip" not in self.files:
            return self._fail(argv, f"{argv[0]}: No such file or directory", 127)
        if "-r" in argv:
            requirements = self._resolve(argv[argv.index("-r") + 1])
            if requirements not in self.files:
                return self._fail(argv, f"ERROR: Could not open requirements file: {requirements}")
            self.venv_modules.setdefault(venv, set()).update({"django", "gunicorn", "django_rq"})
        return self._ok(argv, stdout="Successfully installed\n")

    def _venv_python(self, argv, user, input):
        venv = self._venv_of(argv[0])
        if f"{venv}/bin/python3" not in self.files:
            return self._fail(argv, f"{argv[0]}: No such file or directory", 127)
        modules = self.venv_modules.get(venv, set())

        if argv[1:2] == ["-c"]:
            wanted = re.findall(r"\w+", argv[2].replace("import", "", 1))
            missing = [m for m in wanted if m not in modules]
            if missing:
                return self._fail(argv, f"ModuleNotFoundError: No module named '{missing[0]}'")
            return self._ok(argv)

        if argv[1:2] and argv[1].endswith("manage.py"):
            if "django" not in modules:
                return self._fail(argv, "ModuleNotFoundError: No module named 'django'")
            return self._manage(argv, argv[2:], input)
        return self._ok(argv)

    # ── manage.py ───────────────────────────────────────────────

    def _configuration(self, manage_py: str) -> str | None:
        app_dir = manage_py.rsplit("/", 1)[0]
        return self.read_file(f"{app_dir}/netbox/configuration.py")

    def _db_reachable(self, config: str) -> str | None:
        """Error text when the configured credentials cannot connect."""
        if not self._active("postgresql"):
            return "django.db.utils.OperationalError: connection refused"
        user = re.search(r"'USER':\s*'([^']*)'", config)
        name = re.search(r"'NAME':\s*'([^']*)'", config)
        password = _CONFIG_DB_PASSWORD.search(config)
        if not (user and name and password):
            return "django.core.exceptions.ImproperlyConfigured: DATABASE is incomplete"
        if self.db.roles.get(user.group(1)) != password.group(1):
            return f'django.db.utils.OperationalError: password authentication failed for user "{user.group(1)}"'
        if name.group(1) not in self.db.databases:
            return f'django.db.utils.OperationalError: database "{name.group(1)}" does not exist'
        return None

    def _manage(self, argv: list[str], args: list[str], input: str | None) -> CommandResult:
        config = self._configuration(self._resolve(argv[1]))
        if config is None:
            return self._fail(argv, "ImproperlyConfigured: Configuration file is not present.")
        command = args[0] if args else ""

        if command == "check":
            if "--database" in args:
                error = self._db_reachable(config)
                if error:
                    return self._fail(argv, error)
            return self._ok(argv, stdout="System check identified no issues (0 silenced).\n")

        if command == "shell":
            return self._shell(argv, args, input)

        error = self._db_reachable(config)
        if error and command in ("migrate", "collectstatic"):
            return self._fail(argv, error)

        if command == "migrate":
            if "--check" in args:
                return self._ok(argv) if self.migrated else self._fail(argv, "Unapplied migrations", 1)
            self.migrated = True
            return self._ok(argv, stdout="Operations to perform: apply all migrations\n")

        if command == "collectstatic":
            app_dir = self._resolve(argv[1]).rsplit("/", 1)[0]
            self.dirs[f"{app_dir}/static"] = "netbox"
            return self._ok(argv, stdout="0 static files copied.\n")
        return self._ok(argv)

    def _shell(self, argv: list[str], args: list[str], input: str | None) -> CommandResult:
        if not self.migrated:
            return self._fail(argv, 'django.db.utils.ProgrammingError: relation "users_user" does not exist')
        if "-c" in args:
            probe = re.search(r"username='([^']*)'", args[args.index("-c") + 1])
            if probe and probe.group(1) in self.admin_users:
                return self._ok(argv)
            return self._fail(argv, "", 1)
        created = re.search(r"create_superuser\('([^']*)'", input or "")
        if created:
            self.admin_users.add(created.group(1))
        return self._ok(argv)

    # ── Web server and logs ─────────────────────────────────────

    def _nginx(self, argv, user, input):
        if argv[1:2] == ["-t"]:
            if "nginx" not in self.packages:
                return self._fail(argv, "nginx: command not found", 127)
            return self._ok(argv, stderr="nginx: configuration file /etc/nginx/nginx.conf test is successful\n")
        return self._ok(argv)

    def _journalctl(self, argv, user, input):
        units = [argv[i + 1] for i, a in enumerate(argv) if a == "-u" and i + 1 < len(argv)]
        lines = [f"mock {unit}[1]: state={'active' if self._active(unit) else 'inactive'}" for unit in units]
        return self._ok(argv, stdout="\n".join(lines) + "\n")

"""
Run context: mutable state threaded through one provisioning run.

Owned by the StepRunner for the lifetime of a single invocation and
discarded at exit. Nothing here is persisted except what steps write
to the host (the secrets file, configuration files).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.step import StepError

if TYPE_CHECKING:
    from netbox_installer.adapters.base import Host


class SecretBundle(BaseModel):
    """Generated credentials for one run.

    Immutable once created: values written into several configuration
    surfaces (database role, configuration.py, secrets file) must agree.
    """

    model_config = ConfigDict(frozen=True)

    db_password: str
    secret_key: str
    admin_password: str = ""

    def as_env(self) -> dict[str, str]:
        """KEY=VALUE mapping written to the secrets file."""
        return {
            "DB_PASSWORD": self.db_password,
            "SECRET_KEY": self.secret_key,
            "ADMIN_PASSWORD": self.admin_password,
        }

    def __repr__(self) -> str:
        return "SecretBundle(<redacted>)"

    __str__ = __repr__


@dataclass
class RunContext:
    """Everything steps share within one invocation.

    Attributes:
        settings:          Operator inputs and derived paths.
        host:              The machine being provisioned.
        secrets:           Generated credentials, set at most once per run.
        os_release:        Parsed /etc/os-release from pre-flight.
        values:            Free-form values produced by earlier steps.
        completed:         Names of steps completed in this run, in order.
        started_services:  Services this run started (rollback stops them).
        written_artifacts: Files this run created that rollback removes.
    """

    settings: InstallSettings
    host: Host
    secrets: SecretBundle | None = None
    os_release: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)
    completed: list[str] = field(default_factory=list)
    started_services: list[str] = field(default_factory=list)
    written_artifacts: list[str] = field(default_factory=list)

    def merge(self, produced: dict[str, Any]) -> None:
        """Merge values produced by a step action.

        The 'secrets' key sets the SecretBundle; replacing an existing
        bundle with a different one is refused.
        """
        produced = dict(produced)
        bundle = produced.pop("secrets", None)
        if bundle is not None:
            if self.secrets is not None and self.secrets != bundle:
                raise StepError("secrets already generated for this run")
            self.secrets = bundle
        self.values.update(produced)

    def require_secrets(self) -> SecretBundle:
        if self.secrets is None:
            raise StepError("no secrets available: run 'generate-secrets' first")
        return self.secrets

    def remember_service(self, name: str) -> None:
        if name not in self.started_services:
            self.started_services.append(name)

    def remember_artifact(self, path: str) -> None:
        if path not in self.written_artifacts:
            self.written_artifacts.append(path)

    @property
    def os_version(self) -> str:
        return self.os_release.get("VERSION_ID", "")

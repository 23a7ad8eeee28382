"""
Domain models for the installer.

All models are re-exported here for convenient access:

    from netbox_installer.core.models import Step, RunContext, SecretBundle
"""

from netbox_installer.core.models.context import RunContext, SecretBundle
from netbox_installer.core.models.service import ServiceStatus
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.models.step import (
    FailurePolicy,
    RunResult,
    Step,
    StepError,
    StepFailure,
    StepRecord,
)
from netbox_installer.core.models.template import GeneratedFile

__all__ = [
    # step.py
    "FailurePolicy",
    # template.py
    "GeneratedFile",
    # settings.py
    "InstallSettings",
    # context.py
    "RunContext",
    "RunResult",
    "SecretBundle",
    # service.py
    "ServiceStatus",
    "Step",
    "StepError",
    "StepFailure",
    "StepRecord",
]

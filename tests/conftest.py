"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from netbox_installer.adapters.mock import MockHost
from netbox_installer.core.engine.runner import StepRunner
from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.settings import InstallSettings
from netbox_installer.core.services.install_plan import build_install_steps


def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def mock_host() -> MockHost:
    """A fresh in-memory Ubuntu 22.04 host with sudo rights."""
    return MockHost()


@pytest.fixture
def settings(tmp_path: Path) -> InstallSettings:
    """Default settings with the run lock under tmp_path."""
    return InstallSettings(lock_file=str(tmp_path / "netbox-installer.lock"))


@pytest.fixture
def context(mock_host: MockHost, settings: InstallSettings) -> RunContext:
    return RunContext(settings=settings, host=mock_host)


@pytest.fixture
def runner() -> StepRunner:
    """A runner that never actually sleeps between retries."""
    return StepRunner(sleep=_no_sleep)


@pytest.fixture
def installed_host(mock_host: MockHost, settings: InstallSettings, runner: StepRunner) -> MockHost:
    """A mock host after one complete, successful install."""
    ctx = RunContext(settings=settings, host=mock_host)
    result = runner.run(build_install_steps(), ctx)
    assert result.ok, result.fatal_error
    return mock_host

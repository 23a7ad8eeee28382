"""
Tests for the service health checker.
"""

from netbox_installer.core.models.service import ServiceStatus
from netbox_installer.core.services import health


class TestCheck:
    def test_unknown_unit_is_inactive(self, mock_host):
        assert health.check(mock_host, "netbox") == ServiceStatus.INACTIVE

    def test_active(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx"], sudo=True)
        mock_host.run(["systemctl", "start", "nginx"], sudo=True)
        assert health.check(mock_host, "nginx") == ServiceStatus.ACTIVE

    def test_reflects_live_state(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx"], sudo=True)
        mock_host.run(["systemctl", "start", "nginx"], sudo=True)
        assert health.check(mock_host, "nginx") == ServiceStatus.ACTIVE

        mock_host.run(["systemctl", "stop", "nginx"], sudo=True)
        assert health.check(mock_host, "nginx") == ServiceStatus.INACTIVE

    def test_queries_every_time(self, mock_host):
        health.check(mock_host, "nginx")
        health.check(mock_host, "nginx")
        assert mock_host.commands().count("systemctl is-active nginx") == 2

    def test_unrecognised_output_is_unknown(self, mock_host):
        mock_host.set_failure("systemctl is-active", stderr="Failed to connect to bus", returncode=1)
        assert health.check(mock_host, "nginx") == ServiceStatus.UNKNOWN

    def test_symbols(self):
        assert ServiceStatus.ACTIVE.symbol == "✓"
        assert ServiceStatus.INACTIVE.symbol == "✗"
        assert ServiceStatus.UNKNOWN.symbol == "?"


class TestEnabled:
    def test_enabled(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx"], sudo=True)
        assert not health.is_enabled(mock_host, "nginx")
        mock_host.run(["systemctl", "enable", "nginx"], sudo=True)
        assert health.is_enabled(mock_host, "nginx")

    def test_missing_unit(self, mock_host):
        assert not health.is_enabled(mock_host, "netbox")


class TestServiceReport:
    def test_all_active(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx", "redis-server"], sudo=True)
        mock_host.run(["systemctl", "start", "nginx", "redis-server"], sudo=True)
        report = health.check_services(mock_host, ["nginx", "redis-server"])
        assert report.all_active
        assert report.inactive == []

    def test_inactive_listed(self, mock_host):
        mock_host.run(["apt-get", "install", "-y", "nginx"], sudo=True)
        mock_host.run(["systemctl", "start", "nginx"], sudo=True)
        report = health.check_services(mock_host, ["nginx", "netbox"])
        assert not report.all_active
        assert report.inactive == ["netbox"]
        assert report.to_dict()["services"] == {"nginx": "active", "netbox": "inactive"}

    def test_empty_is_not_all_active(self, mock_host):
        assert not health.check_services(mock_host, []).all_active

"""Test the health checker."""

from datetime import datetime, timedelta, timezone

import pytest

from provisioning_engine.core.models import CommandResult, ContainerState, HealthReport
from provisioning_engine.core.schemas import HealthReportSchema
from provisioning_engine.domain.stack import default_stack
from provisioning_engine.health_checker.checker import render_report

from tests.fakes import FakeDockerClient, write_lineage


class TestHealthChecker:

    @pytest.fixture
    def stack(self, domains, settings):
        return default_stack(domains, settings)

    @pytest.fixture
    def checker(self, harness, stack):
        return harness.health_checker(stack)

    def test_all_probes_pass(self, harness, checker, domains, settings):
        write_lineage(settings.certs_dir, list(domains.hostnames))

        report = checker.check(domains)

        assert report.healthy
        assert set(report.container_statuses.values()) == {ContainerState.RUNNING}
        assert report.http_reachable == {"tomated.app": True, "n8n.tomated.app": True}
        assert report.cert_validity["n8n.tomated.app"][1] > datetime.now(timezone.utc)
        assert report.db_reachable
        assert sorted(harness.session.heads) == ["http://n8n.tomated.app", "http://tomated.app"]

    def test_every_probe_failing_still_returns_a_report(self, harness, runner, stack, domains):
        """No network, no daemon, no database: populated report, no exception."""
        harness.session.unreachable = True
        harness.tls_reachable = False
        harness.docker_client = FakeDockerClient({})
        runner.when("mysql", result=CommandResult(1, stderr="Can't connect to MySQL server"))

        report = harness.health_checker(stack).check(domains)

        assert isinstance(report, HealthReport)
        assert report.container_statuses == {spec.name: ContainerState.UNKNOWN for spec in stack}
        assert report.http_reachable == {"tomated.app": False, "n8n.tomated.app": False}
        assert report.cert_validity == {"tomated.app": None, "n8n.tomated.app": None}
        assert report.db_reachable is False
        assert len(report.failed_probes()) == len(stack) + 5

    def test_http_error_status_is_unreachable(self, harness, checker, domains, settings):
        write_lineage(settings.certs_dir, list(domains.hostnames))
        harness.session.head_status["n8n.tomated.app"] = 502

        report = checker.check(domains)

        assert report.http_reachable == {"tomated.app": True, "n8n.tomated.app": False}
        assert report.failed_probes() == ["http:n8n.tomated.app"]

    def test_missing_wordpress_database(self, runner, checker, domains, settings):
        write_lineage(settings.certs_dir, list(domains.hostnames))
        runner.when("mysql", result=CommandResult(0, stdout="information_schema\nmysql\n"))

        assert not checker.check(domains).db_reachable

    def test_expired_certificate_is_reported_with_its_window(self, checker, domains, settings):
        now = datetime.now(timezone.utc)
        write_lineage(
            settings.certs_dir,
            list(domains.hostnames),
            not_before=now - timedelta(days=120),
            not_after=now - timedelta(days=30),
        )

        report = checker.check(domains)

        assert report.cert_validity["tomated.app"][1] < now
        assert "tls:tomated.app" in report.failed_probes()


class TestRenderReport:

    def test_lines_per_host_and_probe(self):
        now = datetime(2026, 6, 1, tzinfo=timezone.utc)
        report = HealthReport(
            container_statuses={"nginx": ContainerState.RUNNING, "n8n": ContainerState.EXITED},
            http_reachable={"tomated.app": True, "n8n.tomated.app": False},
            cert_validity={
                "tomated.app": (now - timedelta(days=1), datetime(2026, 8, 30, tzinfo=timezone.utc)),
                "n8n.tomated.app": None,
            },
            db_reachable=True,
        )

        assert render_report(report, now) == [
            "❌ container n8n: Exited",
            "✅ container nginx: Running",
            "✅ http://tomated.app reachable",
            "❌ http://n8n.tomated.app NOT reachable",
            "✅ TLS tomated.app: valid until 2026-08-30 00:00 UTC",
            "❌ TLS n8n.tomated.app: no certificate",
            "✅ database reachable",
        ]

    def test_schema_serializes_report(self):
        now = datetime.now(timezone.utc)
        report = HealthReport(
            container_statuses={"nginx": ContainerState.RUNNING},
            http_reachable={"tomated.app": True},
            cert_validity={"tomated.app": (now - timedelta(days=1), now + timedelta(days=1))},
            db_reachable=False,
        )

        data = HealthReportSchema.from_report(report).model_dump(mode="json")

        assert data["container_statuses"] == {"nginx": "Running"}
        assert data["cert_validity"]["tomated.app"]["not_after"]
        assert data["failed_probes"] == ["database"]

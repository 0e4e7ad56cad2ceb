"""Test the command line interface."""

import json
import os
import signal
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from provisioning_engine import cli
from provisioning_engine.core.models import CommandResult, ProvisioningPhase
from provisioning_engine.core.state_machine import ProvisioningRun
from provisioning_engine.domain.stack import default_stack
from provisioning_engine.orchestrator.provisioning_orchestrator import ProvisioningOutcome
from provisioning_engine.renewal.job import RenewalJob
from provisioning_engine.runtime.certificate_tool import CertificateTool
from provisioning_engine.runtime.container_engine import ContainerEngine
from provisioning_engine.runtime.notifier import TelegramNotifier

from tests.fakes import certbot_success, write_lineage


P = ProvisioningPhase

install_abort_handlers = cli._install_abort_handlers


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def wired(monkeypatch, harness, settings):
    """Route the CLI's service wiring to the test harness."""
    monkeypatch.setattr(cli, "_install_abort_handlers", lambda stop: None)

    def build_services(settings_, domains, emitter=None):
        stack = default_stack(domains, settings)
        engine = ContainerEngine(harness.runner, settings.compose_file)
        return SimpleNamespace(
            domains=domains,
            health_checker=harness.health_checker(stack),
            renewal_job=RenewalJob(
                certificate_tool=CertificateTool(harness.runner, settings.certs_dir),
                engine=engine,
                notifier=TelegramNotifier("123:abc", session=harness.session),
                chat_id="42",
                webroot=settings.webroot_dir,
            ),
        )

    def build_orchestrator(services, should_abort=lambda: False):
        return harness.orchestrator(services.domains, should_abort=should_abort)

    monkeypatch.setattr(cli, "build_services", build_services)
    monkeypatch.setattr(cli, "build_orchestrator", build_orchestrator)
    return harness


class TestRender:

    def test_render_challenge_vhost(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["render", "challenge-vhost", "--domain", "tomated.app", "--project-dir", str(tmp_path)]
        )

        assert result.exit_code == 0
        assert "server_name tomated.app n8n.tomated.app;" in result.output

    def test_render_compose_manifest(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["render", "compose-manifest", "--domain", "tomated.app", "--project-dir", str(tmp_path)]
        )

        assert result.exit_code == 0
        assert "services:" in result.output

    def test_render_renewal_script(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["render", "renewal-script", "--domain", "tomated.app", "--project-dir", str(tmp_path)]
        )

        assert result.exit_code == 0
        assert result.output.startswith("#!/bin/bash")

    def test_invalid_domain_exit_code(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["render", "challenge-vhost", "--domain", "bad domain!", "--project-dir", str(tmp_path)]
        )

        assert result.exit_code == cli.EXIT_INVALID_DOMAIN

    def test_unknown_template(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["render", "apache-vhost", "--domain", "tomated.app", "--project-dir", str(tmp_path)]
        )

        assert result.exit_code == 1
        assert "Unknown template" in result.output


class TestProvisionCommand:

    def test_success(self, cli_runner, wired, tmp_path):
        result = cli_runner.invoke(cli.app, ["provision", "--domain", "tomated.app", "--project-dir", str(tmp_path)])

        assert result.exit_code == cli.EXIT_OK
        assert "PASS: [Verified]" in result.output
        assert "https://n8n.tomated.app" in result.output

    def test_certificate_failure_exit_code(self, cli_runner, wired, tmp_path):
        wired.runner.when("certonly", result=CommandResult(1, stderr="Challenge failed"))

        result = cli_runner.invoke(cli.app, ["provision", "--domain", "tomated.app", "--project-dir", str(tmp_path)])

        assert result.exit_code == 13

    def test_degraded_exit_code(self, cli_runner, wired, tmp_path):
        wired.session.unreachable = True

        result = cli_runner.invoke(cli.app, ["provision", "--domain", "tomated.app", "--project-dir", str(tmp_path)])

        assert result.exit_code == cli.EXIT_DEGRADED
        assert "NOT reachable" in result.output

    def test_json_output(self, cli_runner, wired, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["provision", "--domain", "tomated.app", "--project-dir", str(tmp_path), "--json"]
        )

        payload = json.loads(result.output[result.output.index("{"):])
        assert payload["phase"] == "Verified"
        assert payload["health"]["http_reachable"]["tomated.app"] is True

    def test_domain_prompt(self, cli_runner, wired, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["provision", "--project-dir", str(tmp_path)], input="tomated.app\n"
        )

        assert result.exit_code == cli.EXIT_OK


class TestHealthcheckCommand:

    def test_healthy(self, cli_runner, wired, settings, domains, tmp_path):
        write_lineage(settings.certs_dir, list(domains.hostnames))

        result = cli_runner.invoke(cli.app, ["healthcheck", "--domain", "tomated.app", "--project-dir", str(tmp_path)])

        assert result.exit_code == cli.EXIT_OK
        assert "✅ database reachable" in result.output

    def test_unhealthy_json(self, cli_runner, wired, tmp_path):
        result = cli_runner.invoke(
            cli.app, ["healthcheck", "--domain", "tomated.app", "--project-dir", str(tmp_path), "--json"]
        )

        assert result.exit_code == cli.EXIT_HEALTH_FAILED
        payload = json.loads(result.output[result.output.index("{"):])
        assert "tls:tomated.app" in payload["failed_probes"]


class TestRenewCommand:

    def test_reads_persisted_domain(self, cli_runner, wired, settings):
        settings.domain_file.write_text("tomated.app\n")
        wired.runner.when("renew", result=CommandResult(0, stdout="1 renewal failed"))

        result = cli_runner.invoke(cli.app, ["renew", "--project-dir", str(settings.project_dir)])

        assert result.exit_code == cli.EXIT_RENEWAL_FAILED
        assert len(wired.session.posts) == 1
        assert "n8n.tomated.app" in wired.session.posts[0]["data"]["text"]

    def test_success(self, cli_runner, wired, settings):
        result = cli_runner.invoke(
            cli.app, ["renew", "--domain", "tomated.app", "--project-dir", str(settings.project_dir)]
        )

        assert result.exit_code == cli.EXIT_OK

    def test_missing_domain(self, cli_runner, wired, settings):
        result = cli_runner.invoke(cli.app, ["renew", "--project-dir", str(settings.project_dir)])

        assert result.exit_code == cli.EXIT_INVALID_DOMAIN


class TestAbortSignal:
    """SIGTERM during a phase lets the running tool finish, then stops."""

    @pytest.fixture
    def signals(self, wired, monkeypatch):
        saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        monkeypatch.setattr(cli, "_install_abort_handlers", install_abort_handlers)
        yield wired
        for sig, handler in saved.items():
            signal.signal(sig, handler)

    def test_signal_during_certbot_stops_before_next_phase(self, cli_runner, signals, settings, tmp_path):
        issue = certbot_success(settings.certs_dir)

        def interrupted(call):
            os.kill(os.getpid(), signal.SIGTERM)
            return issue(call)

        signals.runner.when("certonly", handler=interrupted)

        result = cli_runner.invoke(cli.app, ["provision", "--domain", "tomated.app", "--project-dir", str(tmp_path)])

        assert result.exit_code == cli.EXIT_ABORTED
        assert "PASS: [CertIssued]" in result.output
        assert "stopped at FinalConfigured: aborted" in result.output
        assert (settings.certs_dir / "live" / "tomated.app" / "fullchain.pem").exists()
        assert not (settings.conf_dir / "wordpress.conf").exists()


class TestExitCodes:

    def outcome(self, domains, **kwargs):
        return ProvisioningOutcome(domains=domains, run=ProvisioningRun(**kwargs))

    def test_phase_codes(self, domains):
        assert cli.exit_code_for(self.outcome(domains, phase=P.VERIFIED)) == 0
        assert cli.exit_code_for(self.outcome(domains, phase=P.FAILED, failed_phase=P.INIT)) == 10
        assert cli.exit_code_for(self.outcome(domains, phase=P.FAILED, failed_phase=P.PROXY_UP)) == 12
        assert cli.exit_code_for(self.outcome(domains, phase=P.RESTARTED)) == 16

    def test_abort_wins(self, domains):
        outcome = self.outcome(domains, phase=P.FAILED, failed_phase=P.CERT_ISSUED)
        outcome.aborted = True

        assert cli.exit_code_for(outcome) == cli.EXIT_ABORTED

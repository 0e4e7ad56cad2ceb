#tests\conftest.py

"""Pytest configuration and fixtures."""

from dataclasses import dataclass, field
from typing import List

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from provisioning_engine.config import ProvisionerSettings
from provisioning_engine.core.events import ConsoleEventEmitter, MultiEventEmitter
from provisioning_engine.core.models import CommandResult, DomainSet
from provisioning_engine.domain.stack import database_service, default_stack
from provisioning_engine.executor.retry import Backoff
from provisioning_engine.health_checker.checker import HealthChecker
from provisioning_engine.orchestrator.provisioning_orchestrator import ProvisioningOrchestrator
from provisioning_engine.renewal.scheduler import RenewalScheduler
from provisioning_engine.runtime.certificate_tool import CertificateTool
from provisioning_engine.runtime.container_engine import ContainerEngine
from provisioning_engine.runtime.database import DatabaseClient, DatabaseCredentials
from provisioning_engine.runtime.scheduler import CronScheduler

from tests.fakes import (
    FakeCrontab,
    FakeDockerClient,
    FakeProcessRunner,
    FakeSession,
    certbot_success,
)


STACK_SERVICES = ("mysql", "wordpress", "php", "n8n", "redis", "nginx")


@pytest.fixture
def domains():
    return DomainSet.from_primary("tomated.app")


@pytest.fixture
def settings(tmp_path):
    """Settings rooted at a fresh project dir, ignoring any local .env."""
    return ProvisionerSettings(
        _env_file=None,
        project_dir=tmp_path,
        renewal_log=tmp_path / "ssl_renew.log",
        readiness_attempts=3,
    )


@pytest.fixture
def runner():
    return FakeProcessRunner()


@pytest.fixture
def crontab(runner):
    return FakeCrontab(runner)


@dataclass
class Harness:
    """Real collaborators wired to fake process, Docker and HTTP boundaries."""

    settings: ProvisionerSettings
    runner: FakeProcessRunner
    crontab: FakeCrontab
    session: FakeSession
    docker_client: FakeDockerClient
    console: ConsoleEventEmitter
    sleeps: List[float] = field(default_factory=list)
    ready: bool = True
    tls_reachable: bool = True

    def __post_init__(self):
        self.runner.when("certonly", handler=certbot_success(self.settings.certs_dir))
        self.runner.when("mysql", result=CommandResult(0, stdout="information_schema\nwordpress\n"))

    def fetch_certificate(self, host, port, timeout):
        """Serve the lineage on disk, like nginx would."""
        if not self.tls_reachable:
            raise ConnectionRefusedError(f"{host}:{port} refused")
        primary = host[len("n8n."):] if host.startswith("n8n.") else host
        pem = (self.settings.certs_dir / "live" / primary / "fullchain.pem").read_bytes()
        return x509.load_pem_x509_certificate(pem).public_bytes(serialization.Encoding.DER)

    def health_checker(self, stack) -> HealthChecker:
        s = self.settings
        engine = ContainerEngine(self.runner, s.compose_file, docker_client=self.docker_client)
        return HealthChecker(
            engine=engine,
            database_client=DatabaseClient(engine),
            service_names=[spec.name for spec in stack],
            database_service=database_service(stack).name,
            credentials=DatabaseCredentials(s.mysql_user, s.mysql_password, s.mysql_database),
            session=self.session,
            certificate_fetcher=self.fetch_certificate,
        )

    def orchestrator(self, domains, should_abort=lambda: False) -> ProvisioningOrchestrator:
        s = self.settings
        stack = default_stack(domains, s)

        renewal_scheduler = RenewalScheduler(
            cron=CronScheduler(self.runner),
            script_values={
                "project_dir": s.project_dir,
                "certs_dir": s.certs_dir,
                "webroot_dir": s.webroot_dir,
                "compose_file": s.compose_file,
            },
            hour=s.renewal_hour,
            log_path=s.renewal_log,
        )

        return ProvisioningOrchestrator(
            settings=s,
            stack=stack,
            engine=ContainerEngine(self.runner, s.compose_file, docker_client=self.docker_client),
            certificate_tool=CertificateTool(self.runner, s.certs_dir),
            health_checker=self.health_checker(stack),
            renewal_scheduler=renewal_scheduler,
            emitter=MultiEventEmitter([self.console]),
            backoff=Backoff(attempts=3, initial_delay=0.5, factor=2, max_delay=5),
            readiness_probe=lambda host, port: self.ready,
            sleep=self.sleeps.append,
            should_abort=should_abort,
        )


@pytest.fixture
def harness(settings, runner, crontab):
    return Harness(
        settings=settings,
        runner=runner,
        crontab=crontab,
        session=FakeSession(),
        docker_client=FakeDockerClient({name: "running" for name in STACK_SERVICES}),
        console=ConsoleEventEmitter(),
    )

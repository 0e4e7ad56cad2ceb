#provisioning_engine\container.py

"""Dependency injection container - wires collaborators for one run."""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from provisioning_engine.config import ProvisionerSettings, RunnerConfig
from provisioning_engine.core.events import ConsoleEventEmitter, MultiEventEmitter
from provisioning_engine.core.models import DomainSet, ServiceSpec
from provisioning_engine.domain.stack import database_service, default_stack, proxy_service
from provisioning_engine.executor.process_runner import ProcessRunner
from provisioning_engine.executor.retry import Backoff
from provisioning_engine.health_checker.checker import HealthChecker
from provisioning_engine.orchestrator.provisioning_orchestrator import ProvisioningOrchestrator
from provisioning_engine.renewal.job import RenewalJob
from provisioning_engine.renewal.scheduler import RenewalScheduler
from provisioning_engine.runtime.certificate_tool import CertificateTool
from provisioning_engine.runtime.container_engine import ContainerEngine
from provisioning_engine.runtime.database import DatabaseClient, DatabaseCredentials
from provisioning_engine.runtime.notifier import TelegramNotifier
from provisioning_engine.runtime.scheduler import CronScheduler


@dataclass
class Services:
    settings: ProvisionerSettings
    stack: Tuple[ServiceSpec, ...]
    runner: ProcessRunner
    engine: ContainerEngine
    certificate_tool: CertificateTool
    health_checker: HealthChecker
    renewal_scheduler: RenewalScheduler
    renewal_job: RenewalJob
    emitter: MultiEventEmitter


def build_services(
    settings: ProvisionerSettings,
    domains: DomainSet,
    emitter: Optional[MultiEventEmitter] = None,
) -> Services:
    config = RunnerConfig.from_settings(settings)
    stack = default_stack(domains, settings)
    proxy = proxy_service(stack).name
    project_dir = settings.project_dir.resolve()

    # ============================================
    # RUNTIME
    # ============================================

    runner = ProcessRunner(
        default_timeout=config.command_timeout,
        secrets=settings.secrets(),
        cwd=str(project_dir),
    )

    engine = ContainerEngine(
        runner=runner,
        compose_file=settings.compose_file.resolve(),
        compose_command=settings.compose_command,
        timeout=config.command_timeout,
    )

    certificate_tool = CertificateTool(
        runner=runner,
        certs_dir=settings.certs_dir,
        image=settings.certbot_image,
        staging=settings.certbot_staging,
        timeout=config.certbot_timeout,
    )

    notifier = TelegramNotifier(
        bot_token=settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
    )

    # ============================================
    # HEALTH
    # ============================================

    health_checker = HealthChecker(
        engine=engine,
        database_client=DatabaseClient(engine),
        service_names=[spec.name for spec in stack],
        database_service=database_service(stack).name,
        credentials=DatabaseCredentials(
            user=settings.mysql_user,
            password=settings.mysql_password,
            database=settings.mysql_database,
        ),
        http_timeout=settings.http_timeout,
        tls_timeout=settings.tls_timeout,
    )

    # ============================================
    # RENEWAL
    # ============================================

    renewal_scheduler = RenewalScheduler(
        cron=CronScheduler(runner),
        script_values={
            "project_dir": project_dir,
            "certs_dir": settings.certs_dir.resolve(),
            "webroot_dir": settings.webroot_dir.resolve(),
            "certbot_image": settings.certbot_image,
            "telegram_api_url": settings.telegram_api_url,
            "compose_command": settings.compose_command,
            "compose_file": settings.compose_file.resolve(),
            "proxy_service": proxy,
        },
        hour=settings.renewal_hour,
        log_path=settings.renewal_log,
    )

    renewal_job = RenewalJob(
        certificate_tool=certificate_tool,
        engine=engine,
        notifier=notifier,
        chat_id=settings.telegram_chat_id,
        webroot=settings.webroot_dir,
        proxy_service=proxy,
    )

    return Services(
        settings=settings,
        stack=stack,
        runner=runner,
        engine=engine,
        certificate_tool=certificate_tool,
        health_checker=health_checker,
        renewal_scheduler=renewal_scheduler,
        renewal_job=renewal_job,
        emitter=emitter or MultiEventEmitter([ConsoleEventEmitter()]),
    )


def build_orchestrator(
    services: Services,
    should_abort: Callable[[], bool] = lambda: False,
) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(
        settings=services.settings,
        stack=services.stack,
        engine=services.engine,
        certificate_tool=services.certificate_tool,
        health_checker=services.health_checker,
        renewal_scheduler=services.renewal_scheduler,
        emitter=services.emitter,
        backoff=Backoff.from_config(RunnerConfig.from_settings(services.settings)),
        should_abort=should_abort,
    )

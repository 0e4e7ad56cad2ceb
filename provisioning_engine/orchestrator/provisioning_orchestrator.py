# provisioning_engine/orchestrator/provisioning_orchestrator.py
"""Provisioning orchestrator - sequences the two-phase TLS bootstrap."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from provisioning_engine.config import ProvisionerSettings
from provisioning_engine.core.errors import (
    PartialHealthFailure,
    ProvisioningAborted,
    ProvisioningError,
    UnreadyService,
)
from provisioning_engine.core.events import MultiEventEmitter, PhaseEvent
from provisioning_engine.core.models import (
    DomainSet,
    HealthReport,
    ProvisioningPhase,
    ProvisioningResult,
    ServiceSpec,
)
from provisioning_engine.core.state_machine import ProvisioningRun, ProvisioningStateMachine
from provisioning_engine.domain.stack import proxy_service
from provisioning_engine.domain.templates import (
    AUTOMATION_VHOST,
    CHALLENGE_VHOST,
    COMPOSE_MANIFEST,
    HEALTHCHECK_SCRIPT,
    WORDPRESS_VHOST,
    render,
)
from provisioning_engine.executor.files import write_text_atomic
from provisioning_engine.executor.retry import Backoff, tcp_port_open, wait_until
from provisioning_engine.health_checker.checker import HealthChecker
from provisioning_engine.renewal.scheduler import RenewalScheduler
from provisioning_engine.runtime.certificate_tool import CertificateTool
from provisioning_engine.runtime.container_engine import ContainerEngine

logger = logging.getLogger(__name__)


P = ProvisioningPhase

CHALLENGE_CONF = "challenge-only.conf"
WORDPRESS_CONF = "wordpress.conf"
AUTOMATION_CONF = "n8n.conf"
FULL_TLS_CONFS = (WORDPRESS_CONF, AUTOMATION_CONF)


@dataclass
class ProvisioningOutcome:
    """Everything a caller needs to report on one run."""

    domains: DomainSet
    run: ProvisioningRun
    results: List[ProvisioningResult] = field(default_factory=list)
    health: Optional[HealthReport] = None
    renewal_installed: Optional[bool] = None
    aborted: bool = False

    @property
    def phase(self) -> ProvisioningPhase:
        return self.run.phase

    @property
    def succeeded(self) -> bool:
        return self.run.succeeded

    @property
    def degraded(self) -> bool:
        return self.run.phase == P.RESTARTED or self.renewal_installed is False


class ProvisioningOrchestrator:
    """
    Runs Init -> ChallengeConfigured -> ProxyUp -> CertIssued ->
    FinalConfigured -> Restarted -> Verified.

    Every write is a render + overwrite and every external call is either a
    no-op or a safe retry when already applied, so a run can always be
    restarted from Init.
    """

    def __init__(
        self,
        settings: ProvisionerSettings,
        stack: Tuple[ServiceSpec, ...],
        engine: ContainerEngine,
        certificate_tool: CertificateTool,
        health_checker: HealthChecker,
        renewal_scheduler: RenewalScheduler,
        emitter: MultiEventEmitter,
        backoff: Backoff = Backoff(),
        readiness_probe: Callable[[str, int], bool] = tcp_port_open,
        sleep: Callable[[float], None] = time.sleep,
        should_abort: Callable[[], bool] = lambda: False,
    ):
        self.settings = settings
        self.stack = tuple(stack)
        self._engine = engine
        self._certificate_tool = certificate_tool
        self._health_checker = health_checker
        self._renewal_scheduler = renewal_scheduler
        self._emitter = emitter
        self.backoff = backoff
        self._readiness_probe = readiness_probe
        self._sleep = sleep
        self._should_abort = should_abort
        self.proxy = proxy_service(self.stack).name

    # -------------------------
    # RUN
    # -------------------------

    def provision(self, domains: DomainSet) -> ProvisioningOutcome:
        domains.validate()
        outcome = ProvisioningOutcome(domains=domains, run=ProvisioningRun())

        logger.info(f"[orchestrator] provisioning {', '.join(domains.hostnames)}")

        steps = (
            (P.INIT, self._bootstrap),
            (P.CHALLENGE_CONFIGURED, self._configure_challenge),
            (P.PROXY_UP, self._start_proxy),
            (P.CERT_ISSUED, self._issue_certificate),
            (P.FINAL_CONFIGURED, self._configure_tls),
            (P.RESTARTED, self._reload_proxy),
        )

        for phase, handler in steps:
            # Abort is honoured between phases, never mid external call
            if self._abort_requested(outcome, phase):
                return outcome

            result = self._run_phase(phase, handler, domains)
            self._record(outcome, result)

            if not result.succeeded:
                reason = result.diagnostics[-1] if result.diagnostics else "failed"
                ProvisioningStateMachine.fail(outcome.run, phase, reason)
                logger.error(f"[orchestrator] ❌ run failed at {phase.value}: {reason}")
                return outcome

            if phase != P.INIT:
                ProvisioningStateMachine.transition(outcome.run, phase)

        if self._abort_requested(outcome, P.VERIFIED):
            return outcome

        self._verify(domains, outcome)
        self._install_followups(domains, outcome)
        return outcome

    def _abort_requested(self, outcome: ProvisioningOutcome, phase: ProvisioningPhase) -> bool:
        if not self._should_abort():
            return False
        outcome.aborted = True
        self._record(outcome, ProvisioningResult(phase, False, [str(ProvisioningAborted(phase))]))
        ProvisioningStateMachine.fail(outcome.run, phase, "aborted")
        logger.warning(f"[orchestrator] {ProvisioningAborted(phase)}")
        return True

    def _run_phase(self, phase: ProvisioningPhase, handler, domains: DomainSet) -> ProvisioningResult:
        logger.info(f"[orchestrator] phase {phase.value}")
        try:
            return handler(domains)
        except (ProvisioningError, OSError, ValueError) as e:
            logger.error(f"[orchestrator] phase {phase.value} raised: {e}")
            return ProvisioningResult(phase, False, [str(e)])

    def _record(self, outcome: ProvisioningOutcome, result: ProvisioningResult) -> None:
        outcome.results.append(result)
        self._emitter.emit([PhaseEvent.from_result(result)])

    # -------------------------
    # PHASES
    # -------------------------

    def _bootstrap(self, domains: DomainSet) -> ProvisioningResult:
        """Directories, compose manifest, persisted domain, engine check."""
        s = self.settings
        for directory in (s.conf_dir, s.certs_dir, s.webroot_dir, s.automation_data_dir):
            directory.mkdir(parents=True, exist_ok=True)

        manifest = render(COMPOSE_MANIFEST, domains, {"services": self.stack})
        write_text_atomic(s.compose_file, manifest)
        write_text_atomic(s.domain_file, domains.primary + "\n")

        if not self._engine.available():
            return ProvisioningResult(P.INIT, False, ["container engine is not available"])

        return ProvisioningResult(P.INIT, True, [f"wrote {s.compose_file.name}"])

    def _configure_challenge(self, domains: DomainSet) -> ProvisioningResult:
        conf_dir = self.settings.conf_dir
        full_present = all((conf_dir / name).exists() for name in FULL_TLS_CONFS)

        if full_present and self._certificate_tool.usable_certificate(domains):
            # Full configs already serve the ACME path for every hostname
            return ProvisioningResult(
                P.CHALLENGE_CONFIGURED, True,
                ["certificate present, keeping TLS configuration"], skipped=True,
            )

        write_text_atomic(conf_dir / CHALLENGE_CONF, render(CHALLENGE_VHOST, domains))
        diagnostics = [f"wrote {CHALLENGE_CONF} for {' '.join(domains.hostnames)}"]

        # Write-then-delete: TLS configs without a usable cert must not load
        for name in FULL_TLS_CONFS:
            stale = conf_dir / name
            if stale.exists():
                stale.unlink()
                diagnostics.append(f"removed {name} (no usable certificate)")

        return ProvisioningResult(P.CHALLENGE_CONFIGURED, True, diagnostics)

    def _start_proxy(self, domains: DomainSet) -> ProvisioningResult:
        self._engine.up(self.proxy).check("docker compose up")

        # An already-running proxy must pick up the rewritten config
        if not self._engine.reload(self.proxy).ok:
            logger.warning("[orchestrator] reload after up failed, restarting proxy")
            self._engine.restart(self.proxy)

        host, port = self.settings.readiness_host, self.settings.challenge_port
        ready = wait_until(
            lambda: self._readiness_probe(host, port),
            self.backoff,
            sleep=self._sleep,
            description=f"{self.proxy} on {host}:{port}",
        )
        if not ready:
            logger.error(f"[orchestrator] {UnreadyService(self.proxy)}")
            return ProvisioningResult(P.PROXY_UP, False, ["proxy did not become ready"])

        return ProvisioningResult(P.PROXY_UP, True, [f"{self.proxy} accepting connections on :{port}"])

    def _issue_certificate(self, domains: DomainSet) -> ProvisioningResult:
        needed, reason = self._certificate_tool.needs_issuance(
            domains, self.settings.renew_before_days
        )
        if not needed:
            return ProvisioningResult(P.CERT_ISSUED, True, [reason], skipped=True)

        logger.info(f"[orchestrator] issuing certificate: {reason}")
        succeeded, output = self._certificate_tool.issue(
            domains.hostnames,
            self.settings.webroot_dir,
            self.settings.contact_email_for(domains.primary),
        )
        if not succeeded:
            return ProvisioningResult(P.CERT_ISSUED, False, [output.strip() or "certbot failed"])

        if self._certificate_tool.usable_certificate(domains) is None:
            return ProvisioningResult(
                P.CERT_ISSUED, False, ["certbot reported success but no usable certificate was found"]
            )

        return ProvisioningResult(P.CERT_ISSUED, True, [f"certificate issued for {len(domains.hostnames)} hostnames"])

    def _configure_tls(self, domains: DomainSet) -> ProvisioningResult:
        # Never activate TLS config pointing at missing or expired files
        if self._certificate_tool.usable_certificate(domains) is None:
            return ProvisioningResult(P.FINAL_CONFIGURED, False, ["no usable certificate for TLS configuration"])

        conf_dir = self.settings.conf_dir
        write_text_atomic(conf_dir / WORDPRESS_CONF, render(WORDPRESS_VHOST, domains))
        write_text_atomic(conf_dir / AUTOMATION_CONF, render(AUTOMATION_VHOST, domains))
        diagnostics = [f"wrote {WORDPRESS_CONF}, {AUTOMATION_CONF}"]

        challenge = conf_dir / CHALLENGE_CONF
        if challenge.exists():
            challenge.unlink()
            diagnostics.append(f"removed {CHALLENGE_CONF}")

        return ProvisioningResult(P.FINAL_CONFIGURED, True, diagnostics)

    def _reload_proxy(self, domains: DomainSet) -> ProvisioningResult:
        reload = self._engine.reload(self.proxy)
        if reload.ok:
            return ProvisioningResult(P.RESTARTED, True, [f"{self.proxy} reloaded"])

        logger.warning(f"[orchestrator] reload failed, restarting {self.proxy} once")
        restart = self._engine.restart(self.proxy)
        if restart.ok:
            return ProvisioningResult(P.RESTARTED, True, [f"{self.proxy} restarted (reload failed)"])

        return ProvisioningResult(
            P.RESTARTED, False, [f"{self.proxy} reload and restart failed: {restart.output.strip()}"]
        )

    # -------------------------
    # VERIFY + FOLLOW-UPS
    # -------------------------

    def _verify(self, domains: DomainSet, outcome: ProvisioningOutcome) -> None:
        report = self._health_checker.check(domains)
        outcome.health = report

        failed = report.failed_probes()
        if not failed:
            ProvisioningStateMachine.transition(outcome.run, P.VERIFIED)
            self._record(outcome, ProvisioningResult(P.VERIFIED, True, ["all health probes passed"]))
            return

        # Degraded but usable (e.g. DNS still propagating): stay in Restarted
        logger.warning(f"[orchestrator] {PartialHealthFailure(failed)}")
        for probe in failed:
            self._emitter.emit([PhaseEvent.warning(P.VERIFIED, f"probe failed: {probe}")])
        outcome.results.append(ProvisioningResult(P.VERIFIED, False, failed))

    def _install_followups(self, domains: DomainSet, outcome: ProvisioningOutcome) -> None:
        s = self.settings
        outcome.renewal_installed = self._renewal_scheduler.install(domains, s.renewal_script)
        if not outcome.renewal_installed:
            self._emitter.emit([PhaseEvent.warning(outcome.phase, "renewal job not installed")])

        try:
            script = render(HEALTHCHECK_SCRIPT, domains, {"project_dir": s.project_dir.resolve()})
            write_text_atomic(s.healthcheck_script, script, mode=0o755)
        except (ProvisioningError, OSError) as e:
            self._emitter.emit([PhaseEvent.warning(outcome.phase, f"health-check script not written: {e}")])

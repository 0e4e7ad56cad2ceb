"""Command line entry point: provision, renew, healthcheck, render."""

import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from provisioning_engine.config import ProvisionerSettings, get_settings
from provisioning_engine.container import build_orchestrator, build_services
from provisioning_engine.core.errors import InvalidDomain, ProvisioningError
from provisioning_engine.core.events import (
    ConsoleEventEmitter,
    LoggingEventEmitter,
    MultiEventEmitter,
)
from provisioning_engine.core.models import DomainSet, ProvisioningPhase
from provisioning_engine.core.schemas import HealthReportSchema, ProvisioningOutcomeSchema
from provisioning_engine.domain.stack import default_stack
from provisioning_engine.domain.templates import COMPOSE_MANIFEST, TEMPLATES, render
from provisioning_engine.health_checker.checker import render_report

logger = logging.getLogger(__name__)


# ============================================
# EXIT CODES
# ============================================

EXIT_OK = 0
EXIT_INVALID_DOMAIN = 2
EXIT_DEGRADED = 16
EXIT_RENEWAL_FAILED = 20
EXIT_HEALTH_FAILED = 30
EXIT_ABORTED = 130

PHASE_EXIT_CODES = {
    ProvisioningPhase.INIT: 10,
    ProvisioningPhase.CHALLENGE_CONFIGURED: 11,
    ProvisioningPhase.PROXY_UP: 12,
    ProvisioningPhase.CERT_ISSUED: 13,
    ProvisioningPhase.FINAL_CONFIGURED: 14,
    ProvisioningPhase.RESTARTED: 15,
    ProvisioningPhase.VERIFIED: EXIT_DEGRADED,
}


app = typer.Typer(
    name="stack-provisioner",
    help="Provision WordPress + n8n behind nginx with Let's Encrypt TLS.",
    no_args_is_help=True,
)


def exit_code_for(outcome) -> int:
    if outcome.aborted:
        return EXIT_ABORTED
    if outcome.run.failed_phase is not None:
        return PHASE_EXIT_CODES.get(outcome.run.failed_phase, 1)
    if outcome.degraded:
        return EXIT_DEGRADED
    return EXIT_OK


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def _load_settings(project_dir: Optional[Path]) -> ProvisionerSettings:
    if project_dir is None:
        return get_settings()
    return ProvisionerSettings(project_dir=project_dir, _env_file=project_dir / ".env")


def _resolve_domains(
    domain: Optional[str],
    settings: ProvisionerSettings,
    prompt: bool = False,
) -> DomainSet:
    """--domain, then PROVISIONER_DOMAIN, then the persisted domain file."""
    raw = domain or settings.domain
    if not raw and settings.domain_file.exists():
        raw = settings.domain_file.read_text(encoding="utf-8").strip()
    if not raw and prompt:
        raw = typer.prompt("Enter your main domain (e.g. tomated.app)")

    try:
        return DomainSet.from_primary(raw or "")
    except InvalidDomain as e:
        typer.echo(f"FAIL: {e}", err=True)
        raise typer.Exit(EXIT_INVALID_DOMAIN)


def _install_abort_handlers(stop: threading.Event) -> None:
    def _handler(signum, frame):
        logger.warning(f"Received signal {signum}, stopping after the current phase...")
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


# ============================================
# COMMANDS
# ============================================

DomainOption = typer.Option(None, "--domain", "-d", help="Primary domain, e.g. tomated.app")
ProjectDirOption = typer.Option(None, "--project-dir", help="Directory holding the generated stack")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Debug logging")
JsonOption = typer.Option(False, "--json", help="Print a JSON report")


@app.command()
def provision(
    domain: Optional[str] = DomainOption,
    project_dir: Optional[Path] = ProjectDirOption,
    verbose: bool = VerboseOption,
    json_output: bool = JsonOption,
):
    """Render configuration, obtain certificates and verify the stack."""
    _configure_logging(verbose)
    settings = _load_settings(project_dir)
    domains = _resolve_domains(domain, settings, prompt=True)

    emitters = [ConsoleEventEmitter()]
    if verbose:
        emitters.append(LoggingEventEmitter())

    stop = threading.Event()
    _install_abort_handlers(stop)

    services = build_services(settings, domains, emitter=MultiEventEmitter(emitters))
    orchestrator = build_orchestrator(services, should_abort=stop.is_set)
    outcome = orchestrator.provision(domains)

    if json_output:
        typer.echo(ProvisioningOutcomeSchema.from_outcome(outcome).model_dump_json(indent=2))
    else:
        if outcome.health is not None:
            for line in render_report(outcome.health):
                typer.echo(line)
        if outcome.succeeded:
            typer.echo("Done! Your sites are available at:")
            for host in domains.hostnames:
                typer.echo(f"  - https://{host}")
        elif outcome.run.failed_phase is not None:
            typer.echo(
                f"FAIL: stopped at {outcome.run.failed_phase.value}: {outcome.run.failure_reason}",
                err=True,
            )

    raise typer.Exit(exit_code_for(outcome))


@app.command()
def renew(
    domain: Optional[str] = DomainOption,
    project_dir: Optional[Path] = ProjectDirOption,
    verbose: bool = VerboseOption,
):
    """Renew certificates, notify on failure and reload the proxy."""
    _configure_logging(verbose)
    settings = _load_settings(project_dir)
    domains = _resolve_domains(domain, settings)

    services = build_services(settings, domains)
    outcome = services.renewal_job.run(domains)

    if not outcome.renewed:
        typer.echo(f"FAIL: certificate renewal failed for {', '.join(domains.hostnames)}", err=True)
        raise typer.Exit(EXIT_RENEWAL_FAILED)
    if not outcome.reloaded:
        typer.echo("FAIL: proxy reload failed", err=True)
        raise typer.Exit(PHASE_EXIT_CODES[ProvisioningPhase.RESTARTED])

    typer.echo("PASS: certificate renewal check complete")
    raise typer.Exit(EXIT_OK)


@app.command()
def healthcheck(
    domain: Optional[str] = DomainOption,
    project_dir: Optional[Path] = ProjectDirOption,
    verbose: bool = VerboseOption,
    json_output: bool = JsonOption,
):
    """Probe containers, HTTP, TLS and the database."""
    _configure_logging(verbose)
    settings = _load_settings(project_dir)
    domains = _resolve_domains(domain, settings)

    services = build_services(settings, domains)
    report = services.health_checker.check(domains)

    if json_output:
        typer.echo(HealthReportSchema.from_report(report).model_dump_json(indent=2))
    else:
        for line in render_report(report):
            typer.echo(line)

    raise typer.Exit(EXIT_OK if report.healthy else EXIT_HEALTH_FAILED)


@app.command("render")
def render_template(
    template_id: str = typer.Argument(..., help=f"One of: {', '.join(TEMPLATES)}"),
    domain: Optional[str] = DomainOption,
    project_dir: Optional[Path] = ProjectDirOption,
):
    """Print a rendered artifact without touching the system."""
    settings = _load_settings(project_dir)
    domains = _resolve_domains(domain, settings)

    extra = {}
    if template_id == COMPOSE_MANIFEST:
        extra["services"] = default_stack(domains, settings)
    else:
        services = build_services(settings, domains)
        extra.update(services.renewal_scheduler.script_values)

    try:
        typer.echo(render(template_id, domains, extra), nl=False)
    except ProvisioningError as e:
        typer.echo(f"FAIL: {e}", err=True)
        raise typer.Exit(1)


def main():
    app()


if __name__ == "__main__":
    main()

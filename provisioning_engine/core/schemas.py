"""Pydantic schemas for serializing reports."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from provisioning_engine.core.models import ContainerState, HealthReport, ProvisioningPhase


# ============================================
# Health
# ============================================

class CertificateWindow(BaseModel):
    not_before: datetime
    not_after: datetime


class HealthReportSchema(BaseModel):
    """Serialized HealthReport."""

    container_statuses: Dict[str, ContainerState]
    http_reachable: Dict[str, bool]
    cert_validity: Dict[str, Optional[CertificateWindow]]
    db_reachable: bool
    checked_at: datetime
    failed_probes: List[str]

    @classmethod
    def from_report(cls, report: HealthReport) -> "HealthReportSchema":
        return cls(
            container_statuses=report.container_statuses,
            http_reachable=report.http_reachable,
            cert_validity={
                host: None if window is None else CertificateWindow(
                    not_before=window[0], not_after=window[1]
                )
                for host, window in report.cert_validity.items()
            },
            db_reachable=report.db_reachable,
            checked_at=report.checked_at,
            failed_probes=report.failed_probes(),
        )


# ============================================
# Provisioning
# ============================================

class PhaseResultSchema(BaseModel):
    phase: ProvisioningPhase
    succeeded: bool
    skipped: bool = False
    diagnostics: List[str]
    finished_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProvisioningOutcomeSchema(BaseModel):
    primary: str
    hostnames: List[str]
    phase: ProvisioningPhase
    failed_phase: Optional[ProvisioningPhase] = None
    failure_reason: Optional[str] = None
    aborted: bool = False
    renewal_installed: Optional[bool] = None
    results: List[PhaseResultSchema]
    health: Optional[HealthReportSchema] = None

    @classmethod
    def from_outcome(cls, outcome) -> "ProvisioningOutcomeSchema":
        return cls(
            primary=outcome.domains.primary,
            hostnames=list(outcome.domains.hostnames),
            phase=outcome.run.phase,
            failed_phase=outcome.run.failed_phase,
            failure_reason=outcome.run.failure_reason,
            aborted=outcome.aborted,
            renewal_installed=outcome.renewal_installed,
            results=[PhaseResultSchema.model_validate(r) for r in outcome.results],
            health=HealthReportSchema.from_report(outcome.health) if outcome.health else None,
        )

#provisioning_engine\core\state_machine.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from provisioning_engine.core.errors import InvalidPhaseTransition
from provisioning_engine.core.models import ProvisioningPhase


P = ProvisioningPhase

ALLOWED_TRANSITIONS = {
    P.INIT: {P.CHALLENGE_CONFIGURED, P.FAILED},
    P.CHALLENGE_CONFIGURED: {P.PROXY_UP, P.FAILED},
    P.PROXY_UP: {P.CERT_ISSUED, P.FAILED},
    P.CERT_ISSUED: {P.FINAL_CONFIGURED, P.FAILED},
    P.FINAL_CONFIGURED: {P.RESTARTED, P.FAILED},
    P.RESTARTED: {P.VERIFIED, P.FAILED},
}

# Restarted is terminal when verification only produced warnings
TERMINAL_PHASES = {P.VERIFIED, P.FAILED}


@dataclass
class ProvisioningRun:
    """Phase bookkeeping for one orchestrator run."""

    phase: ProvisioningPhase = P.INIT
    failed_phase: Optional[ProvisioningPhase] = None
    failure_reason: Optional[str] = None
    history: List[Tuple[ProvisioningPhase, datetime]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def succeeded(self) -> bool:
        return self.phase == P.VERIFIED


class ProvisioningStateMachine:
    @staticmethod
    def transition(
        run: ProvisioningRun,
        new_phase: ProvisioningPhase,
        *,
        now: datetime | None = None,
    ) -> ProvisioningRun:
        now = now or datetime.now(timezone.utc)

        current = run.phase

        if current == new_phase:
            return run

        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if new_phase not in allowed:
            raise InvalidPhaseTransition(
                f"Cannot transition from {current.value} to {new_phase.value}"
            )

        run.history.append((new_phase, now))
        run.phase = new_phase
        return run

    @staticmethod
    def fail(
        run: ProvisioningRun,
        phase: ProvisioningPhase,
        reason: str,
        *,
        now: datetime | None = None,
    ) -> ProvisioningRun:
        """Move to Failed, remembering which phase could not be reached."""
        ProvisioningStateMachine.transition(run, P.FAILED, now=now)
        run.failed_phase = phase
        run.failure_reason = reason
        return run

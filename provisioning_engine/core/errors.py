# provisioning_engine/core/errors.py

from typing import Iterable, Optional

# -----------------------------
# Base Errors
# -----------------------------

class ProvisioningError(Exception):
    """Base class for all provisioning engine errors."""
    pass


# -----------------------------
# Validation / Input Errors
# -----------------------------

class InvalidDomain(ProvisioningError):
    """Domain does not match the strict hostname grammar."""

    def __init__(self, domain: str, reason: str):
        self.domain = domain
        self.reason = reason
        super().__init__(f"Invalid domain {domain!r}: {reason}")


class UnknownTemplate(ProvisioningError):
    """Template id is not one of the registered templates."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Unknown template: {template_id}")


class TemplateRenderError(ProvisioningError):
    """Placeholder missing or value unsafe to interpolate."""
    pass


# -----------------------------
# External Tool Errors
# -----------------------------

class ExternalToolFailure(ProvisioningError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, tool: str, exit_code: int, output: str = ""):
        self.tool = tool
        self.exit_code = exit_code
        self.output = output
        message = f"{tool} failed with exit code {exit_code}"
        if output:
            message = f"{message}:\n{output.strip()}"
        super().__init__(message)


class TimedOut(ProvisioningError):
    """An external command exceeded its timeout and was terminated."""

    def __init__(self, operation: str, timeout: Optional[float] = None):
        self.operation = operation
        self.timeout = timeout
        suffix = f" after {timeout}s" if timeout is not None else ""
        super().__init__(f"{operation} timed out{suffix}")


class UnreadyService(ProvisioningError):
    """Service did not become ready within the readiness budget."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} did not become ready")


# -----------------------------
# Health Errors
# -----------------------------

class PartialHealthFailure(ProvisioningError):
    """One or more health probes failed (stack may still be usable)."""

    def __init__(self, probes: Iterable[str]):
        self.probes = list(probes)
        super().__init__("Health probes failed: " + ", ".join(self.probes))


# -----------------------------
# State Machine Errors
# -----------------------------

class InvalidPhaseTransition(ProvisioningError):
    """Illegal phase transition attempted."""
    pass


class ProvisioningAborted(ProvisioningError):
    """User requested abort between phases."""

    def __init__(self, phase):
        self.phase = phase
        super().__init__(f"Provisioning aborted before {phase.value}")

"""Core domain models for a provisioning run."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from provisioning_engine.core.errors import ExternalToolFailure, InvalidDomain
from provisioning_engine.core.validation import normalize_domain, validate_hostname


AUTOMATION_SUBDOMAIN = "n8n"


# ============================================
# ENUMS
# ============================================

class ProvisioningPhase(Enum):
    """Provisioning state machine phases."""

    INIT = "Init"
    CHALLENGE_CONFIGURED = "ChallengeConfigured"
    PROXY_UP = "ProxyUp"
    CERT_ISSUED = "CertIssued"
    FINAL_CONFIGURED = "FinalConfigured"
    RESTARTED = "Restarted"
    VERIFIED = "Verified"
    FAILED = "Failed"


class VHostMode(Enum):
    """Proxy configuration mode."""
    CHALLENGE_ONLY = "ChallengeOnly"
    FULL_TLS = "FullTLS"


class ContainerState(Enum):
    """Container status as seen by the health checker."""
    RUNNING = "Running"
    EXITED = "Exited"
    UNKNOWN = "Unknown"


# ============================================
# DOMAIN SET
# ============================================

@dataclass(frozen=True)
class DomainSet:
    """Primary domain plus the subdomains derived from it."""

    primary: str
    subdomains: Tuple[str, ...] = ()

    def __post_init__(self):
        validate_hostname(self.primary)
        derived = derive_subdomains(self.primary)
        subdomains = tuple(self.subdomains)
        for sub in subdomains:
            validate_hostname(sub)
        # Subdomains are always the derived set; an empty tuple means "derive"
        if subdomains and subdomains != derived:
            raise InvalidDomain(
                ", ".join(subdomains),
                f"subdomains of {self.primary} must be {', '.join(derived)}",
            )
        object.__setattr__(self, "subdomains", derived)

    @classmethod
    def from_primary(cls, raw: str) -> "DomainSet":
        return cls(primary=validate_hostname(normalize_domain(raw)))

    @property
    def hostnames(self) -> Tuple[str, ...]:
        return (self.primary, *self.subdomains)

    @property
    def automation_host(self) -> str:
        return self.subdomains[0]

    def validate(self) -> None:
        """Re-check the grammar (sets may come back from persisted runs)."""
        for host in self.hostnames:
            validate_hostname(host)


def derive_subdomains(primary: str) -> Tuple[str, ...]:
    return (f"{AUTOMATION_SUBDOMAIN}.{primary}",)


# ============================================
# SERVICES
# ============================================

@dataclass(frozen=True)
class ServiceSpec:
    """Declarative description of one managed container."""

    name: str
    image_reference: str
    restart_policy: str = "always"
    env: Mapping[str, str] = field(default_factory=dict)
    mounts: Tuple[Tuple[str, str], ...] = ()
    networks: frozenset = frozenset()
    ports: Tuple[Tuple[int, int], ...] = ()
    depends_on: Tuple[str, ...] = ()
    role: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "mounts", tuple(tuple(m) for m in self.mounts))
        object.__setattr__(self, "networks", frozenset(self.networks))
        object.__setattr__(self, "ports", tuple(tuple(p) for p in self.ports))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def with_env(self, **overrides: str) -> "ServiceSpec":
        """Return a new spec with environment overrides applied."""
        return replace(self, env={**self.env, **overrides})


# ============================================
# PROXY CONFIG
# ============================================

@dataclass(frozen=True)
class CertPaths:
    fullchain: str
    key: str


@dataclass(frozen=True)
class VHostConfig:
    """One rendered proxy configuration block."""

    server_name: str
    mode: VHostMode
    cert_paths: Optional[CertPaths] = None
    upstream: Optional[str] = None

    def __post_init__(self):
        if self.mode == VHostMode.FULL_TLS and self.cert_paths is None:
            raise ValueError("FullTLS vhost requires certificate paths")

    @classmethod
    def challenge(cls, server_name: str) -> "VHostConfig":
        return cls(server_name=server_name, mode=VHostMode.CHALLENGE_ONLY)

    @classmethod
    def full_tls(
        cls, server_name: str, cert_paths: CertPaths, upstream: Optional[str] = None
    ) -> "VHostConfig":
        return cls(
            server_name=server_name,
            mode=VHostMode.FULL_TLS,
            cert_paths=cert_paths,
            upstream=upstream,
        )


# ============================================
# RESULTS
# ============================================

@dataclass
class CommandResult:
    """Outcome of one external command."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def check(self, tool: str) -> "CommandResult":
        """Raise ExternalToolFailure on a non-zero exit, else return self."""
        if not self.ok:
            raise ExternalToolFailure(tool, self.exit_code, self.output)
        return self


@dataclass
class ProvisioningResult:
    """Outcome record of one phase."""
    phase: ProvisioningPhase
    succeeded: bool
    diagnostics: List[str] = field(default_factory=list)
    skipped: bool = False
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class HealthReport:
    """Live-probe snapshot of the deployment; never persisted."""

    container_statuses: Dict[str, ContainerState] = field(default_factory=dict)
    http_reachable: Dict[str, bool] = field(default_factory=dict)
    cert_validity: Dict[str, Optional[Tuple[datetime, datetime]]] = field(default_factory=dict)
    db_reachable: bool = False
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def failed_probes(self, now: Optional[datetime] = None) -> List[str]:
        now = now or datetime.now(timezone.utc)
        failed = []
        for name, state in self.container_statuses.items():
            if state != ContainerState.RUNNING:
                failed.append(f"container:{name}")
        for host, reachable in self.http_reachable.items():
            if not reachable:
                failed.append(f"http:{host}")
        for host, window in self.cert_validity.items():
            if window is None or not (window[0] <= now <= window[1]):
                failed.append(f"tls:{host}")
        if not self.db_reachable:
            failed.append("database")
        return failed

    @property
    def healthy(self) -> bool:
        return not self.failed_probes()

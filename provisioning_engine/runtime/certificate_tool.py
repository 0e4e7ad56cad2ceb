# provisioning_engine/runtime/certificate_tool.py
"""Certbot adapter - multi-SAN issuance, renewal and lineage inspection."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from cryptography import x509

from provisioning_engine.core.models import DomainSet
from provisioning_engine.domain.stack import PROXY_WEBROOT
from provisioning_engine.executor.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


LETSENCRYPT_DIR = "/etc/letsencrypt"


@dataclass
class CertificateInfo:
    """Validity window and names of an issued certificate."""

    path: Path
    not_before: datetime
    not_after: datetime
    names: List[str] = field(default_factory=list)

    def covers(self, hostnames: Iterable[str]) -> bool:
        names = {n.lower() for n in self.names}
        return all(h.lower() in names for h in hostnames)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.not_before <= now < self.not_after

    def expires_within(self, days: int, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.not_after - now <= timedelta(days=days)


def load_certificate_info(path: Path) -> Optional[CertificateInfo]:
    """Parse the leaf certificate of a PEM chain; None if missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return None

    try:
        cert = x509.load_pem_x509_certificate(path.read_bytes())
    except (OSError, ValueError) as e:
        logger.warning(f"[certbot] could not read certificate {path}: {e}")
        return None

    return certificate_info_from(cert, path)


def certificate_info_from(cert: x509.Certificate, path: Optional[Path] = None) -> CertificateInfo:
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        names = []

    return CertificateInfo(
        path=path,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        names=list(names),
    )


class CertificateTool:
    """Runs certbot in a throwaway container sharing the proxy's webroot."""

    def __init__(
        self,
        runner: ProcessRunner,
        certs_dir: Path,
        image: str = "certbot/certbot",
        staging: bool = False,
        timeout: float = 300.0,
    ):
        self._runner = runner
        self.certs_dir = Path(certs_dir)
        self.image = image
        self.staging = staging
        self.timeout = timeout

    # -------------------------
    # OPERATIONS
    # -------------------------

    def issue(
        self,
        hostnames: Iterable[str],
        webroot: Path,
        contact_email: str,
    ) -> Tuple[bool, str]:
        """
        Request one certificate covering every hostname (multi-SAN).

        The lineage is named after the first hostname.
        """
        hostnames = list(hostnames)
        if not hostnames:
            raise ValueError("At least one hostname is required")

        args = self._docker_args(webroot) + [
            "certonly",
            "--webroot",
            f"--webroot-path={PROXY_WEBROOT}",
            "--agree-tos",
            "--no-eff-email",
            "--non-interactive",
            "--keep-until-expiring",
            "--expand",
            "--email", contact_email,
            "--cert-name", hostnames[0],
        ]
        for host in hostnames:
            args += ["-d", host]
        if self.staging:
            args.append("--staging")

        logger.info(f"[certbot] requesting certificate for {', '.join(hostnames)}")
        result = self._runner.run("docker", args, timeout=self.timeout)

        if result.ok:
            logger.info("[certbot] ✅ certificate issued")
        else:
            logger.error(f"[certbot] ❌ issuance failed (exit {result.exit_code})")
        return result.ok, result.output

    def renew(self, webroot: Path) -> Tuple[bool, str]:
        """Renew every lineage that is close to expiry."""
        args = self._docker_args(webroot) + [
            "renew",
            "--webroot",
            f"--webroot-path={PROXY_WEBROOT}",
            "--non-interactive",
        ]
        result = self._runner.run("docker", args, timeout=self.timeout)
        return result.ok, result.output

    # -------------------------
    # INSPECTION
    # -------------------------

    def lineage_dir(self, primary: str) -> Path:
        return self.certs_dir / "live" / primary

    def inspect(self, primary: str) -> Optional[CertificateInfo]:
        return load_certificate_info(self.lineage_dir(primary) / "fullchain.pem")

    def has_key(self, primary: str) -> bool:
        return (self.lineage_dir(primary) / "privkey.pem").exists()

    def usable_certificate(
        self, domains: DomainSet, now: Optional[datetime] = None
    ) -> Optional[CertificateInfo]:
        """Existing lineage if it covers every hostname and is unexpired."""
        info = self.inspect(domains.primary)
        if info is None or not self.has_key(domains.primary):
            return None
        if not info.covers(domains.hostnames) or not info.is_valid(now):
            return None
        return info

    def needs_issuance(
        self,
        domains: DomainSet,
        renew_before_days: int,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, str]:
        info = self.inspect(domains.primary)
        if info is None:
            return True, "no certificate found"
        if not self.has_key(domains.primary):
            return True, "private key missing"
        if not info.covers(domains.hostnames):
            return True, "certificate does not cover every hostname"
        if not info.is_valid(now):
            return True, "certificate expired"
        if info.expires_within(renew_before_days, now):
            return True, f"certificate expires {info.not_after:%Y-%m-%d}"
        return False, f"certificate valid until {info.not_after:%Y-%m-%d}"

    def _docker_args(self, webroot: Path) -> List[str]:
        return [
            "run", "--rm",
            "-v", f"{self.certs_dir.resolve()}:{LETSENCRYPT_DIR}",
            "-v", f"{Path(webroot).resolve()}:{PROXY_WEBROOT}",
            self.image,
        ]

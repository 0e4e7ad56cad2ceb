# provisioning_engine/health_checker/checker.py
"""
Health Checker - probes the live deployment and builds a HealthReport.

Probes are independent and read-only, so they run concurrently; the
report is only returned once every probe has finished or timed out.
"""

import logging
import socket
import ssl
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import requests
from cryptography import x509

from provisioning_engine.core.models import ContainerState, DomainSet, HealthReport
from provisioning_engine.runtime.container_engine import ContainerEngine
from provisioning_engine.runtime.database import DatabaseClient, DatabaseCredentials

logger = logging.getLogger(__name__)


TLS_PORT = 443


def fetch_peer_certificate(host: str, port: int = TLS_PORT, timeout: float = 5.0) -> bytes:
    """
    Return the DER-encoded certificate presented by host:port.

    Verification is disabled: an expired or self-signed
    certificate must still be reported with its validity window.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as tls:
            der = tls.getpeercert(binary_form=True)

    if not der:
        raise ssl.SSLError(f"{host} presented no certificate")
    return der


class HealthChecker:
    """
    Builds a HealthReport from live probes.

    Probes:
    - Container state per declared service
    - HTTP HEAD per hostname (2xx/3xx = reachable)
    - TLS validity window per hostname
    - Database connectivity
    """

    def __init__(
        self,
        engine: ContainerEngine,
        database_client: DatabaseClient,
        service_names: Iterable[str],
        database_service: str,
        credentials: DatabaseCredentials,
        http_timeout: float = 5.0,
        tls_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        certificate_fetcher: Callable[[str, int, float], bytes] = fetch_peer_certificate,
        max_workers: int = 8,
    ):
        self._engine = engine
        self._database_client = database_client
        self.service_names = list(service_names)
        self.database_service = database_service
        self.credentials = credentials
        self.http_timeout = http_timeout
        self.tls_timeout = tls_timeout
        self._session = session or requests.Session()
        self._fetch_certificate = certificate_fetcher
        self.max_workers = max_workers

    def check(self, domains: DomainSet) -> HealthReport:
        """Run every probe and aggregate. Never raises."""
        hosts = list(domains.hostnames)
        logger.info(f"[health] checking {', '.join(hosts)}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            containers = pool.submit(self._probe_containers)
            database = pool.submit(self._probe_database)
            http = {host: pool.submit(self._probe_http, host) for host in hosts}
            tls = {host: pool.submit(self._probe_certificate, host) for host in hosts}

            report = HealthReport(
                container_statuses=self._collect(
                    containers, {n: ContainerState.UNKNOWN for n in self.service_names}
                ),
                http_reachable={h: self._collect(f, False) for h, f in http.items()},
                cert_validity={h: self._collect(f, None) for h, f in tls.items()},
                db_reachable=self._collect(database, False),
            )

        failed = report.failed_probes()
        if failed:
            logger.warning(f"[health] ❌ {len(failed)} probe(s) failed: {', '.join(failed)}")
        else:
            logger.info("[health] ✅ all probes passed")
        return report

    # -------------------------
    # PROBES
    # -------------------------

    def _probe_containers(self) -> Dict[str, ContainerState]:
        return self._engine.status(self.service_names)

    def _probe_http(self, host: str) -> bool:
        url = f"http://{host}"
        try:
            response = self._session.head(
                url, timeout=self.http_timeout, allow_redirects=False
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"[health] ❌ HTTP {url}: {e}")
            return False

        reachable = 200 <= response.status_code < 400
        if reachable:
            logger.info(f"[health] ✅ HTTP {url} ({response.status_code})")
        else:
            logger.warning(f"[health] ❌ HTTP {url} returned {response.status_code}")
        return reachable

    def _probe_certificate(self, host: str) -> Optional[Tuple[datetime, datetime]]:
        try:
            der = self._fetch_certificate(host, TLS_PORT, self.tls_timeout)
            cert = x509.load_der_x509_certificate(der)
        except (OSError, ValueError) as e:
            logger.warning(f"[health] ❌ TLS {host}: {e}")
            return None

        window = (cert.not_valid_before_utc, cert.not_valid_after_utc)
        logger.info(f"[health] TLS {host}: valid {window[0]:%Y-%m-%d} -> {window[1]:%Y-%m-%d}")
        return window

    def _probe_database(self) -> bool:
        rows = self._database_client.query(
            self.database_service, self.credentials, "SHOW DATABASES;"
        )
        names = {cell for row in rows for cell in row}
        if self.credentials.database and self.credentials.database not in names:
            logger.warning(f"[health] ❌ database {self.credentials.database!r} missing")
            return False
        logger.info("[health] ✅ database reachable")
        return True

    @staticmethod
    def _collect(future, default):
        """Result of a probe, or the failure value if it raised."""
        try:
            return future.result()
        except Exception as e:
            logger.warning(f"[health] probe error: {e}")
            return default


def render_report(report: HealthReport, now: Optional[datetime] = None) -> List[str]:
    """Per-host/per-probe lines for the final console report."""
    now = now or datetime.now(timezone.utc)
    lines = []

    for name, state in sorted(report.container_statuses.items()):
        mark = "✅" if state == ContainerState.RUNNING else "❌"
        lines.append(f"{mark} container {name}: {state.value}")

    for host, reachable in report.http_reachable.items():
        mark = "✅" if reachable else "❌"
        lines.append(f"{mark} http://{host} {'reachable' if reachable else 'NOT reachable'}")

    for host, window in report.cert_validity.items():
        if window is None:
            lines.append(f"❌ TLS {host}: no certificate")
        elif window[0] <= now <= window[1]:
            lines.append(f"✅ TLS {host}: valid until {window[1]:%Y-%m-%d %H:%M} UTC")
        else:
            lines.append(f"❌ TLS {host}: outside validity window (notAfter {window[1]:%Y-%m-%d})")

    mark = "✅" if report.db_reachable else "❌"
    lines.append(f"{mark} database {'reachable' if report.db_reachable else 'NOT reachable'}")
    return lines

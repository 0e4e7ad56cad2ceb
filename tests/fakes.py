"""Fakes for the process, Docker and HTTP boundaries, plus a certificate factory."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from docker.errors import NotFound

from provisioning_engine.core.models import CommandResult


# ============================================
# CERTIFICATES
# ============================================

def make_certificate(
    hostnames: List[str],
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
):
    """Self-signed certificate with every hostname as a SAN."""
    now = datetime.now(timezone.utc)
    not_before = not_before or now - timedelta(days=1)
    not_after = not_after or now + timedelta(days=90)

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostnames[0])])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(h) for h in hostnames]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return cert, key


def write_lineage(certs_dir: Path, hostnames: List[str], **validity) -> x509.Certificate:
    """Write live/<first hostname>/{fullchain,privkey}.pem like certbot does."""
    cert, key = make_certificate(list(hostnames), **validity)
    lineage = Path(certs_dir) / "live" / hostnames[0]
    lineage.mkdir(parents=True, exist_ok=True)
    (lineage / "fullchain.pem").write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    (lineage / "privkey.pem").write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return cert


# ============================================
# PROCESS RUNNER
# ============================================

@dataclass
class RecordedCall:
    argv: List[str]
    env: Optional[Dict[str, str]] = None
    input_text: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def line(self) -> str:
        return " ".join(self.argv)

    def values_after(self, flag: str) -> List[str]:
        return [self.argv[i + 1] for i, arg in enumerate(self.argv[:-1]) if arg == flag]


class FakeProcessRunner:
    """
    ProcessRunner stand-in.

    Records every argv and answers from handlers registered with `when`.
    A handler matches when all of its tokens appear as whole arguments; the
    most recently registered match wins. Unmatched commands exit 0.
    """

    def __init__(self):
        self.calls: List[RecordedCall] = []
        self._handlers = []

    def when(self, *tokens, result: Optional[CommandResult] = None,
             handler: Optional[Callable[[RecordedCall], CommandResult]] = None):
        self._handlers.append((tokens, handler or (lambda call: result)))
        return self

    def run(self, command, args=(), timeout=None, env=None, input_text=None):
        call = RecordedCall([command, *args], env, input_text, timeout)
        self.calls.append(call)
        for tokens, handler in reversed(self._handlers):
            if all(token in call.argv for token in tokens):
                return handler(call)
        return CommandResult(exit_code=0)

    def calls_with(self, *tokens) -> List[RecordedCall]:
        return [c for c in self.calls if all(t in c.argv for t in tokens)]


class FakeCrontab:
    """In-memory crontab answering `crontab -l` and `crontab -`."""

    def __init__(self, runner: FakeProcessRunner, lines: Optional[List[str]] = None):
        self.lines = list(lines) if lines is not None else None
        runner.when("crontab", "-l", handler=self._list)
        runner.when("crontab", "-", handler=self._write)

    def _list(self, call):
        if self.lines is None:
            return CommandResult(1, stderr="no crontab for root")
        return CommandResult(0, stdout="".join(line + "\n" for line in self.lines))

    def _write(self, call):
        self.lines = call.input_text.splitlines()
        return CommandResult(0)


def certbot_success(certs_dir: Path):
    """Handler for `certonly` that writes a lineage for every -d hostname."""
    def handler(call):
        write_lineage(certs_dir, call.values_after("-d"))
        return CommandResult(0, stdout="Successfully received certificate.")
    return handler


# ============================================
# DOCKER / HTTP
# ============================================

class FakeContainers:
    def __init__(self, statuses: Dict[str, str]):
        self.statuses = statuses

    def get(self, name):
        if name not in self.statuses:
            raise NotFound(f"No such container: {name}")
        return SimpleNamespace(name=name, status=self.statuses[name])


class FakeDockerClient:
    def __init__(self, statuses: Dict[str, str]):
        self.containers = FakeContainers(statuses)


@dataclass
class FakeSession:
    """requests.Session stand-in for HEAD probes and notifier POSTs."""

    head_status: Dict[str, int] = field(default_factory=dict)
    default_status: int = 301
    unreachable: bool = False
    post_status: int = 200
    heads: List[str] = field(default_factory=list)
    posts: List[dict] = field(default_factory=list)

    def head(self, url, timeout=None, allow_redirects=True):
        self.heads.append(url)
        if self.unreachable:
            raise requests.exceptions.ConnectionError(f"cannot reach {url}")
        host = url.split("://", 1)[-1]
        return SimpleNamespace(status_code=self.head_status.get(host, self.default_status))

    def post(self, url, data=None, timeout=None):
        self.posts.append({"url": url, "data": data})
        return SimpleNamespace(status_code=self.post_status)

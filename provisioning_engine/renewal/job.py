# provisioning_engine/renewal/job.py
"""Renewal job - the `renew` command, mirroring the generated script."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from provisioning_engine.core.errors import ProvisioningError
from provisioning_engine.core.models import DomainSet
from provisioning_engine.domain.templates.scripts import RENEWAL_FAILURE_MARKER, renewal_message
from provisioning_engine.runtime.certificate_tool import CertificateTool
from provisioning_engine.runtime.container_engine import ContainerEngine
from provisioning_engine.runtime.notifier import TelegramNotifier

logger = logging.getLogger(__name__)


@dataclass
class RenewalOutcome:
    renewed: bool
    notified: bool
    reloaded: bool
    output: str = ""


def renewal_failed(succeeded: bool, output: str) -> bool:
    return not succeeded or RENEWAL_FAILURE_MARKER in output.lower()


class RenewalJob:
    """
    Renews certificates, notifies on failure, then reloads the proxy.

    Notification is best-effort: it never aborts the renewal run.
    """

    def __init__(
        self,
        certificate_tool: CertificateTool,
        engine: ContainerEngine,
        notifier: TelegramNotifier,
        chat_id: Optional[str],
        webroot: Path,
        proxy_service: str = "nginx",
    ):
        self._certificate_tool = certificate_tool
        self._engine = engine
        self._notifier = notifier
        self.chat_id = chat_id
        self.webroot = Path(webroot)
        self.proxy_service = proxy_service

    def run(self, domains: DomainSet) -> RenewalOutcome:
        logger.info(f"[renew] renewing certificates for {', '.join(domains.hostnames)}")

        try:
            succeeded, output = self._certificate_tool.renew(self.webroot)
        except ProvisioningError as e:
            succeeded, output = False, str(e)

        failed = renewal_failed(succeeded, output)
        notified = False
        if failed:
            logger.error("[renew] ❌ certificate renewal failed")
            notified = self._notifier.notify(self.chat_id, renewal_message(domains, output))
        else:
            logger.info("[renew] ✅ renewal check completed")

        reloaded = self._reload_proxy()
        return RenewalOutcome(
            renewed=not failed,
            notified=notified,
            reloaded=reloaded,
            output=output,
        )

    def _reload_proxy(self) -> bool:
        try:
            result = self._engine.reload(self.proxy_service)
        except ProvisioningError as e:
            logger.error(f"[renew] ❌ proxy reload failed: {e}")
            return False
        if not result.ok:
            logger.error(f"[renew] ❌ proxy reload failed: {result.output}")
        return result.ok

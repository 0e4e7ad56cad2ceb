# provisioning_engine/renewal/scheduler.py
"""Renewal scheduler - writes the renewal script and registers it daily."""

import logging
import shlex
from pathlib import Path
from typing import Any, Dict

from provisioning_engine.core.errors import ProvisioningError
from provisioning_engine.core.models import DomainSet
from provisioning_engine.domain.templates import RENEWAL_SCRIPT, render
from provisioning_engine.executor.files import write_text_atomic
from provisioning_engine.runtime.scheduler import CronScheduler

logger = logging.getLogger(__name__)


SCRIPT_MODE = 0o755


class RenewalScheduler:
    """
    Installs the certificate renewal job.

    Re-running install rewrites the script and leaves exactly one crontab
    entry for the script path.
    """

    def __init__(
        self,
        cron: CronScheduler,
        script_values: Dict[str, Any],
        hour: int = 3,
        log_path: Path = Path("/var/log/ssl_renew.log"),
    ):
        self._cron = cron
        self.script_values = dict(script_values)
        self.hour = hour
        self.log_path = Path(log_path)

    def command_for(self, script_path: Path) -> str:
        return f"{shlex.quote(str(script_path))} >> {shlex.quote(str(self.log_path))} 2>&1"

    def write_script(self, domains: DomainSet, script_path: Path) -> Path:
        text = render(RENEWAL_SCRIPT, domains, self.script_values)
        write_text_atomic(script_path, text, mode=SCRIPT_MODE)
        logger.info(f"[renewal] wrote {script_path}")
        return Path(script_path)

    def install(self, domains: DomainSet, script_path: Path) -> bool:
        """
        Write the renewal script and register it at a fixed daily hour.

        Returns:
            True if the script and schedule are in place, False otherwise
        """
        script_path = Path(script_path).resolve()
        try:
            self.write_script(domains, script_path)
            changed = self._cron.install_daily(self.hour, self.command_for(script_path))
        except (OSError, ProvisioningError) as e:
            logger.error(f"[renewal] ❌ could not install renewal job: {e}")
            return False

        if changed:
            logger.info(f"[renewal] ✅ scheduled daily at {self.hour:02d}:00")
        return True

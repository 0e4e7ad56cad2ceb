# provisioning_engine/runtime/scheduler.py
"""Periodic-task scheduler backed by the user's crontab."""

import logging
from typing import List

from provisioning_engine.core.errors import ExternalToolFailure
from provisioning_engine.executor.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


def cron_command(line: str) -> str:
    """Command part of a crontab line (after the five schedule fields)."""
    parts = line.split(None, 5)
    return parts[5] if len(parts) == 6 else ""


class CronScheduler:
    """Reads and rewrites the crontab through the ProcessRunner."""

    def __init__(self, runner: ProcessRunner, timeout: float = 30.0):
        self._runner = runner
        self.timeout = timeout

    def entries(self) -> List[str]:
        """Crontab lines as written, blank lines and comments included."""
        result = self._runner.run("crontab", ["-l"], timeout=self.timeout)
        if not result.ok:
            # "no crontab for <user>" is the normal empty state
            if "no crontab" in result.stderr.lower():
                return []
            raise ExternalToolFailure("crontab", result.exit_code, result.output)
        return result.stdout.splitlines()

    def install_daily(self, hour: int, command: str) -> bool:
        """
        Register `command` to run daily at `hour`:00.

        Returns:
            True if the crontab changed, False if the entry already existed
        """
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be 0-23, got {hour}")

        line = f"0 {hour} * * * {command}"
        current = self.entries()

        if any(entry.strip() == line for entry in current):
            logger.info("[cron] entry already installed, skipping")
            return False

        # Same command on another schedule is replaced, never duplicated
        kept = [entry for entry in current if cron_command(entry) != command]
        kept.append(line)

        result = self._runner.run(
            "crontab", ["-"], timeout=self.timeout, input_text="\n".join(kept) + "\n"
        )
        if not result.ok:
            raise ExternalToolFailure("crontab", result.exit_code, result.output)

        logger.info(f"[cron] ✅ installed: {line}")
        return True

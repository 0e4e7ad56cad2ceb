# provisioning_engine/executor/retry.py
"""Bounded readiness waits with exponential backoff."""

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from provisioning_engine.config import RunnerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backoff:
    """
    Exponential backoff schedule.

    Features:
    - Bounded number of attempts
    - Delay grows by `factor` after every failed attempt
    - Delay capped at `max_delay`
    """

    attempts: int = 6
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 15.0

    @classmethod
    def from_config(cls, config: RunnerConfig) -> "Backoff":
        return cls(
            attempts=config.readiness_attempts,
            initial_delay=config.readiness_initial_delay,
            factor=config.readiness_backoff_factor,
            max_delay=config.readiness_max_delay,
        )

    def delays(self) -> Iterator[float]:
        """Delays between attempts (one fewer than attempts)."""
        delay = self.initial_delay
        for _ in range(max(self.attempts - 1, 0)):
            yield min(delay, self.max_delay)
            delay *= self.factor


def wait_until(
    probe: Callable[[], bool],
    backoff: Backoff,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition",
) -> bool:
    """
    Poll `probe` until it returns True or the attempts run out.

    Exceptions raised by the probe count as "not ready yet".

    Returns:
        True if the probe succeeded, False otherwise
    """
    delays = backoff.delays()
    for attempt in range(1, backoff.attempts + 1):
        try:
            if probe():
                logger.info(f"[retry] ✅ {description} ready (attempt {attempt})")
                return True
        except Exception as e:
            logger.debug(f"[retry] {description} probe error: {e}")

        delay = next(delays, None)
        if delay is None:
            break

        logger.info(
            f"[retry] {description} not ready "
            f"(attempt {attempt}/{backoff.attempts}), retrying in {delay:.1f}s"
        )
        sleep(delay)

    logger.warning(f"[retry] ❌ {description} not ready after {backoff.attempts} attempts")
    return False


def tcp_port_open(host: str, port: int, timeout: float = 2.0) -> bool:
    """Return True if a TCP connection to host:port succeeds."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        return sock.connect_ex((host, port)) == 0
    except OSError:
        return False
    finally:
        sock.close()

# provisioning_engine/executor/process_runner.py
"""Process runner - the single boundary to the operating system."""

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from provisioning_engine.core.errors import ExternalToolFailure, TimedOut
from provisioning_engine.core.models import CommandResult

logger = logging.getLogger(__name__)

REDACTED = "********"


@dataclass
class DetachedProcess:
    """Handle to a long-lived child process."""

    pid: int
    command: str
    _popen: subprocess.Popen

    def poll(self) -> Optional[int]:
        return self._popen.poll()

    def is_running(self) -> bool:
        return self._popen.poll() is None

    def wait(self, timeout: Optional[float] = None) -> int:
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            raise TimedOut(f"wait for {self.command}", timeout)

    def terminate(self, grace_seconds: float = 10.0) -> int:
        if self._popen.poll() is not None:
            return self._popen.returncode
        self._popen.terminate()
        try:
            return self._popen.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            self._popen.kill()
            return self._popen.wait()


class ProcessRunner:
    """
    Executes external commands with captured output.

    Every container engine, certificate tool and database client call goes
    through here so timeouts and logging are uniform.
    """

    def __init__(
        self,
        default_timeout: float = 120.0,
        secrets: Optional[Iterable[str]] = None,
        cwd: Optional[str] = None,
    ):
        self.default_timeout = default_timeout
        self.cwd = cwd
        self._secrets = [s for s in (secrets or []) if s]

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Executable name or path
            args: Arguments
            timeout: Seconds before the child is killed
            env: Extra environment variables
            input_text: Data written to stdin

        Returns:
            CommandResult (also for non-zero exit codes)

        Raises:
            TimedOut: If the timeout elapsed
            ExternalToolFailure: If the executable could not be started
        """
        argv = [command, *args]
        timeout = self.default_timeout if timeout is None else timeout
        display = self._display(argv)

        logger.debug(f"[runner] $ {display}")
        started = time.monotonic()

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=self._merge_env(env),
                cwd=self.cwd,
                input=input_text,
                # Own session: a terminal Ctrl-C never reaches the child
                start_new_session=True,
            )
        except subprocess.TimeoutExpired:
            # subprocess.run kills the child before re-raising
            logger.error(f"[runner] ❌ timed out after {timeout}s: {display}")
            raise TimedOut(display, timeout)
        except FileNotFoundError:
            logger.error(f"[runner] ❌ command not found: {command}")
            raise ExternalToolFailure(command, 127, f"{command}: command not found")
        except PermissionError as e:
            raise ExternalToolFailure(command, 126, str(e))

        duration = time.monotonic() - started
        result = CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=duration,
        )

        if result.ok:
            logger.debug(f"[runner] exit=0 ({duration:.1f}s): {display}")
        else:
            logger.warning(
                f"[runner] exit={result.exit_code} ({duration:.1f}s): {display}"
            )
            logger.debug(f"[runner] output: {self.redact(result.output)}")

        return result

    def run_checked(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        tool: Optional[str] = None,
    ) -> CommandResult:
        """Run and raise ExternalToolFailure on non-zero exit."""
        result = self.run(command, args, timeout=timeout, env=env)
        if not result.ok:
            raise ExternalToolFailure(tool or command, result.exit_code, self.redact(result.output))
        return result

    def run_detached(self, command: str, args: Sequence[str] = ()) -> DetachedProcess:
        """Start a long-lived process and return a handle to it."""
        argv = [command, *args]
        display = self._display(argv)
        logger.debug(f"[runner] $ {display} &")
        try:
            popen = subprocess.Popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=self.cwd,
                start_new_session=True,
            )
        except FileNotFoundError:
            raise ExternalToolFailure(command, 127, f"{command}: command not found")
        return DetachedProcess(pid=popen.pid, command=display, _popen=popen)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def _display(self, argv: List[str]) -> str:
        return self.redact(shlex.join(argv))

    @staticmethod
    def _merge_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        return {**os.environ, **env}

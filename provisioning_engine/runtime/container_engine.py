# provisioning_engine/runtime/container_engine.py
"""Container engine adapter - compose lifecycle plus Docker status lookups."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import docker
from docker.errors import DockerException, NotFound

from provisioning_engine.core.models import CommandResult, ContainerState
from provisioning_engine.executor.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


DOCKER_STATES = {
    "running": ContainerState.RUNNING,
    "exited": ContainerState.EXITED,
    "dead": ContainerState.EXITED,
}


class ContainerEngine:
    """
    Drives the stack through `docker compose`.

    Lifecycle commands go through the ProcessRunner; status is read from
    the Docker Engine API so missing containers map cleanly to Unknown.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        compose_file: Path,
        compose_command: Sequence[str] = ("docker", "compose"),
        timeout: float = 120.0,
        docker_client=None,
    ):
        self._runner = runner
        self.compose_file = Path(compose_file)
        self.compose_command = list(compose_command)
        self.timeout = timeout
        self._docker_client = docker_client

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def available(self) -> bool:
        """Check the compose plugin answers."""
        try:
            result = self._runner.run(
                self.compose_command[0],
                [*self.compose_command[1:], "version"],
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Container engine not available: {e}")
            return False
        return result.ok

    def up(self, service: str) -> CommandResult:
        """Create/start a service (and its dependencies) detached."""
        logger.info(f"[engine] up -d {service}")
        return self._compose(["up", "-d", service])

    def reload(self, service: str) -> CommandResult:
        """Re-read proxy configuration without dropping connections."""
        logger.info(f"[engine] reload {service}")
        return self._compose(["exec", "-T", service, "nginx", "-s", "reload"])

    def restart(self, service: str) -> CommandResult:
        logger.info(f"[engine] restart {service}")
        return self._compose(["restart", service])

    def exec(
        self,
        service: str,
        command: Sequence[str],
        env: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, str]:
        """
        Run a command inside a service container.

        Environment values are forwarded by name only (`-e KEY`), so they
        never appear on the command line.
        """
        args = ["exec", "-T"]
        for key in (env or {}):
            args += ["-e", key]
        args += [service, *command]
        result = self._compose(args, env=env)
        return result.exit_code, result.stdout

    # -------------------------
    # STATUS
    # -------------------------

    def status(self, names: Iterable[str]) -> Dict[str, ContainerState]:
        """
        Look up container states by declared service name.

        Never raises: an unreachable daemon or missing container is Unknown.
        """
        names = list(names)
        statuses = {name: ContainerState.UNKNOWN for name in names}

        try:
            client = self._client()
        except DockerException as e:
            logger.warning(f"[engine] ❌ Docker daemon unreachable: {e}")
            return statuses

        for name in names:
            try:
                container = client.containers.get(name)
                statuses[name] = DOCKER_STATES.get(container.status, ContainerState.UNKNOWN)
            except NotFound:
                logger.warning(f"[engine] container {name} not found")
            except DockerException as e:
                logger.warning(f"[engine] status lookup failed for {name}: {e}")

        return statuses

    # -------------------------
    # INTERNALS
    # -------------------------

    def _compose(self, args: List[str], env: Optional[Dict[str, str]] = None) -> CommandResult:
        return self._runner.run(
            self.compose_command[0],
            [*self.compose_command[1:], "-f", str(self.compose_file), *args],
            timeout=self.timeout,
            env=env,
        )

    def _client(self):
        if self._docker_client is None:
            self._docker_client = docker.from_env()
        return self._docker_client

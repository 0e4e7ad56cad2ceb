# provisioning_engine/runtime/database.py
"""Database client used by the connectivity probe."""

import logging
from dataclasses import dataclass
from typing import List

from provisioning_engine.core.errors import ExternalToolFailure
from provisioning_engine.runtime.container_engine import ContainerEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseCredentials:
    user: str
    password: str
    database: str = ""

    def __repr__(self) -> str:
        return f"DatabaseCredentials(user={self.user!r}, password='***', database={self.database!r})"


class DatabaseClient:
    """Runs `mysql --batch` inside the database container."""

    def __init__(self, engine: ContainerEngine):
        self._engine = engine

    def query(
        self,
        service: str,
        credentials: DatabaseCredentials,
        statement: str,
    ) -> List[List[str]]:
        """
        Execute one statement and return tab-separated rows.

        Raises:
            ExternalToolFailure: If the client exits non-zero
        """
        command = [
            "mysql",
            "--batch",
            "--skip-column-names",
            f"--user={credentials.user}",
            "--execute", statement,
        ]
        if credentials.database:
            command.append(credentials.database)

        # MYSQL_PWD keeps the password out of the process list
        exit_code, stdout = self._engine.exec(
            service, command, env={"MYSQL_PWD": credentials.password}
        )
        if exit_code != 0:
            raise ExternalToolFailure("mysql", exit_code)

        return [line.split("\t") for line in stdout.splitlines() if line]

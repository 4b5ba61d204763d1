"""Local and remote database configuration."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from ..collaborators import ExternalDatabaseRequest, InternalDatabaseRequest
from ..errors import ConsoleError
from .command import CommandRunner, run_as
from .storage import DiskVolume
from .systemd import ServiceController

LOGGER = logging.getLogger(__name__)

DATABASE_ENVIRONMENT = "production"
SUPERUSER = "postgres"


class DatabaseConfigurationError(ConsoleError):
    """Raised when the database cannot be configured."""


def write_database_yml(path: Path, settings: Mapping[str, object]) -> None:
    """Merge *settings* into the production section of ``database.yml``."""
    document: dict[str, object] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise DatabaseConfigurationError(f"{path} does not contain a mapping")
        document = loaded
    section = document.get(DATABASE_ENVIRONMENT)
    merged = dict(section) if isinstance(section, dict) else {}
    merged.update({"adapter": "postgresql", "encoding": "utf8", "pool": 5, "wait_timeout": 5})
    merged.update(settings)
    document[DATABASE_ENVIRONMENT] = merged
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(document, default_flow_style=False), encoding="utf-8")
    path.chmod(0o600)


def write_region(vmdb_root: Path, region: int | None) -> None:
    """Record the region number in ``<vmdb_root>/REGION``."""
    if region is None:
        return
    vmdb_root.mkdir(parents=True, exist_ok=True)
    (vmdb_root / "REGION").write_text(f"{region}\n", encoding="utf-8")


def can_connect(
    runner: CommandRunner,
    psql_bin: str,
    *,
    host: str,
    port: int,
    database: str,
    username: str,
    password: str,
) -> bool:
    """Return ``True`` when ``psql`` can run a trivial query with the credentials."""
    result = runner.run(
        [
            psql_bin,
            "--host",
            host,
            "--port",
            str(port),
            "--username",
            username,
            "--dbname",
            database,
            "--no-password",
            "--command",
            "SELECT 1",
        ],
        check=False,
        env={"PGPASSWORD": password},
    )
    if result.returncode != 0:
        LOGGER.debug("database connection check failed: %s", (result.stderr or "").strip())
    return result.returncode == 0


def _quote_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass(slots=True)
class ExternalDatabaseConfiguration:
    """Point the application at a database on another host."""

    request: ExternalDatabaseRequest
    runner: CommandRunner
    services: ServiceController
    database_yml: Path
    vmdb_root: Path
    application_service: str = "evmserverd"
    psql_bin: str = "psql"

    def activate(self) -> bool:
        """Verify the credentials and write the connection settings."""
        request = self.request
        if not can_connect(
            self.runner,
            self.psql_bin,
            host=request.host,
            port=request.port,
            database=request.database,
            username=request.username,
            password=request.password,
        ):
            return False
        write_database_yml(
            self.database_yml,
            {
                "host": request.host,
                "port": request.port,
                "database": request.database,
                "username": request.username,
                "password": request.password,
            },
        )
        write_region(self.vmdb_root, request.region)
        return True

    def post_activation(self) -> None:
        """Enable and start the application server."""
        self.services.enable(self.application_service)
        self.services.start(self.application_service)


@dataclass(slots=True)
class InternalDatabaseConfiguration:
    """Initialise and configure PostgreSQL on this machine."""

    request: InternalDatabaseRequest
    runner: CommandRunner
    services: ServiceController
    volume: DiskVolume
    database_yml: Path
    vmdb_root: Path
    data_dir: Path = Path("/var/lib/pgsql/data")
    mount_point: Path = Path("/var/lib/pgsql")
    database_service: str = "postgresql"
    application_service: str = "evmserverd"
    psql_bin: str = "psql"
    initdb_bin: str = "initdb"
    runuser_bin: str = "runuser"
    os_user: str = SUPERUSER

    def check_disk_is_mount_point(self) -> None:
        """Require either a disk to prepare or an already mounted data volume."""
        if self.request.disk is not None or os.path.ismount(self.mount_point):
            return
        raise DatabaseConfigurationError(
            f"Internal databases require a volume mounted at {self.mount_point}. "
            "Please add an unpartitioned disk and try again."
        )

    def activate(self) -> bool:
        """Prepare storage, initialise the cluster and create the application role."""
        request = self.request
        if request.disk is not None:
            self.volume.prepare(request.disk, self.mount_point)
            self._own_mount_point()
        if not (self.data_dir / "PG_VERSION").exists():
            self._run_as_postgres([self.initdb_bin, "--pgdata", str(self.data_dir), "--encoding", "UTF8"])
        self.services.enable(self.database_service)
        self.services.start(self.database_service)
        self._create_role()
        self._create_database()
        write_database_yml(
            self.database_yml,
            {
                "host": "localhost",
                "database": request.database,
                "username": request.username,
                "password": request.password,
            },
        )
        write_region(self.vmdb_root, request.region)
        return can_connect(
            self.runner,
            self.psql_bin,
            host="localhost",
            port=5432,
            database=request.database,
            username=request.username,
            password=request.password,
        )

    def post_activation(self) -> None:
        """Start the application server, or keep it off on a database-only node."""
        if self.request.run_as_evm_server:
            self.services.enable(self.application_service)
            self.services.start(self.application_service)
        else:
            self.services.disable(self.application_service)

    # ------------------------------------------------------------------
    def _run_as_postgres(
        self, args: list[str], *, input_text: str | None = None
    ) -> subprocess.CompletedProcess[str]:
        return self.runner.run(run_as(self.os_user, args, self.runuser_bin), input_text=input_text)

    def _own_mount_point(self) -> None:
        try:
            shutil.chown(self.mount_point, user=self.os_user, group=self.os_user)
        except (LookupError, PermissionError) as exc:
            raise DatabaseConfigurationError(
                f"Failed to adjust ownership for {self.mount_point}: {exc}"
            ) from exc

    def _superuser_sql(self, statement: str) -> None:
        self._run_as_postgres(
            [self.psql_bin, "--username", SUPERUSER, "--dbname", SUPERUSER, "--set", "ON_ERROR_STOP=1"],
            input_text=statement,
        )

    def _create_role(self) -> None:
        username = self.request.username
        password = _quote_literal(self.request.password)
        role = _quote_identifier(username)
        self._superuser_sql(
            "DO $$ BEGIN "
            f"IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = {_quote_literal(username)}) THEN "
            f"CREATE ROLE {role} LOGIN SUPERUSER PASSWORD {password}; "
            f"ELSE ALTER ROLE {role} WITH LOGIN PASSWORD {password}; "
            "END IF; END $$;\n"
        )

    def _create_database(self) -> None:
        database = self.request.database
        result = self._run_as_postgres(
            [
                self.psql_bin,
                "--username",
                SUPERUSER,
                "--tuples-only",
                "--no-align",
                "--command",
                f"SELECT 1 FROM pg_database WHERE datname = {_quote_literal(database)}",
            ]
        )
        if (result.stdout or "").strip() == "1":
            return
        owner = _quote_identifier(self.request.username)
        self._superuser_sql(
            f"CREATE DATABASE {_quote_identifier(database)} OWNER {owner} ENCODING 'UTF8';\n"
        )


__all__ = [
    "DatabaseConfigurationError",
    "ExternalDatabaseConfiguration",
    "InternalDatabaseConfiguration",
    "can_connect",
    "write_database_yml",
    "write_region",
]

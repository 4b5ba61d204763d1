"""repmgr based database replication."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..disks import Disk
from ..errors import ConsoleError
from .command import CommandRunner
from .storage import DiskVolume
from .systemd import ServiceController

LOGGER = logging.getLogger(__name__)

DEFAULT_DATABASE = "vmdb_production"
DEFAULT_USER = "root"
CLUSTER_NAME = "miq_region_cluster"


class ReplicationConfigurationError(ConsoleError):
    """Raised when replication settings are incomplete."""


@dataclass(slots=True)
class _ReplicationSettings:
    runner: CommandRunner
    services: ServiceController
    config_path: Path = Path("/etc/repmgr/10/repmgr.conf")
    repmgr_bin: str = "repmgr"
    local_host: str = "localhost"
    database_name: str | None = DEFAULT_DATABASE
    database_user: str | None = DEFAULT_USER
    database_password: str | None = None
    node_number: int | None = None

    def write_config(self, host: str, data_dir: Path) -> None:
        if self.node_number is None:
            raise ReplicationConfigurationError("A cluster node number is required for replication")
        if not self.database_password:
            raise ReplicationConfigurationError("A database password is required for replication")
        conninfo = (
            f"host={host} user={self.database_user} dbname={self.database_name} "
            f"password={self.database_password}"
        )
        lines = [
            f"node_id={self.node_number}",
            f"node_name='{host}'",
            f"conninfo='{conninfo}'",
            "use_replication_slots=1",
            f"data_directory='{data_dir}'",
            f"# cluster={CLUSTER_NAME}",
        ]
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        self.config_path.chmod(0o600)
        LOGGER.debug("wrote %s for node %s", self.config_path, self.node_number)

    def repmgr(self, *args: str) -> None:
        self.runner.run(
            [self.repmgr_bin, "-f", str(self.config_path), *args],
            env={"PGPASSWORD": self.database_password or ""},
        )


@dataclass(slots=True)
class DatabaseReplicationPrimary(_ReplicationSettings):
    """Register this node as the replication primary."""

    data_dir: Path = Path("/var/lib/pgsql/data")

    def activate(self) -> bool:
        self.write_config(self.local_host, self.data_dir)
        self.repmgr("primary", "register", "--force")
        return True


@dataclass(slots=True)
class DatabaseReplicationStandby(_ReplicationSettings):
    """Clone the primary onto this node and register it as a standby.

    When a disk is set it is prepared and mounted as the data volume first.
    With ``run_repmgrd_configuration`` the repmgr daemon is enabled so the
    node can be promoted automatically.
    """

    volume: DiskVolume | None = None
    data_dir: Path = Path("/var/lib/pgsql/data")
    mount_point: Path = Path("/var/lib/pgsql")
    database_service: str = "postgresql"
    repmgrd_service: str = "repmgr10"
    disk: Disk | None = None
    primary_host: str | None = None
    standby_host: str | None = None
    run_repmgrd_configuration: bool = False

    def activate(self) -> bool:
        if not self.primary_host:
            raise ReplicationConfigurationError("A primary host is required to configure a standby")
        if self.disk is not None:
            if self.volume is None:
                raise ReplicationConfigurationError("No volume manager available for the standby disk")
            self.volume.prepare(self.disk, self.mount_point)
        self.write_config(self.standby_host or self.local_host, self.data_dir)
        self.services.stop(self.database_service)
        self.repmgr(
            "standby",
            "clone",
            "--force",
            "--host",
            self.primary_host,
            "--username",
            self.database_user or DEFAULT_USER,
            "--dbname",
            self.database_name or DEFAULT_DATABASE,
        )
        self.services.start(self.database_service)
        self.repmgr("standby", "register", "--force")
        if self.run_repmgrd_configuration:
            self.services.enable(self.repmgrd_service)
            self.services.start(self.repmgrd_service)
        return True


__all__ = [
    "DatabaseReplicationPrimary",
    "DatabaseReplicationStandby",
    "ReplicationConfigurationError",
]

"""Default collaborators backed by the host operating system."""
from __future__ import annotations

from .certificates import CertificateAuthority
from .command import CommandRunner
from .database import (
    DatabaseConfigurationError,
    ExternalDatabaseConfiguration,
    InternalDatabaseConfiguration,
)
from .disks import LsblkDiskEnumerator
from .external_auth import ExternalAuthError, ExternalAuthOptions, ExternalHttpdAuthentication
from .hosts import HostsFile
from .keys import KeyConfiguration
from .replication import (
    DatabaseReplicationPrimary,
    DatabaseReplicationStandby,
    ReplicationConfigurationError,
)
from .storage import (
    DiskVolume,
    LogfileConfiguration,
    StorageConfigurationError,
    TempStorageConfiguration,
)
from .systemd import ServiceController

__all__ = [
    "CertificateAuthority",
    "CommandRunner",
    "DatabaseConfigurationError",
    "DatabaseReplicationPrimary",
    "DatabaseReplicationStandby",
    "DiskVolume",
    "ExternalAuthError",
    "ExternalAuthOptions",
    "ExternalDatabaseConfiguration",
    "ExternalHttpdAuthentication",
    "HostsFile",
    "InternalDatabaseConfiguration",
    "KeyConfiguration",
    "LogfileConfiguration",
    "LsblkDiskEnumerator",
    "ReplicationConfigurationError",
    "ServiceController",
    "StorageConfigurationError",
    "TempStorageConfiguration",
]

"""Contracts for the subsystems the dispatcher drives.

The dispatcher never touches the host directly; it talks to the objects
collected in :class:`Collaborators`. The default implementations live in
:mod:`appliance_console.providers` and are wired up by the CLI. Tests inject
fakes that satisfy the same protocols.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

from .disks import Disk, DiskEnumerator


@dataclass(frozen=True)
class KeyRequest:
    """Parameters for creating or fetching the encryption key."""

    action: str
    force: bool
    host: str | None
    login: str
    password: str | None


@dataclass(frozen=True)
class InternalDatabaseRequest:
    """Parameters for configuring a database on this machine."""

    database: str
    region: int | None
    username: str
    password: str
    disk: Disk | None
    run_as_evm_server: bool


@dataclass(frozen=True)
class ExternalDatabaseRequest:
    """Parameters for pointing the application at a remote database."""

    host: str
    port: int
    database: str
    region: int | None
    username: str
    password: str


@dataclass(frozen=True)
class IpaJoinRequest:
    """Parameters for joining the machine to an IPA domain."""

    host: str
    ipaserver: str
    principal: str
    password: str | None
    domain: str | None = None
    realm: str | None = None


@dataclass(frozen=True)
class CertificateRequest:
    """Parameters for requesting service certificates."""

    hostname: str
    realm: str | None
    ca_name: str
    http: bool
    verbose: bool


class HostRegistry(Protocol):
    """Machine host name record."""

    @property
    def hostname(self) -> str:
        """Return the current machine host name."""

    def set_hostname(self, name: str) -> None:
        """Stage *name* as the machine host name."""

    def set_loopback_hostname(self, name: str) -> None:
        """Alias *name* to the loopback addresses."""

    def save(self) -> None:
        """Persist staged changes."""


class ServiceController(Protocol):
    """Start, stop and query OS services."""

    def start(self, name: str) -> object:
        """Start service *name*."""

    def stop(self, name: str) -> object:
        """Stop service *name*."""

    def restart(self, name: str) -> object:
        """Restart service *name*."""

    def enable(self, name: str) -> object:
        """Enable service *name* at boot."""

    def disable(self, name: str) -> object:
        """Disable service *name* at boot."""

    def running(self, name: str) -> bool:
        """Return ``True`` when service *name* is active."""


class KeyStore(Protocol):
    """Encryption key creation and retrieval."""

    @property
    def action(self) -> str:
        """Return ``create`` or ``fetch``."""

    def key_exist(self) -> bool:
        """Return ``True`` when a key is already installed."""

    def activate(self) -> bool:
        """Create or fetch the key; ``False`` when no key could be produced."""


class DatabaseConfigurator(Protocol):
    """Database configuration (local or remote)."""

    def activate(self) -> bool:
        """Configure the database; ``False`` on a reported failure."""

    def post_activation(self) -> None:
        """Enable and start the services that depend on the database."""


class InternalDatabaseConfigurator(DatabaseConfigurator, Protocol):
    """Local database configuration; requires a mounted data volume."""

    def check_disk_is_mount_point(self) -> None:
        """Raise when no disk was given and the data volume is not mounted."""


class ReplicationConfigurator(Protocol):
    """Replication setup for either role."""

    database_name: str | None
    database_user: str | None
    database_password: str | None
    node_number: int | None

    def activate(self) -> object:
        """Configure and register this node."""


class StandbyReplicationConfigurator(ReplicationConfigurator, Protocol):
    """Replication setup for a standby node."""

    disk: Disk | None
    primary_host: str | None
    standby_host: str | None
    run_repmgrd_configuration: bool


class StorageConfigurator(Protocol):
    """Mounts a disk for temporary or log storage."""

    def activate(self) -> object:
        """Partition, format and mount the disk."""


class ExternalAuthClient(Protocol):
    """IPA client join and removal."""

    def ipa_client_configured(self) -> bool:
        """Return ``True`` when the machine is already joined."""

    def activate(self) -> bool:
        """Join the IPA domain; ``False`` when the join failed."""

    def post_activation(self) -> None:
        """Restart the services that consume the IPA configuration."""

    def deactivate(self) -> None:
        """Leave the IPA domain."""


class CertificateAuthority(Protocol):
    """Certificate issuance."""

    def activate(self) -> object:
        """Request the configured certificates."""

    def status_string(self) -> str:
        """Return a human readable status per certificate."""

    def complete(self) -> bool:
        """Return ``True`` when every requested certificate was issued."""


class ExternalAuthOptionStore(Protocol):
    """External authentication settings."""

    def parse(self, raw: str) -> Mapping[str, object] | None:
        """Parse ``key=value,...`` into a mapping of settings."""

    def update_configuration(self, values: Mapping[str, object]) -> None:
        """Persist *values* into the settings file."""


@dataclass
class Collaborators:
    """Every subsystem the dispatcher may invoke during one run."""

    hosts: HostRegistry
    services: ServiceController
    disks: DiskEnumerator
    key_store: Callable[[KeyRequest], KeyStore]
    internal_database: Callable[[InternalDatabaseRequest], InternalDatabaseConfigurator]
    external_database: Callable[[ExternalDatabaseRequest], DatabaseConfigurator]
    replication_primary: Callable[[], ReplicationConfigurator]
    replication_standby: Callable[[], StandbyReplicationConfigurator]
    temp_storage: Callable[[Disk], StorageConfigurator]
    log_storage: Callable[[Disk], StorageConfigurator]
    external_auth: Callable[[IpaJoinRequest | None], ExternalAuthClient]
    certificate_authority: Callable[[CertificateRequest], CertificateAuthority]
    extauth_options: Callable[[], ExternalAuthOptionStore]
    network_service: str = "network"
    application_service: str = "evmserverd"


__all__ = [
    "CertificateAuthority",
    "CertificateRequest",
    "Collaborators",
    "DatabaseConfigurator",
    "ExternalAuthClient",
    "ExternalAuthOptionStore",
    "ExternalDatabaseRequest",
    "HostRegistry",
    "InternalDatabaseConfigurator",
    "InternalDatabaseRequest",
    "IpaJoinRequest",
    "KeyRequest",
    "KeyStore",
    "ReplicationConfigurator",
    "ServiceController",
    "StandbyReplicationConfigurator",
    "StorageConfigurator",
]

"""Derive what the user asked for from the raw option set.

Every predicate here is a pure function of the :class:`OptionSet`, with one
exception: deciding whether a key must be created asks the key store whether
a key already exists. That query is read-only and the key store object is
built once per resolver.
"""
from __future__ import annotations

from collections.abc import Callable

from .collaborators import HostRegistry, KeyRequest, KeyStore
from .options import OptionSet

LOCAL_HOSTNAMES = frozenset({"localhost", "127.0.0.1"})
REPLICATION_PRIMARY = "primary"
REPLICATION_STANDBY = "standby"


def is_local(name: str | None) -> bool:
    """Return ``True`` for loopback names, blank strings and ``None``."""
    if name is None or not name.strip():
        return True
    return name in LOCAL_HOSTNAMES


class IntentResolver:
    """Answer intent queries for a single invocation."""

    def __init__(
        self,
        options: OptionSet,
        key_store_factory: Callable[[KeyRequest], KeyStore],
        hosts: HostRegistry | None = None,
    ) -> None:
        self.options = options
        self._key_store_factory = key_store_factory
        self._hosts = hosts
        self._key_configuration: KeyStore | None = None

    # -- hosts ---------------------------------------------------------
    @property
    def resolved_hostname(self) -> str | None:
        """Database host name; ``localhost`` when ``--internal`` is set."""
        return "localhost" if self.options.internal else self.options.hostname

    @property
    def machine_host(self) -> str:
        """Host name for this machine: ``--host`` or the current system name."""
        if self.options.host:
            return self.options.host
        if self._hosts is None:
            return "localhost"
        return self._hosts.hostname

    # -- database ------------------------------------------------------
    @property
    def database_requested(self) -> bool:
        return self.options.standalone or self.resolved_hostname is not None

    @property
    def local_database(self) -> bool:
        return self.database_requested and (
            is_local(self.resolved_hostname) or self.options.standalone
        )

    @property
    def region_required(self) -> bool:
        return not self.options.standalone and self.local_database

    @property
    def region_missing(self) -> bool:
        """``True`` when a region is required but was not supplied."""
        return self.region_required and self.options.region is None

    @property
    def password_present(self) -> bool:
        password = self.options.password
        return password is not None and bool(password.strip())

    # -- key -----------------------------------------------------------
    @property
    def key_request(self) -> KeyRequest:
        fetching = self.options.fetch_key is not None
        return KeyRequest(
            action="fetch" if fetching else "create",
            force=True if fetching else self.options.force_key,
            host=self.options.fetch_key,
            login=self.options.sshlogin,
            password=self.options.sshpassword,
        )

    @property
    def key_configuration(self) -> KeyStore:
        """Return the key store for this invocation, building it on first use."""
        if self._key_configuration is None:
            self._key_configuration = self._key_store_factory(self.key_request)
        return self._key_configuration

    @property
    def key_requested(self) -> bool:
        if self.options.key or self.options.fetch_key is not None:
            return True
        return self.local_database and not self.key_configuration.key_exist()

    # -- replication ---------------------------------------------------
    @property
    def replication_role_valid(self) -> bool:
        role = self.options.replication
        if role == REPLICATION_PRIMARY:
            return True
        return role == REPLICATION_STANDBY and self.options.primary_host is not None

    @property
    def replication_requested(self) -> bool:
        return (
            self.options.cluster_node_number is not None
            and self.options.password is not None
            and self.replication_role_valid
        )

    # -- everything else -----------------------------------------------
    @property
    def set_host_requested(self) -> bool:
        return self.options.host is not None

    @property
    def tmp_disk_requested(self) -> bool:
        return self.options.tmpdisk is not None

    @property
    def log_disk_requested(self) -> bool:
        return self.options.logdisk is not None

    @property
    def uninstall_ipa_requested(self) -> bool:
        return self.options.uninstall_ipa

    @property
    def install_ipa_requested(self) -> bool:
        return self.options.ipaserver is not None

    @property
    def certs_requested(self) -> bool:
        return self.options.http_cert

    @property
    def extauth_opts_requested(self) -> bool:
        return self.options.extauth_opts is not None

    @property
    def server_state_requested(self) -> bool:
        return self.options.server is not None


__all__ = ["IntentResolver", "LOCAL_HOSTNAMES", "is_local"]

"""The immutable option record consumed by intent resolution."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields

DEFAULT_PORT = 5432
DEFAULT_USERNAME = "root"
DEFAULT_DBNAME = "vmdb_production"
DEFAULT_SSHLOGIN = "root"
DEFAULT_IPAPRINCIPAL = "admin"
DEFAULT_CA = "ipa"


@dataclass(frozen=True)
class OptionSet:
    """Parsed command-line options, one field per flag."""

    host: str | None = None
    region: int | None = None
    internal: bool = False
    hostname: str | None = None
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str | None = None
    dbname: str = DEFAULT_DBNAME
    standalone: bool = False
    key: bool = False
    fetch_key: str | None = None
    force_key: bool = False
    sshlogin: str = DEFAULT_SSHLOGIN
    sshpassword: str | None = None
    replication: str | None = None
    primary_host: str | None = None
    standby_host: str | None = None
    auto_failover: bool = False
    cluster_node_number: int | None = None
    verbose: bool = False
    dbdisk: str | None = None
    logdisk: str | None = None
    tmpdisk: str | None = None
    uninstall_ipa: bool = False
    ipaserver: str | None = None
    ipaprincipal: str = DEFAULT_IPAPRINCIPAL
    ipapassword: str | None = None
    ipadomain: str | None = None
    iparealm: str | None = None
    ca: str = DEFAULT_CA
    http_cert: bool = False
    extauth_opts: str | None = None
    server: str | None = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> OptionSet:
        """Build an option set from *values*, ignoring ``None`` entries and unknown keys."""
        known = {field.name for field in fields(cls)}
        accepted = {key: value for key, value in values.items() if key in known and value is not None}
        return cls(**accepted)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return asdict(self)


__all__ = ["OptionSet"]

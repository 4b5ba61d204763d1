"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import io
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

import pytest
from rich.console import Console

from appliance_console.collaborators import (
    CertificateRequest,
    Collaborators,
    ExternalDatabaseRequest,
    InternalDatabaseRequest,
    IpaJoinRequest,
    KeyRequest,
)
from appliance_console.disks import Disk
from appliance_console.errors import CommandResultError


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


class FakeHosts:
    """In-memory host registry."""

    def __init__(self, appliance: FakeAppliance) -> None:
        self._appliance = appliance
        self.hostname = "appliance.example.com"

    def set_hostname(self, name: str) -> None:
        self._appliance.events.append(f"hosts.set_hostname:{name}")
        self.hostname = name

    def set_loopback_hostname(self, name: str) -> None:
        self._appliance.events.append(f"hosts.set_loopback_hostname:{name}")

    def save(self) -> None:
        self._appliance.events.append("hosts.save")


class FakeServices:
    """Service controller that tracks running services in a set."""

    def __init__(self, appliance: FakeAppliance) -> None:
        self._appliance = appliance
        self.active: set[str] = set()

    def _record(self, verb: str, name: str) -> None:
        self._appliance.events.append(f"services.{verb}:{name}")

    def start(self, name: str) -> None:
        self._record("start", name)
        self.active.add(name)

    def stop(self, name: str) -> None:
        self._record("stop", name)
        self.active.discard(name)

    def restart(self, name: str) -> None:
        self._record("restart", name)
        self.active.add(name)

    def enable(self, name: str) -> None:
        self._record("enable", name)

    def disable(self, name: str) -> None:
        self._record("disable", name)

    def running(self, name: str) -> bool:
        return name in self.active


class FakeDisks:
    def __init__(self) -> None:
        self.disks: list[Disk] = []

    def local(self) -> list[Disk]:
        return list(self.disks)


class FakeKeyStore:
    def __init__(self, appliance: FakeAppliance, request: KeyRequest) -> None:
        self._appliance = appliance
        self.request = request

    @property
    def action(self) -> str:
        return self.request.action

    def key_exist(self) -> bool:
        self._appliance.key_queries += 1
        return self._appliance.key_present

    def activate(self) -> bool:
        self._appliance.events.append(f"key.{self.request.action}")
        if self._appliance.key_activate_ok:
            self._appliance.key_present = True
        return self._appliance.key_activate_ok


class FakeDatabase:
    def __init__(self, appliance: FakeAppliance, kind: str) -> None:
        self._appliance = appliance
        self._kind = kind

    def check_disk_is_mount_point(self) -> None:
        self._appliance.events.append(f"db.{self._kind}.check_disk")
        if self._appliance.mount_error is not None:
            raise self._appliance.mount_error

    def activate(self) -> bool:
        self._appliance.events.append(f"db.{self._kind}.activate")
        if self._appliance.database_error is not None:
            raise self._appliance.database_error
        return self._appliance.database_ok

    def post_activation(self) -> None:
        self._appliance.events.append(f"db.{self._kind}.post_activation")


@dataclass
class FakeReplication:
    appliance: FakeAppliance
    role: str
    database_name: str | None = "vmdb_production"
    database_user: str | None = "root"
    database_password: str | None = None
    node_number: int | None = None
    disk: Disk | None = None
    primary_host: str | None = None
    standby_host: str | None = None
    run_repmgrd_configuration: bool = False

    def activate(self) -> bool:
        self.appliance.events.append(f"replication.{self.role}.activate")
        return True


@dataclass
class FakeStorage:
    appliance: FakeAppliance
    kind: str
    disk: Disk

    def activate(self) -> None:
        self.appliance.events.append(f"storage.{self.kind}:{self.disk.path}")


class FakeExternalAuth:
    def __init__(self, appliance: FakeAppliance, request: IpaJoinRequest | None) -> None:
        self._appliance = appliance
        self.request = request

    def ipa_client_configured(self) -> bool:
        return self._appliance.ipa_configured

    def activate(self) -> bool:
        self._appliance.events.append("ipa.activate")
        return self._appliance.ipa_join_ok

    def post_activation(self) -> None:
        self._appliance.events.append("ipa.post_activation")

    def deactivate(self) -> None:
        self._appliance.events.append("ipa.deactivate")
        self._appliance.ipa_configured = False


class FakeCertificates:
    def __init__(self, appliance: FakeAppliance) -> None:
        self._appliance = appliance

    def activate(self) -> None:
        self._appliance.events.append("certs.activate")

    def status_string(self) -> str:
        return "http: complete" if self._appliance.certs_complete else "http: waiting"

    def complete(self) -> bool:
        return self._appliance.certs_complete


class FakeExtauthOptions:
    def __init__(self, appliance: FakeAppliance) -> None:
        self._appliance = appliance

    def parse(self, raw: str) -> dict[str, object]:
        values: dict[str, object] = {}
        for pair in raw.split(","):
            key, sep, value = pair.partition("=")
            if sep:
                values[key.strip()] = value.strip()
        return values

    def update_configuration(self, values: Mapping[str, object]) -> None:
        self._appliance.events.append("extauth.update")
        self._appliance.extauth_values = dict(values)


@dataclass
class FakeAppliance:
    """Knobs and call log shared by every fake collaborator."""

    events: list[str] = field(default_factory=list)
    requests: dict[str, object] = field(default_factory=dict)
    key_present: bool = True
    key_activate_ok: bool = True
    key_queries: int = 0
    database_ok: bool = True
    database_error: Exception | None = None
    mount_error: Exception | None = None
    ipa_configured: bool = False
    ipa_join_ok: bool = True
    certs_complete: bool = True
    extauth_values: dict[str, object] | None = None
    replication: FakeReplication | None = None

    def __post_init__(self) -> None:
        self.hosts = FakeHosts(self)
        self.services = FakeServices(self)
        self.disks = FakeDisks()

    def collaborators(self) -> Collaborators:
        def key_store(request: KeyRequest) -> FakeKeyStore:
            self.requests["key"] = request
            return FakeKeyStore(self, request)

        def internal_database(request: InternalDatabaseRequest) -> FakeDatabase:
            self.requests["internal_database"] = request
            return FakeDatabase(self, "internal")

        def external_database(request: ExternalDatabaseRequest) -> FakeDatabase:
            self.requests["external_database"] = request
            return FakeDatabase(self, "external")

        def replication_primary() -> FakeReplication:
            self.replication = FakeReplication(self, "primary")
            return self.replication

        def replication_standby() -> FakeReplication:
            self.replication = FakeReplication(self, "standby")
            return self.replication

        def external_auth(request: IpaJoinRequest | None) -> FakeExternalAuth:
            if request is not None:
                self.requests["ipa"] = request
            return FakeExternalAuth(self, request)

        def certificate_authority(request: CertificateRequest) -> FakeCertificates:
            self.requests["certs"] = request
            return FakeCertificates(self)

        return Collaborators(
            hosts=self.hosts,
            services=self.services,
            disks=self.disks,
            key_store=key_store,
            internal_database=internal_database,
            external_database=external_database,
            replication_primary=replication_primary,
            replication_standby=replication_standby,
            temp_storage=lambda disk: FakeStorage(self, "tmp", disk),
            log_storage=lambda disk: FakeStorage(self, "log", disk),
            external_auth=external_auth,
            certificate_authority=certificate_authority,
            extauth_options=lambda: FakeExtauthOptions(self),
        )


@pytest.fixture
def appliance() -> FakeAppliance:
    """Return a fresh set of fake collaborators."""
    return FakeAppliance()


@pytest.fixture
def console() -> Console:
    """Return a console that records plain output in memory."""
    return Console(file=io.StringIO(), width=200, color_system=None)


@dataclass
class RecordedCall:
    args: list[str]
    check: bool
    input_text: str | None
    env: dict[str, str] | None


@dataclass
class _Response:
    prefix: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    action: Callable[[list[str]], None] | None


class RecordingRunner:
    """Stand-in for ``CommandRunner`` with scripted results per command prefix."""

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self._responses: list[_Response] = []

    def respond(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        action: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._responses.insert(0, _Response(prefix, returncode, stdout, stderr, action))

    def commands(self) -> list[list[str]]:
        return [call.args for call in self.calls]

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = [str(arg) for arg in args]
        self.calls.append(RecordedCall(command, check, input_text, dict(env) if env else None))
        response = next(
            (item for item in self._responses if tuple(command[: len(item.prefix)]) == item.prefix),
            None,
        )
        if response is None:
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")
        if response.action is not None:
            response.action(command)
        result = subprocess.CompletedProcess(
            command,
            response.returncode,
            stdout=response.stdout,
            stderr=response.stderr,
        )
        if check and result.returncode != 0:
            raise CommandResultError(f"{command[0]} failed (exit {result.returncode})", result)
        return result


@pytest.fixture
def command_runner() -> RecordingRunner:
    """Return a runner that records commands instead of spawning them."""
    return RecordingRunner()

"""Select, validate and run the configuration actions for one invocation.

Actions form a fixed, ordered table. Each entry pairs a scope predicate over
the resolved intents with an optional validator and an executor. The plan
(which actions are in scope, plus the region fast-fail) is computed before the
first executor runs; validators run immediately before their own executor
because some of them depend on what earlier actions produced (the database
action needs the key the key action created).

Side effects of actions that already ran are never rolled back.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rich.console import Console

from .collaborators import (
    CertificateRequest,
    Collaborators,
    ExternalDatabaseRequest,
    InternalDatabaseRequest,
    IpaJoinRequest,
    StorageConfigurator,
)
from .disks import Disk, DiskResolver
from .errors import CommandResultError, ConsoleError, KeyFailure
from .exit_codes import ExitCode
from .intents import REPLICATION_PRIMARY, IntentResolver
from .logging import OperationScope
from .options import OptionSet
from .outcome import say

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Action:
    """One row of the dispatch table."""

    name: str
    in_scope: Callable[[], bool]
    execute: Callable[[], str]
    validate: Callable[[], None] | None = None


class ActionDispatcher:
    """Run the configuration actions requested by an :class:`OptionSet`."""

    def __init__(
        self,
        options: OptionSet,
        collaborators: Collaborators,
        console: Console,
        *,
        intents: IntentResolver | None = None,
    ) -> None:
        self.options = options
        self.collaborators = collaborators
        self.console = console
        self.intents = intents or IntentResolver(
            options,
            collaborators.key_store,
            collaborators.hosts,
        )
        self.disks = DiskResolver(collaborators.disks)
        self._op: OperationScope | None = None
        self.failed: list[str] = []

    # ------------------------------------------------------------------
    def actions(self) -> list[Action]:
        """Return the dispatch table in execution order."""
        intents = self.intents
        return [
            Action("host.set", lambda: intents.set_host_requested, self.set_host),
            Action("key.activate", lambda: intents.key_requested, self.create_key),
            Action(
                "database.configure",
                lambda: intents.database_requested,
                self.set_db,
                self.validate_db,
            ),
            Action(
                "replication.configure",
                lambda: intents.replication_requested,
                self.set_replication,
            ),
            Action("disk.tmp", lambda: intents.tmp_disk_requested, self.config_tmp_disk),
            Action("disk.log", lambda: intents.log_disk_requested, self.config_log_disk),
            Action("ipa.uninstall", lambda: intents.uninstall_ipa_requested, self.uninstall_ipa),
            Action(
                "ipa.install",
                lambda: intents.install_ipa_requested,
                self.install_ipa,
                self.validate_install_ipa,
            ),
            Action("certs.install", lambda: intents.certs_requested, self.install_certs),
            Action(
                "extauth.update",
                lambda: intents.extauth_opts_requested,
                self.update_extauth_opts,
            ),
            Action(
                "server.state",
                lambda: intents.server_state_requested,
                self.set_server_state,
            ),
        ]

    def plan(self) -> list[Action]:
        """Return the in-scope actions, failing fast on a missing region."""
        if self.intents.region_missing:
            raise ConsoleError("Region number needed when setting up a local database")
        return [action for action in self.actions() if action.in_scope()]

    def run(
        self,
        op: OperationScope | None = None,
        *,
        planned: Sequence[Action] | None = None,
    ) -> list[str]:
        """Execute the planned actions in order and return the names that ran."""
        self._op = op
        if planned is None:
            planned = self.plan()
        completed: list[str] = []
        self.failed = []
        for action in planned:
            try:
                if action.validate is not None:
                    action.validate()
                status = action.execute()
            except ConsoleError as exc:
                self._step(action.name, STATUS_FAILED, exc.message)
                raise
            self._step(action.name, status)
            if status == STATUS_SUCCESS:
                completed.append(action.name)
            elif status == STATUS_FAILED:
                self.failed.append(action.name)
        return completed

    # -- actions -------------------------------------------------------
    def set_host(self) -> str:
        hosts = self.collaborators.hosts
        hosts.set_hostname(self.options.host or "")
        hosts.set_loopback_hostname(self.options.host or "")
        hosts.save()
        self.collaborators.services.restart(self.collaborators.network_service)
        return STATUS_SUCCESS

    def create_key(self) -> str:
        key_configuration = self.intents.key_configuration
        self._say(f"{key_configuration.action} encryption key")
        if not key_configuration.activate():
            message = "Could not create encryption key (v2_key)"
            self._say(message)
            self._step("key.activate", STATUS_FAILED, message)
            if self._op is not None:
                self._op.error(message, rc=int(ExitCode.FAILURE))
            raise KeyFailure(message)
        return STATUS_SUCCESS

    def validate_db(self) -> None:
        if not self.intents.key_configuration.key_exist():
            raise ConsoleError("No encryption key (v2_key) present")
        if not self.intents.password_present:
            raise ConsoleError("A password is required to configure a database")

    def set_db(self) -> str:
        if self.intents.local_database:
            self.set_internal_db()
        else:
            self.set_external_db()
        return STATUS_SUCCESS

    def set_internal_db(self) -> None:
        self._say("configuring internal database")
        request = InternalDatabaseRequest(
            database=self.options.dbname,
            region=self.options.region,
            username=self.options.username,
            password=self.options.password or "",
            disk=self.disks.resolve(self.options.dbdisk),
            run_as_evm_server=not self.options.standalone,
        )
        try:
            config = self.collaborators.internal_database(request)
            config.check_disk_is_mount_point()
            activated = config.activate()
            if activated:
                config.post_activation()
        except CommandResultError:
            raise
        except (ConsoleError, RuntimeError) as exc:
            raise ConsoleError(f"Failed to configure internal database: {exc}") from exc
        if not activated:
            raise ConsoleError("Failed to configure internal database")

    def set_external_db(self) -> None:
        self._say("configuring external database")
        request = ExternalDatabaseRequest(
            host=self.intents.resolved_hostname or "",
            port=self.options.port,
            database=self.options.dbname,
            region=self.options.region,
            username=self.options.username,
            password=self.options.password or "",
        )
        config = self.collaborators.external_database(request)
        if not config.activate():
            raise ConsoleError("Failed to configure external database")
        config.post_activation()

    def set_replication(self) -> str:
        options = self.options
        if options.replication == REPLICATION_PRIMARY:
            replication = self.collaborators.replication_primary()
            self._say("Configuring Server as Primary")
        else:
            standby = self.collaborators.replication_standby()
            self._say("Configuring Server as Standby")
            standby.disk = self.disks.resolve(options.dbdisk)
            standby.primary_host = options.primary_host
            if options.standby_host:
                standby.standby_host = options.standby_host
            standby.run_repmgrd_configuration = options.auto_failover
            replication = standby
        if options.dbname:
            replication.database_name = options.dbname
        if options.username:
            replication.database_user = options.username
        replication.node_number = options.cluster_node_number
        replication.database_password = options.password
        replication.activate()
        return STATUS_SUCCESS

    def config_tmp_disk(self) -> str:
        return self._config_disk(
            self.options.tmpdisk,
            "creating temp disk",
            self.collaborators.temp_storage,
        )

    def config_log_disk(self) -> str:
        return self._config_disk(
            self.options.logdisk,
            "creating log disk",
            self.collaborators.log_storage,
        )

    def uninstall_ipa(self) -> str:
        self._say("Uninstalling IPA-client")
        client = self.collaborators.external_auth(None)
        if not client.ipa_client_configured():
            return STATUS_SKIPPED
        client.deactivate()
        return STATUS_SUCCESS

    def validate_install_ipa(self) -> None:
        if self.collaborators.external_auth(None).ipa_client_configured():
            raise ConsoleError("please uninstall ipa before reinstalling")

    def install_ipa(self) -> str:
        options = self.options
        client = self.collaborators.external_auth(
            IpaJoinRequest(
                host=self.intents.machine_host,
                ipaserver=options.ipaserver or "",
                principal=options.ipaprincipal,
                password=options.ipapassword,
                domain=options.ipadomain,
                realm=options.iparealm,
            )
        )
        if not client.activate():
            self._say("IPA client installation failed")
            return STATUS_FAILED
        client.post_activation()
        return STATUS_SUCCESS

    def install_certs(self) -> str:
        self._say("creating ssl certificates")
        config = self.collaborators.certificate_authority(
            CertificateRequest(
                hostname=self.intents.machine_host,
                realm=self.options.iparealm,
                ca_name=self.options.ca,
                http=self.options.http_cert,
                verbose=self.options.verbose,
            )
        )
        config.activate()
        self._say(f"\ncertificate result: {config.status_string()}")
        if not config.complete():
            self._say(
                "After the certificates are retrieved, rerun to update service configuration files"
            )
        return STATUS_SUCCESS

    def update_extauth_opts(self) -> str:
        store = self.collaborators.extauth_options()
        values = store.parse(self.options.extauth_opts or "")
        if not values:
            raise ConsoleError("Must specify at least one external authentication option to set")
        store.update_configuration(values)
        return STATUS_SUCCESS

    def set_server_state(self) -> str:
        services = self.collaborators.services
        name = self.collaborators.application_service
        service_running = services.running(name)
        action = self.options.server
        if action == "start":
            if service_running:
                return STATUS_SKIPPED
            services.start(name)
        elif action == "stop":
            if not service_running:
                return STATUS_SKIPPED
            services.stop(name)
        elif action == "restart":
            services.restart(name)
        else:
            raise ConsoleError("Invalid server action")
        return STATUS_SUCCESS

    # ------------------------------------------------------------------
    def _config_disk(
        self,
        token: str | None,
        message: str,
        factory: Callable[[Disk], StorageConfigurator],
    ) -> str:
        disk = self.disks.resolve(token)
        if disk is None:
            self._report_disk_error(token)
            return STATUS_SKIPPED
        self._say(message)
        factory(disk).activate()
        return STATUS_SUCCESS

    def _report_disk_error(self, token: str | None) -> None:
        for line in self.disks.describe_miss(token):
            self._say(line)

    def _say(self, message: str) -> None:
        say(self.console, message)

    def _step(self, name: str, status: str, detail: str | None = None) -> None:
        if self._op is not None:
            self._op.add_step(name, status=status, detail=detail)


__all__ = ["Action", "ActionDispatcher"]

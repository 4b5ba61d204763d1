"""Typer-powered command line for ``appliance-console-cli``.

One invocation may request any combination of host, key, database,
replication, storage, IPA, certificate, external authentication and server
actions. The command resolves what was asked for, runs the matching actions in
a fixed order and reports the outcome. Every run is recorded in the structured
operations log.
"""
from __future__ import annotations

import logging
import sys
import textwrap
from collections.abc import Sequence
from pathlib import Path

import typer
from rich.console import Console

from . import __version__
from .collaborators import (
    CertificateRequest,
    Collaborators,
    ExternalDatabaseRequest,
    InternalDatabaseRequest,
    IpaJoinRequest,
    KeyRequest,
)
from .config import AppConfig, ConfigError, load_config
from .disks import Disk
from .dispatcher import ActionDispatcher
from .errors import ConsoleError, KeyFailure
from .exit_codes import ExitCode
from .logging import StructuredLogger
from .options import (
    DEFAULT_CA,
    DEFAULT_DBNAME,
    DEFAULT_IPAPRINCIPAL,
    DEFAULT_PORT,
    DEFAULT_SSHLOGIN,
    DEFAULT_USERNAME,
    OptionSet,
)
from .outcome import say, translate_failure
from .providers import (
    CertificateAuthority,
    CommandRunner,
    DatabaseReplicationPrimary,
    DatabaseReplicationStandby,
    DiskVolume,
    ExternalAuthOptions,
    ExternalDatabaseConfiguration,
    ExternalHttpdAuthentication,
    HostsFile,
    InternalDatabaseConfiguration,
    KeyConfiguration,
    LogfileConfiguration,
    LsblkDiskEnumerator,
    ServiceController,
    TempStorageConfiguration,
)

PROG_NAME = "appliance-console-cli"

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to the appliance console YAML config file.",
)

HOST_OPTION = typer.Option(None, "--host", "-H", help="/etc/hosts name for this machine.")
REGION_OPTION = typer.Option(None, "--region", "-r", help="Region number.")
INTERNAL_OPTION = typer.Option(False, "--internal", "-i", help="Configure an internal database.")
HOSTNAME_OPTION = typer.Option(None, "--hostname", "-h", help="Database host name.")
PORT_OPTION = typer.Option(DEFAULT_PORT, "--port", help="Database port.")
USERNAME_OPTION = typer.Option(DEFAULT_USERNAME, "--username", "-U", help="Database username.")
PASSWORD_OPTION = typer.Option(None, "--password", "-p", help="Database password.")
DBNAME_OPTION = typer.Option(DEFAULT_DBNAME, "--dbname", "-d", help="Database name.")
STANDALONE_OPTION = typer.Option(
    False,
    "--standalone",
    "-S",
    help="Run this server as a standalone database server.",
)
KEY_OPTION = typer.Option(False, "--key", "-k", help="Create the encryption key.")
FETCH_KEY_OPTION = typer.Option(
    None,
    "--fetch-key",
    "-K",
    help="SSH host to copy the encryption key from.",
)
FORCE_KEY_OPTION = typer.Option(
    False,
    "--force-key",
    "-f",
    help="Replace an existing encryption key.",
)
SSHLOGIN_OPTION = typer.Option(DEFAULT_SSHLOGIN, "--sshlogin", help="SSH login.")
SSHPASSWORD_OPTION = typer.Option(None, "--sshpassword", help="SSH password.")
REPLICATION_OPTION = typer.Option(
    None,
    "--replication",
    help="Configure database replication as primary or standby.",
)
PRIMARY_HOST_OPTION = typer.Option(
    None,
    "--primary-host",
    help="Primary database host IP address.",
)
STANDBY_HOST_OPTION = typer.Option(
    None,
    "--standby-host",
    help="Standby database host IP address.",
)
AUTO_FAILOVER_OPTION = typer.Option(
    False,
    "--auto-failover",
    help="Configure the replication manager daemon for automatic failover.",
)
CLUSTER_NODE_NUMBER_OPTION = typer.Option(
    None,
    "--cluster-node-number",
    help="Unique database cluster node number.",
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose output.")
DBDISK_OPTION = typer.Option(None, "--dbdisk", help="Database disk path, or 'auto'.")
LOGDISK_OPTION = typer.Option(None, "--logdisk", help="Log disk path, or 'auto'.")
TMPDISK_OPTION = typer.Option(None, "--tmpdisk", help="Temp storage disk path, or 'auto'.")
UNINSTALL_IPA_OPTION = typer.Option(False, "--uninstall-ipa", help="Uninstall the IPA client.")
IPASERVER_OPTION = typer.Option(None, "--ipaserver", help="IPA server FQDN.")
IPAPRINCIPAL_OPTION = typer.Option(
    DEFAULT_IPAPRINCIPAL,
    "--ipaprincipal",
    help="IPA server principal.",
)
IPAPASSWORD_OPTION = typer.Option(None, "--ipapassword", help="IPA server password.")
IPADOMAIN_OPTION = typer.Option(None, "--ipadomain", help="IPA server domain (optional).")
IPAREALM_OPTION = typer.Option(None, "--iparealm", help="IPA server realm (optional).")
CA_OPTION = typer.Option(DEFAULT_CA, "--ca", help="CA name used for certmonger.")
HTTP_CERT_OPTION = typer.Option(False, "--http-cert", help="Install certificates for the http server.")
EXTAUTH_OPTS_OPTION = typer.Option(
    None,
    "--extauth-opts",
    help="External authentication options, e.g. /authentication/sso_enabled=true.",
)
SERVER_OPTION = typer.Option(
    None,
    "--server",
    help="{start|stop|restart} action on the application server.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Appliance console command line.

        Configure the host name, encryption key, database, replication,
        dedicated disks, IPA client, certificates, external authentication and
        application server of an appliance in a single non-interactive run.
        """
    ).strip(),
)


def build_collaborators(config: AppConfig, console: Console) -> Collaborators:
    """Wire the default OS-backed collaborators from *config*."""
    runner = CommandRunner()
    binaries = config.binaries
    names = config.services
    services = ServiceController(runner, systemctl_bin=binaries.systemctl)
    volume = DiskVolume(
        runner,
        fstab_path=config.fstab_file,
        parted_bin=binaries.parted,
        mkfs_bin=binaries.mkfs,
        mount_bin=binaries.mount,
    )
    hosts = HostsFile(
        runner,
        hosts_path=config.hosts_file,
        hostname_path=config.hostname_file,
        hostnamectl_bin=binaries.hostnamectl,
    )

    def key_store(request: KeyRequest) -> KeyConfiguration:
        return KeyConfiguration(
            request,
            config.key_file,
            runner,
            console,
            scp_bin=binaries.scp,
            sshpass_bin=binaries.sshpass,
        )

    def internal_database(request: InternalDatabaseRequest) -> InternalDatabaseConfiguration:
        return InternalDatabaseConfiguration(
            request,
            runner,
            services,
            volume,
            config.database_yml,
            config.vmdb_root,
            data_dir=config.postgres_data_dir,
            mount_point=config.postgres_mount_point,
            database_service=names.database,
            application_service=names.application,
            psql_bin=binaries.psql,
            initdb_bin=binaries.initdb,
            runuser_bin=binaries.runuser,
        )

    def external_database(request: ExternalDatabaseRequest) -> ExternalDatabaseConfiguration:
        return ExternalDatabaseConfiguration(
            request,
            runner,
            services,
            config.database_yml,
            config.vmdb_root,
            application_service=names.application,
            psql_bin=binaries.psql,
        )

    def replication_primary() -> DatabaseReplicationPrimary:
        return DatabaseReplicationPrimary(
            runner,
            services,
            config_path=config.repmgr_config,
            repmgr_bin=binaries.repmgr,
            local_host=hosts.hostname,
            data_dir=config.postgres_data_dir,
        )

    def replication_standby() -> DatabaseReplicationStandby:
        return DatabaseReplicationStandby(
            runner,
            services,
            config_path=config.repmgr_config,
            repmgr_bin=binaries.repmgr,
            local_host=hosts.hostname,
            volume=volume,
            data_dir=config.postgres_data_dir,
            mount_point=config.postgres_mount_point,
            database_service=names.database,
            repmgrd_service=names.repmgrd,
        )

    def temp_storage(disk: Disk) -> TempStorageConfiguration:
        return TempStorageConfiguration(disk, volume, mount_point=config.temp_mount_point)

    def log_storage(disk: Disk) -> LogfileConfiguration:
        return LogfileConfiguration(disk, volume, mount_point=config.log_mount_point)

    def external_auth(request: IpaJoinRequest | None) -> ExternalHttpdAuthentication:
        return ExternalHttpdAuthentication(
            runner,
            services,
            request=request,
            console=console,
            ipa_config_file=config.ipa_config_file,
            ipa_client_install_bin=binaries.ipa_client_install,
            httpd_service=names.httpd,
        )

    def certificate_authority(request: CertificateRequest) -> CertificateAuthority:
        return CertificateAuthority(
            request,
            runner,
            services,
            config.certs_dir,
            console=console,
            getcert_bin=binaries.getcert,
            httpd_service=names.httpd,
        )

    def extauth_options() -> ExternalAuthOptions:
        return ExternalAuthOptions(config.extauth_settings_file)

    return Collaborators(
        hosts=hosts,
        services=services,
        disks=LsblkDiskEnumerator(runner, lsblk_bin=binaries.lsblk),
        key_store=key_store,
        internal_database=internal_database,
        external_database=external_database,
        replication_primary=replication_primary,
        replication_standby=replication_standby,
        temp_storage=temp_storage,
        log_storage=log_storage,
        external_auth=external_auth,
        certificate_authority=certificate_authority,
        extauth_options=extauth_options,
        network_service=names.network,
        application_service=names.application,
    )


@app.command()
def configure(  # noqa: PLR0913 - one parameter per command line flag.
    ctx: typer.Context,
    host: str | None = HOST_OPTION,
    region: int | None = REGION_OPTION,
    internal: bool = INTERNAL_OPTION,
    hostname: str | None = HOSTNAME_OPTION,
    port: int = PORT_OPTION,
    username: str = USERNAME_OPTION,
    password: str | None = PASSWORD_OPTION,
    dbname: str = DBNAME_OPTION,
    standalone: bool = STANDALONE_OPTION,
    key: bool = KEY_OPTION,
    fetch_key: str | None = FETCH_KEY_OPTION,
    force_key: bool = FORCE_KEY_OPTION,
    sshlogin: str = SSHLOGIN_OPTION,
    sshpassword: str | None = SSHPASSWORD_OPTION,
    replication: str | None = REPLICATION_OPTION,
    primary_host: str | None = PRIMARY_HOST_OPTION,
    standby_host: str | None = STANDBY_HOST_OPTION,
    auto_failover: bool = AUTO_FAILOVER_OPTION,
    cluster_node_number: int | None = CLUSTER_NODE_NUMBER_OPTION,
    verbose: bool = VERBOSE_OPTION,
    dbdisk: str | None = DBDISK_OPTION,
    logdisk: str | None = LOGDISK_OPTION,
    tmpdisk: str | None = TMPDISK_OPTION,
    uninstall_ipa: bool = UNINSTALL_IPA_OPTION,
    ipaserver: str | None = IPASERVER_OPTION,
    ipaprincipal: str = IPAPRINCIPAL_OPTION,
    ipapassword: str | None = IPAPASSWORD_OPTION,
    ipadomain: str | None = IPADOMAIN_OPTION,
    iparealm: str | None = IPAREALM_OPTION,
    ca: str = CA_OPTION,
    http_cert: bool = HTTP_CERT_OPTION,
    extauth_opts: str | None = EXTAUTH_OPTS_OPTION,
    server: str | None = SERVER_OPTION,
    config_file: Path | None = CONFIG_FILE_OPTION,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the appliance console version and exit.",
    ),
) -> None:
    """Configure this appliance from command line options."""
    if version:
        console.print(f"{PROG_NAME} {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    if verbose:
        logging.basicConfig(level=logging.DEBUG)

    options = OptionSet.from_mapping(
        {
            "host": host,
            "region": region,
            "internal": internal,
            "hostname": hostname,
            "port": port,
            "username": username,
            "password": password,
            "dbname": dbname,
            "standalone": standalone,
            "key": key,
            "fetch_key": fetch_key,
            "force_key": force_key,
            "sshlogin": sshlogin,
            "sshpassword": sshpassword,
            "replication": replication,
            "primary_host": primary_host,
            "standby_host": standby_host,
            "auto_failover": auto_failover,
            "cluster_node_number": cluster_node_number,
            "verbose": verbose,
            "dbdisk": dbdisk,
            "logdisk": logdisk,
            "tmpdisk": tmpdisk,
            "uninstall_ipa": uninstall_ipa,
            "ipaserver": ipaserver,
            "ipaprincipal": ipaprincipal,
            "ipapassword": ipapassword,
            "ipadomain": ipadomain,
            "iparealm": iparealm,
            "ca": ca,
            "http_cert": http_cert,
            "extauth_opts": extauth_opts,
            "server": server,
        }
    )

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        say(console, str(exc))
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    dispatcher = ActionDispatcher(options, build_collaborators(config, console), console)
    if dispatcher.intents.region_missing:
        raise typer.BadParameter(
            "needed when setting up a local database",
            param_hint="'--region' / '-r'",
        )

    logger = StructuredLogger(config.logs_dir)
    with logger.operation(
        "configure",
        args=options.to_dict(),
        target={"kind": "appliance", "host": options.host or options.hostname or ""},
    ) as op:
        try:
            planned = dispatcher.plan()
            if not planned:
                console.print(ctx.get_help())
                op.error("No configuration action requested.", rc=int(ExitCode.USAGE))
                raise typer.Exit(code=ExitCode.USAGE)
            completed = dispatcher.run(op, planned=planned)
        except KeyFailure as exc:
            raise typer.Exit(code=ExitCode.FAILURE) from exc
        except ConsoleError as exc:
            op.error(exc.message, rc=int(ExitCode.FAILURE))
            code = translate_failure(exc, console)
            raise typer.Exit(code=code) from exc
        if dispatcher.failed:
            op.warning(
                "Appliance configuration completed with failures.",
                warnings=tuple(f"{name} failed" for name in dispatcher.failed),
                changed=len(completed),
                context={"actions": completed, "failed": dispatcher.failed},
            )
        else:
            op.success(
                "Appliance configuration completed.",
                changed=len(completed),
                context={"actions": completed},
            )


def main(argv: Sequence[str] | None = None) -> None:
    """Console script entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] == "--":
        args = args[1:]
    app(args=args, prog_name=PROG_NAME)


__all__ = ["app", "build_collaborators", "configure", "main"]

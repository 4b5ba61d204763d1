"""Tests for action selection, validation and execution order."""
from __future__ import annotations

import subprocess

import pytest
from rich.console import Console

from appliance_console.disks import Disk
from appliance_console.dispatcher import ActionDispatcher
from appliance_console.errors import CommandResultError, ConsoleError, KeyFailure
from appliance_console.logging import OperationScope
from appliance_console.options import OptionSet


def _dispatcher(appliance, console: Console, **options: object) -> ActionDispatcher:
    return ActionDispatcher(OptionSet.from_mapping(options), appliance.collaborators(), console)


def _output(console: Console) -> str:
    return console.file.getvalue()  # type: ignore[attr-defined]


def test_missing_region_fails_before_any_collaborator(appliance, console) -> None:
    appliance.key_present = False
    dispatcher = _dispatcher(appliance, console, internal=True, password="pw", host="a.example")

    with pytest.raises(ConsoleError, match="Region number needed"):
        dispatcher.run()

    assert appliance.events == []


def test_nothing_in_scope_plans_nothing(appliance, console) -> None:
    assert _dispatcher(appliance, console).plan() == []


def test_actions_follow_fixed_order(appliance, console) -> None:
    appliance.key_present = False
    appliance.disks.disks = [Disk("/dev/vdb"), Disk("/dev/vdc")]
    dispatcher = _dispatcher(
        appliance,
        console,
        server="restart",
        http_cert=True,
        tmpdisk="/dev/vdb",
        logdisk="/dev/vdc",
        internal=True,
        region=1,
        password="pw",
        host="a.example.com",
        extauth_opts="/authentication/sso_enabled=true",
    )

    names = [action.name for action in dispatcher.plan()]

    assert names == [
        "host.set",
        "key.activate",
        "database.configure",
        "disk.tmp",
        "disk.log",
        "certs.install",
        "extauth.update",
        "server.state",
    ]
    assert dispatcher.run() == names
    assert appliance.events.index("hosts.save") < appliance.events.index("key.create")
    assert appliance.events.index("key.create") < appliance.events.index("db.internal.activate")
    assert appliance.events[-1] == "services.restart:evmserverd"


def test_set_host_restarts_network(appliance, console) -> None:
    _dispatcher(appliance, console, host="new.example.com").run()
    assert appliance.events == [
        "hosts.set_hostname:new.example.com",
        "hosts.set_loopback_hostname:new.example.com",
        "hosts.save",
        "services.restart:network",
    ]


def test_key_failure_exits_immediately(appliance, console) -> None:
    appliance.key_present = False
    appliance.key_activate_ok = False
    dispatcher = _dispatcher(appliance, console, key=True, server="start")
    op = OperationScope("configure")

    with pytest.raises(KeyFailure, match=r"Could not create encryption key \(v2_key\)"):
        dispatcher.run(op)

    assert "Could not create encryption key (v2_key)" in _output(console)
    assert "services.start:evmserverd" not in appliance.events
    assert op.result is not None
    assert op.result["status"] == "error"
    assert op.steps[-1] == {
        "name": "key.activate",
        "status": "failed",
        "detail": "Could not create encryption key (v2_key)",
    }


def test_fetch_key_reports_action(appliance, console) -> None:
    _dispatcher(appliance, console, fetch_key="10.0.0.9").run()
    assert "fetch encryption key" in _output(console)
    assert appliance.events == ["key.fetch"]


def test_database_requires_key(appliance, console) -> None:
    appliance.key_present = False
    dispatcher = _dispatcher(appliance, console, hostname="10.0.0.5", password="pw")

    with pytest.raises(ConsoleError, match=r"No encryption key \(v2_key\) present"):
        dispatcher.run()

    assert appliance.events == []


def test_blank_password_is_rejected(appliance, console) -> None:
    dispatcher = _dispatcher(appliance, console, hostname="10.0.0.5", password="   ")

    with pytest.raises(ConsoleError, match="password is required"):
        dispatcher.run()

    assert "external_database" not in appliance.requests


def test_standalone_database_skips_app_server(appliance, console) -> None:
    dispatcher = _dispatcher(
        appliance,
        console,
        standalone=True,
        dbname="x",
        username="u",
        password="p",
    )

    assert [action.name for action in dispatcher.plan()] == ["database.configure"]
    dispatcher.run()

    request = appliance.requests["internal_database"]
    assert request.database == "x"
    assert request.username == "u"
    assert request.password == "p"
    assert request.region is None
    assert request.run_as_evm_server is False
    assert appliance.events == [
        "db.internal.check_disk",
        "db.internal.activate",
        "db.internal.post_activation",
    ]


def test_internal_database_resolves_dbdisk(appliance, console) -> None:
    appliance.disks.disks = [Disk("/dev/vda", partitions=("/dev/vda1",)), Disk("/dev/vdb")]
    _dispatcher(
        appliance,
        console,
        internal=True,
        region=3,
        password="pw",
        dbdisk="auto",
    ).run()

    request = appliance.requests["internal_database"]
    assert request.disk == Disk("/dev/vdb")
    assert request.region == 3
    assert request.run_as_evm_server is True


def test_internal_database_failure_is_wrapped(appliance, console) -> None:
    appliance.database_ok = False
    dispatcher = _dispatcher(appliance, console, internal=True, region=1, password="pw")

    with pytest.raises(ConsoleError, match="^Failed to configure internal database$"):
        dispatcher.run()

    assert "db.internal.post_activation" not in appliance.events


def test_internal_database_domain_error_keeps_detail(appliance, console) -> None:
    appliance.mount_error = ConsoleError("Internal databases require a volume mounted at /x.")
    dispatcher = _dispatcher(appliance, console, internal=True, region=1, password="pw")

    with pytest.raises(ConsoleError) as excinfo:
        dispatcher.run()

    assert excinfo.value.message == (
        "Failed to configure internal database: "
        "Internal databases require a volume mounted at /x."
    )
    assert "db.internal.activate" not in appliance.events


def test_internal_database_command_failure_is_not_wrapped(appliance, console) -> None:
    result = subprocess.CompletedProcess(["initdb"], 1, stdout="out", stderr="err")
    appliance.database_error = CommandResultError("initdb failed", result)
    dispatcher = _dispatcher(appliance, console, internal=True, region=1, password="pw")

    with pytest.raises(CommandResultError) as excinfo:
        dispatcher.run()

    assert excinfo.value.result is result


def test_external_database_request(appliance, console) -> None:
    _dispatcher(
        appliance,
        console,
        hostname="db.example.com",
        port=5433,
        region=7,
        username="admin",
        password="pw",
    ).run()

    request = appliance.requests["external_database"]
    assert request.host == "db.example.com"
    assert request.port == 5433
    assert request.region == 7
    assert request.username == "admin"
    assert appliance.events == ["db.external.activate", "db.external.post_activation"]


def test_external_database_failure(appliance, console) -> None:
    appliance.database_ok = False
    dispatcher = _dispatcher(appliance, console, hostname="db.example.com", password="pw")

    with pytest.raises(ConsoleError, match="Failed to configure external database"):
        dispatcher.run()


def test_primary_replication_fields(appliance, console) -> None:
    _dispatcher(
        appliance,
        console,
        replication="primary",
        cluster_node_number=1,
        password="pw",
        dbname="vmdb",
        username="repl",
    ).run()

    replication = appliance.replication
    assert replication.role == "primary"
    assert replication.node_number == 1
    assert replication.database_password == "pw"
    assert replication.database_name == "vmdb"
    assert replication.database_user == "repl"
    assert "Configuring Server as Primary" in _output(console)


def test_standby_replication_fields(appliance, console) -> None:
    appliance.disks.disks = [Disk("/dev/vdb")]
    _dispatcher(
        appliance,
        console,
        replication="standby",
        primary_host="10.0.0.1",
        standby_host="10.0.0.2",
        auto_failover=True,
        cluster_node_number=2,
        password="pw",
        dbdisk="/dev/vdb",
    ).run()

    replication = appliance.replication
    assert replication.role == "standby"
    assert replication.primary_host == "10.0.0.1"
    assert replication.standby_host == "10.0.0.2"
    assert replication.run_repmgrd_configuration is True
    assert replication.disk == Disk("/dev/vdb")
    assert replication.node_number == 2


def test_standby_without_primary_host_is_not_configured(appliance, console) -> None:
    dispatcher = _dispatcher(
        appliance,
        console,
        replication="standby",
        cluster_node_number=2,
        password="x",
    )
    assert dispatcher.plan() == []
    assert appliance.replication is None


def test_missing_disk_is_reported_and_run_continues(appliance, console) -> None:
    appliance.disks.disks = [Disk("/dev/vdc")]
    completed = _dispatcher(appliance, console, tmpdisk="/dev/sdz", server="start").run()

    output = _output(console)
    assert "could not find disk /dev/sdz" in output
    assert "if you pass auto, it will choose: /dev/vdc" in output
    assert completed == ["server.state"]
    assert not any(event.startswith("storage.") for event in appliance.events)


def test_log_disk_auto(appliance, console) -> None:
    appliance.disks.disks = [Disk("/dev/vdb")]
    _dispatcher(appliance, console, logdisk="auto").run()
    assert appliance.events == ["storage.log:/dev/vdb"]
    assert "creating log disk" in _output(console)


def test_no_candidate_disk_message(appliance, console) -> None:
    _dispatcher(appliance, console, tmpdisk="auto").run()
    assert "no disks with a free partition" in _output(console)


def test_uninstall_ipa_when_not_configured_is_noop(appliance, console) -> None:
    completed = _dispatcher(appliance, console, uninstall_ipa=True).run()
    assert completed == []
    assert "ipa.deactivate" not in appliance.events


def test_uninstall_ipa_when_configured(appliance, console) -> None:
    appliance.ipa_configured = True
    _dispatcher(appliance, console, uninstall_ipa=True).run()
    assert appliance.events == ["ipa.deactivate"]


def test_install_ipa_requires_uninstall_first(appliance, console) -> None:
    appliance.ipa_configured = True
    dispatcher = _dispatcher(appliance, console, ipaserver="ipa.example.com")

    with pytest.raises(ConsoleError, match="please uninstall ipa before reinstalling"):
        dispatcher.run()

    assert "ipa.activate" not in appliance.events


def test_install_ipa_builds_join_request(appliance, console) -> None:
    _dispatcher(
        appliance,
        console,
        ipaserver="ipa.example.com",
        ipapassword="secret",
        ipadomain="example.com",
        iparealm="EXAMPLE.COM",
    ).run()

    request = appliance.requests["ipa"]
    assert request.ipaserver == "ipa.example.com"
    assert request.principal == "admin"
    assert request.password == "secret"
    assert request.domain == "example.com"
    assert request.realm == "EXAMPLE.COM"
    assert request.host == "appliance.example.com"
    assert appliance.events == ["ipa.activate", "ipa.post_activation"]


def test_uninstall_then_install_in_one_run(appliance, console) -> None:
    appliance.ipa_configured = True
    _dispatcher(appliance, console, uninstall_ipa=True, ipaserver="ipa.example.com").run()
    assert appliance.events == ["ipa.deactivate", "ipa.activate", "ipa.post_activation"]


def test_failed_ipa_join_is_reported_and_skips_post_activation(appliance, console) -> None:
    appliance.ipa_join_ok = False
    dispatcher = _dispatcher(appliance, console, ipaserver="ipa.example.com")
    op = OperationScope("configure")

    completed = dispatcher.run(op)

    assert completed == []
    assert dispatcher.failed == ["ipa.install"]
    assert appliance.events == ["ipa.activate"]
    assert "IPA client installation failed" in _output(console)
    assert op.steps == [{"name": "ipa.install", "status": "failed"}]


def test_incomplete_certificates_print_guidance(appliance, console) -> None:
    appliance.certs_complete = False
    _dispatcher(appliance, console, http_cert=True, iparealm="EXAMPLE.COM").run()

    output = _output(console)
    assert "certificate result: http: waiting" in output
    assert "rerun to update service configuration files" in output
    request = appliance.requests["certs"]
    assert request.ca_name == "ipa"
    assert request.realm == "EXAMPLE.COM"
    assert request.http is True


def test_complete_certificates_skip_guidance(appliance, console) -> None:
    _dispatcher(appliance, console, http_cert=True).run()
    output = _output(console)
    assert "certificate result: http: complete" in output
    assert "rerun" not in output


def test_extauth_options_require_a_value(appliance, console) -> None:
    dispatcher = _dispatcher(appliance, console, extauth_opts="garbage")
    with pytest.raises(ConsoleError, match="Must specify at least one external authentication"):
        dispatcher.run()
    assert appliance.extauth_values is None


def test_extauth_options_are_applied(appliance, console) -> None:
    _dispatcher(appliance, console, extauth_opts="/authentication/sso_enabled=true").run()
    assert appliance.extauth_values == {"/authentication/sso_enabled": "true"}


@pytest.mark.parametrize(
    ("action", "running", "expected"),
    [
        ("start", False, ["services.start:evmserverd"]),
        ("start", True, []),
        ("stop", True, ["services.stop:evmserverd"]),
        ("stop", False, []),
        ("restart", True, ["services.restart:evmserverd"]),
        ("restart", False, ["services.restart:evmserverd"]),
    ],
)
def test_server_state(appliance, console, action: str, running: bool, expected: list[str]) -> None:
    if running:
        appliance.services.active.add("evmserverd")
    _dispatcher(appliance, console, server=action).run()
    assert appliance.events == expected


def test_invalid_server_action(appliance, console) -> None:
    with pytest.raises(ConsoleError, match="Invalid server action"):
        _dispatcher(appliance, console, server="bogus").run()


def test_failed_action_is_recorded_as_step(appliance, console) -> None:
    op = OperationScope("configure")
    dispatcher = _dispatcher(appliance, console, host="a.example.com", server="bogus")

    with pytest.raises(ConsoleError):
        dispatcher.run(op)

    assert op.steps == [
        {"name": "host.set", "status": "success"},
        {"name": "server.state", "status": "failed", "detail": "Invalid server action"},
    ]
    assert "hosts.save" in appliance.events

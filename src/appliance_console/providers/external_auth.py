"""IPA client join/leave and external authentication settings."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml
from rich.console import Console

from ..collaborators import IpaJoinRequest
from ..errors import ConsoleError
from ..outcome import say
from .command import CommandRunner
from .systemd import ServiceController

LOGGER = logging.getLogger(__name__)

BOOLEAN_OPTIONS = (
    "/authentication/sso_enabled",
    "/authentication/saml_enabled",
    "/authentication/oidc_enabled",
    "/authentication/local_login_disabled",
)
PROVIDER_TYPE_OPTION = "/authentication/provider_type"
PROVIDER_TYPES = ("none", "saml", "oidc")
TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")


class ExternalAuthError(ConsoleError):
    """Raised for malformed external authentication settings."""


@dataclass(slots=True)
class ExternalHttpdAuthentication:
    """Join or leave an IPA domain and refresh httpd afterwards."""

    runner: CommandRunner
    services: ServiceController
    request: IpaJoinRequest | None = None
    console: Console | None = None
    ipa_config_file: Path = Path("/etc/ipa/default.conf")
    ipa_client_install_bin: str = "ipa-client-install"
    httpd_service: str = "httpd"

    def ipa_client_configured(self) -> bool:
        """Return ``True`` when the IPA client configuration is present."""
        return self.ipa_config_file.exists()

    def activate(self) -> bool:
        """Run an unattended ``ipa-client-install``; ``False`` when it fails."""
        request = self.request
        if request is None or not request.ipaserver:
            raise ExternalAuthError("An IPA server is required to install the IPA client")
        args = [
            self.ipa_client_install_bin,
            "--unattended",
            "--force-join",
            "--mkhomedir",
            "--no-ntp",
            "--server",
            request.ipaserver,
            "--hostname",
            request.host,
            "--principal",
            request.principal,
        ]
        if request.password:
            args.extend(["--password", request.password])
        if request.domain:
            args.extend(["--domain", request.domain])
        if request.realm:
            args.extend(["--realm", request.realm])
        result = self.runner.run(args, check=False)
        if result.returncode != 0:
            LOGGER.debug("ipa-client-install exited %s", result.returncode)
            if self.console is not None:
                say(self.console, f"{self.ipa_client_install_bin} failed (exit {result.returncode})")
                detail = (result.stderr or result.stdout or "").strip()
                if detail:
                    say(self.console, detail)
            return False
        return True

    def post_activation(self) -> None:
        self.services.restart(self.httpd_service)

    def deactivate(self) -> None:
        """Leave the IPA domain and restart httpd."""
        self.runner.run([self.ipa_client_install_bin, "--uninstall", "--unattended"])
        self.services.restart(self.httpd_service)


@dataclass(slots=True)
class ExternalAuthOptions:
    """Parse ``key=value`` pairs and merge them into the settings file.

    Keys are slash separated paths into the settings document, for example
    ``/authentication/sso_enabled=true``.
    """

    settings_file: Path

    def parse(self, raw: str) -> dict[str, object]:
        """Return the recognised settings in *raw*; raise on bad input."""
        values: dict[str, object] = {}
        for pair in raw.split(","):
            pair = pair.strip()
            if not pair:
                continue
            key, sep, value = pair.partition("=")
            key = key.strip()
            value = value.strip()
            if not sep:
                raise ExternalAuthError(f"Invalid external authentication option: {pair}")
            if key in BOOLEAN_OPTIONS:
                values[key] = _parse_bool(key, value)
            elif key == PROVIDER_TYPE_OPTION:
                if value not in PROVIDER_TYPES:
                    allowed = ", ".join(PROVIDER_TYPES)
                    raise ExternalAuthError(f"{key} must be one of: {allowed}")
                values[key] = value
            else:
                raise ExternalAuthError(f"Unknown external authentication option: {key}")
        return values

    def update_configuration(self, values: Mapping[str, object]) -> None:
        """Write *values* into the settings file, keeping unrelated settings."""
        document: dict[str, object] = {}
        if self.settings_file.exists():
            loaded = yaml.safe_load(self.settings_file.read_text(encoding="utf-8")) or {}
            if not isinstance(loaded, dict):
                raise ExternalAuthError(f"{self.settings_file} does not contain a mapping")
            document = loaded
        for key, value in values.items():
            _assign_path(document, [part for part in key.split("/") if part], value)
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(
            yaml.safe_dump(document, default_flow_style=False),
            encoding="utf-8",
        )


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ExternalAuthError(f"{key} must be true or false, got {value!r}")


def _assign_path(document: dict[str, object], parts: list[str], value: object) -> None:
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


__all__ = [
    "ExternalAuthError",
    "ExternalAuthOptions",
    "ExternalHttpdAuthentication",
]

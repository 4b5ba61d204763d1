"""Service certificates issued through certmonger."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID
from rich.console import Console

from ..collaborators import CertificateRequest
from ..outcome import say
from .command import CommandRunner
from .systemd import ServiceController

LOGGER = logging.getLogger(__name__)

STATUS_COMPLETE = "complete"
STATUS_WAITING = "waiting"
STATUS_REJECTED = "rejected"

_TRACKING_STATUS = re.compile(r"^\s*status:\s*(\S+)", re.MULTILINE)
_REJECTED_STATES = {"CA_REJECTED", "CA_UNREACHABLE", "CA_UNCONFIGURED"}


@dataclass(slots=True)
class CertificateAuthority:
    """Request the configured certificates and report how far each one got.

    A certificate counts as complete once a PEM file for the current host name
    is installed and has not expired. Until then it is either waiting on the
    CA or was rejected by it.
    """

    request: CertificateRequest
    runner: CommandRunner
    services: ServiceController
    certs_dir: Path
    console: Console | None = None
    getcert_bin: str = "getcert"
    httpd_service: str = "httpd"
    statuses: dict[str, str] = field(default_factory=dict)

    @property
    def http_cert_path(self) -> Path:
        return self.certs_dir / "server.cer"

    @property
    def http_key_path(self) -> Path:
        return self.certs_dir / "server.cer.key"

    def activate(self) -> dict[str, str]:
        """Request every certificate named in the request."""
        if self.request.http:
            self.statuses["http"] = self._request_http()
        if self.statuses and self.complete():
            self.services.restart(self.httpd_service)
        return dict(self.statuses)

    def status_string(self) -> str:
        """Return ``name: status`` pairs, for example ``http: complete``."""
        return " ".join(f"{name}: {status}" for name, status in self.statuses.items())

    def complete(self) -> bool:
        return all(status == STATUS_COMPLETE for status in self.statuses.values())

    # ------------------------------------------------------------------
    def _request_http(self) -> str:
        cert_path = self.http_cert_path
        if certificate_valid_for(cert_path, self.request.hostname):
            return STATUS_COMPLETE
        if self._tracking_state(cert_path) is None:
            self.certs_dir.mkdir(parents=True, exist_ok=True)
            args = [
                self.getcert_bin,
                "request",
                "-c",
                self.request.ca_name,
                "-k",
                str(self.http_key_path),
                "-f",
                str(cert_path),
                "-N",
                f"CN={self.request.hostname}",
                "-D",
                self.request.hostname,
            ]
            if self.request.realm:
                args.extend(["-K", f"HTTP/{self.request.hostname}@{self.request.realm}"])
            self.runner.run(args)
        state = self._tracking_state(cert_path)
        if state in _REJECTED_STATES:
            return STATUS_REJECTED
        if certificate_valid_for(cert_path, self.request.hostname):
            return STATUS_COMPLETE
        return STATUS_WAITING

    def _tracking_state(self, cert_path: Path) -> str | None:
        result = self.runner.run([self.getcert_bin, "list", "-f", str(cert_path)], check=False)
        output = result.stdout or ""
        if self.request.verbose and self.console is not None and output:
            say(self.console, output.rstrip())
        if result.returncode != 0:
            return None
        match = _TRACKING_STATUS.search(output)
        if match is None:
            return None
        LOGGER.debug("certmonger reports %s for %s", match.group(1), cert_path)
        return match.group(1)


def certificate_valid_for(path: Path, hostname: str, *, now: datetime | None = None) -> bool:
    """Return ``True`` when *path* holds an unexpired certificate for *hostname*."""
    if not path.exists():
        return False
    try:
        certificate = x509.load_pem_x509_certificate(path.read_bytes())
    except ValueError:
        LOGGER.debug("ignoring unreadable certificate %s", path)
        return False
    current = now or datetime.now(UTC)
    if certificate.not_valid_after_utc <= current:
        return False
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return any(attribute.value == hostname for attribute in names)


__all__ = [
    "STATUS_COMPLETE",
    "STATUS_REJECTED",
    "STATUS_WAITING",
    "CertificateAuthority",
    "certificate_valid_for",
]

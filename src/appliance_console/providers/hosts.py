"""Hosts file and machine host name management."""
from __future__ import annotations

import socket
from dataclasses import dataclass, field
from pathlib import Path

from .command import CommandRunner

LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")


@dataclass(slots=True)
class HostsEntry:
    """A single address line of the hosts file."""

    address: str
    names: list[str]
    comment: str | None = None

    def render(self) -> str:
        """Return the line as written to the hosts file."""
        line = " ".join([self.address, *self.names])
        if self.comment:
            line = f"{line} #{self.comment}"
        return line


@dataclass(slots=True)
class HostsFile:
    """Edit the hosts file and the machine host name.

    Changes are staged in memory until :meth:`save` writes the file and
    applies the host name with ``hostnamectl``.
    """

    runner: CommandRunner
    hosts_path: Path = Path("/etc/hosts")
    hostname_path: Path = Path("/etc/hostname")
    hostnamectl_bin: str = "hostnamectl"
    _lines: list[HostsEntry | str] | None = field(default=None, init=False)
    _pending_hostname: str | None = field(default=None, init=False)

    @property
    def hostname(self) -> str:
        """Return the staged host name, else the one currently configured."""
        if self._pending_hostname:
            return self._pending_hostname
        if self.hostname_path.exists():
            configured = self.hostname_path.read_text(encoding="utf-8").strip()
            if configured:
                return configured
        return socket.gethostname()

    def set_hostname(self, name: str) -> None:
        """Stage *name* as the machine host name."""
        self._pending_hostname = name

    def set_loopback_hostname(self, name: str) -> None:
        """Make *name* the first alias of every loopback address."""
        lines = self._load()
        for address in LOOPBACK_ADDRESSES:
            entry = next(
                (line for line in lines if isinstance(line, HostsEntry) and line.address == address),
                None,
            )
            if entry is None:
                lines.append(HostsEntry(address=address, names=[name]))
                continue
            entry.names = [name, *[existing for existing in entry.names if existing != name]]

    def entries(self) -> list[HostsEntry]:
        """Return the parsed address lines."""
        return [line for line in self._load() if isinstance(line, HostsEntry)]

    def save(self) -> None:
        """Write the hosts file and apply any staged host name."""
        if self._lines is not None:
            rendered = [
                line.render() if isinstance(line, HostsEntry) else line for line in self._lines
            ]
            self.hosts_path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        if self._pending_hostname:
            self.runner.run([self.hostnamectl_bin, "set-hostname", self._pending_hostname])

    # ------------------------------------------------------------------
    def _load(self) -> list[HostsEntry | str]:
        if self._lines is None:
            text = ""
            if self.hosts_path.exists():
                text = self.hosts_path.read_text(encoding="utf-8")
            self._lines = [_parse_line(raw) for raw in text.splitlines()]
        return self._lines


def _parse_line(raw: str) -> HostsEntry | str:
    content, hash_mark, comment = raw.partition("#")
    tokens = content.split()
    if not tokens:
        return raw
    return HostsEntry(
        address=tokens[0],
        names=tokens[1:],
        comment=comment if hash_mark else None,
    )


__all__ = ["HostsEntry", "HostsFile"]

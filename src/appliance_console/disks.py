"""Disk token resolution.

A disk token is what the user passes to ``--dbdisk``, ``--logdisk`` or
``--tmpdisk``: empty (no disk), the literal ``auto`` (first disk without
partitions) or an explicit device path.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

AUTO_TOKEN = "auto"


@dataclass(frozen=True)
class Disk:
    """A local block device as reported by the disk enumerator."""

    path: str
    partitions: tuple[str, ...] = field(default_factory=tuple)


class DiskEnumerator(Protocol):
    """Lists the local disks in a stable order."""

    def local(self) -> Sequence[Disk]:
        """Return all local disks."""


@dataclass(slots=True)
class DiskResolver:
    """Map disk tokens onto concrete :class:`Disk` records."""

    enumerator: DiskEnumerator

    def resolve(self, token: str | None) -> Disk | None:
        """Return the disk identified by *token*, or ``None`` when nothing matches."""
        if token is None or not token.strip():
            return None
        if token == AUTO_TOKEN:
            return self.auto_candidate()
        return self.by_path(token)

    def auto_candidate(self) -> Disk | None:
        """Return the first disk without partitions."""
        for disk in self.enumerator.local():
            if not disk.partitions:
                return disk
        return None

    def by_path(self, path: str) -> Disk | None:
        """Return the disk whose path equals *path*."""
        for disk in self.enumerator.local():
            if disk.path == path:
                return disk
        return None

    def describe_miss(self, token: str | None) -> list[str]:
        """Return the diagnostic lines printed when *token* did not resolve."""
        candidate = self.auto_candidate()
        if candidate is None:
            return ["no disks with a free partition"]
        return [
            f"could not find disk {token}",
            f"if you pass auto, it will choose: {candidate.path}",
        ]


__all__ = ["AUTO_TOKEN", "Disk", "DiskEnumerator", "DiskResolver"]

"""Local disk enumeration via ``lsblk``."""
from __future__ import annotations

import json
from dataclasses import dataclass

from ..disks import Disk
from ..errors import ConsoleError
from .command import CommandRunner


@dataclass(slots=True)
class LsblkDiskEnumerator:
    """List whole disks (and their partitions) in ``lsblk`` order."""

    runner: CommandRunner
    lsblk_bin: str = "lsblk"

    def local(self) -> list[Disk]:
        """Return every block device of type ``disk``."""
        result = self.runner.run([self.lsblk_bin, "--json", "--paths", "--output", "NAME,TYPE"])
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ConsoleError(f"Unable to parse {self.lsblk_bin} output: {exc}") from exc
        devices = payload.get("blockdevices") if isinstance(payload, dict) else None
        if not isinstance(devices, list):
            return []
        disks: list[Disk] = []
        for device in devices:
            if not isinstance(device, dict) or device.get("type") != "disk":
                continue
            children = device.get("children") or []
            partitions = tuple(
                str(child.get("name"))
                for child in children
                if isinstance(child, dict) and child.get("type") == "part"
            )
            disks.append(Disk(path=str(device.get("name")), partitions=partitions))
        return disks


__all__ = ["LsblkDiskEnumerator"]

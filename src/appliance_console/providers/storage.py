"""Dedicated disks for database, temporary and log storage."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..disks import Disk
from ..errors import ConsoleError
from .command import CommandRunner


class StorageConfigurationError(ConsoleError):
    """Raised when a disk cannot be prepared for use."""


def partition_path(disk_path: str, number: int = 1) -> str:
    """Return the device path of partition *number* on *disk_path*."""
    if disk_path[-1:].isdigit():
        return f"{disk_path}p{number}"
    return f"{disk_path}{number}"


@dataclass(slots=True)
class DiskVolume:
    """Partition, format and mount a whole disk, persisting it in fstab."""

    runner: CommandRunner
    fstab_path: Path = Path("/etc/fstab")
    parted_bin: str = "parted"
    mkfs_bin: str = "mkfs.xfs"
    mount_bin: str = "mount"
    filesystem: str = "xfs"

    def prepare(self, disk: Disk, mount_point: Path) -> str:
        """Turn *disk* into a single filesystem mounted at *mount_point*."""
        if disk.partitions:
            raise StorageConfigurationError(
                f"Disk {disk.path} already has partitions: {', '.join(disk.partitions)}"
            )
        self.runner.run(
            [
                self.parted_bin,
                "--script",
                disk.path,
                "mklabel",
                "msdos",
                "mkpart",
                "primary",
                self.filesystem,
                "0%",
                "100%",
            ]
        )
        partition = partition_path(disk.path)
        self.runner.run([self.mkfs_bin, "-f", partition])
        mount_point.mkdir(parents=True, exist_ok=True)
        self._add_fstab_entry(partition, mount_point)
        self.runner.run([self.mount_bin, str(mount_point)])
        return partition

    def _add_fstab_entry(self, partition: str, mount_point: Path) -> None:
        existing = ""
        if self.fstab_path.exists():
            existing = self.fstab_path.read_text(encoding="utf-8")
        kept = [
            line
            for line in existing.splitlines()
            if len(line.split()) < 2 or line.split()[1] != str(mount_point)
        ]
        kept.append(f"{partition} {mount_point} {self.filesystem} rw,noatime 0 0")
        self.fstab_path.write_text("\n".join(kept) + "\n", encoding="utf-8")


@dataclass(slots=True)
class TempStorageConfiguration:
    """Mount a disk as the application's temporary storage."""

    disk: Disk
    volume: DiskVolume
    mount_point: Path = Path("/var/www/miq_tmp")

    def activate(self) -> str:
        """Prepare the disk and mount it at the temp mount point."""
        return self.volume.prepare(self.disk, self.mount_point)


@dataclass(slots=True)
class LogfileConfiguration:
    """Mount a disk as the application's log directory."""

    disk: Disk
    volume: DiskVolume
    mount_point: Path = Path("/var/www/miq/vmdb/log")

    def activate(self) -> str:
        """Prepare the disk and mount it at the log mount point."""
        return self.volume.prepare(self.disk, self.mount_point)


__all__ = [
    "DiskVolume",
    "LogfileConfiguration",
    "StorageConfigurationError",
    "TempStorageConfiguration",
    "partition_path",
]

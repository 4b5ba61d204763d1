"""Systemd-backed service controller."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass

from .command import CommandRunner


@dataclass(slots=True)
class ServiceController:
    """Start, stop and query OS services through ``systemctl``."""

    runner: CommandRunner
    systemctl_bin: str = "systemctl"

    def unit_name(self, service: str) -> str:
        """Return the systemd unit name for *service*."""
        if "." in service:
            return service
        return f"{service}.service"

    def enable(self, service: str) -> subprocess.CompletedProcess[str]:
        """Enable the service unit."""
        return self._systemctl("enable", service)

    def disable(self, service: str) -> subprocess.CompletedProcess[str]:
        """Disable the service unit."""
        return self._systemctl("disable", service)

    def start(self, service: str) -> subprocess.CompletedProcess[str]:
        """Start the service unit."""
        return self._systemctl("start", service)

    def stop(self, service: str) -> subprocess.CompletedProcess[str]:
        """Stop the service unit."""
        return self._systemctl("stop", service)

    def restart(self, service: str) -> subprocess.CompletedProcess[str]:
        """Restart the service unit."""
        return self._systemctl("restart", service)

    def running(self, service: str) -> bool:
        """Return ``True`` when ``systemctl is-active`` reports the unit active."""
        result = self._systemctl("is-active", service, check=False)
        return result.returncode == 0

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        service: str,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args = [self.systemctl_bin, command, self.unit_name(service)]
        return self.runner.run(args, check=check)


__all__ = ["ServiceController"]

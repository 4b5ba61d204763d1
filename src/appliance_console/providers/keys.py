"""Encryption key (v2_key) creation and retrieval."""
from __future__ import annotations

import base64
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path

import yaml
from rich.console import Console

from ..collaborators import KeyRequest
from ..errors import CommandResultError
from ..outcome import say
from .command import CommandRunner

LOGGER = logging.getLogger(__name__)

KEY_ALGORITHM = "aes-256-cbc"
KEY_BYTES = 32
REMOTE_KEY_PATH = "/var/www/miq/vmdb/certs/v2_key"


@dataclass(slots=True)
class KeyConfiguration:
    """Create a fresh key or copy an existing one from another appliance.

    An installed key is left alone unless the request forces replacement. The
    new key is staged next to the destination and moved into place only once
    it is complete.
    """

    request: KeyRequest
    key_path: Path
    runner: CommandRunner
    console: Console
    scp_bin: str = "scp"
    sshpass_bin: str = "sshpass"
    remote_key_path: str = REMOTE_KEY_PATH

    @property
    def action(self) -> str:
        """Return ``create`` or ``fetch``."""
        return self.request.action

    @property
    def staged_path(self) -> Path:
        """Return the temporary location used while producing the key."""
        return self.key_path.with_name(f"{self.key_path.name}.new")

    def key_exist(self) -> bool:
        """Return ``True`` when a key file is installed."""
        return self.key_path.exists()

    def activate(self) -> bool:
        """Produce the key; ``False`` when it could not be created or fetched."""
        if self.key_exist() and not self.request.force:
            return True
        staged = self.staged_path
        try:
            staged.parent.mkdir(parents=True, exist_ok=True)
            if self.action == "fetch":
                produced = self._fetch(staged)
            else:
                produced = self._create(staged)
        except (OSError, CommandResultError) as exc:
            say(self.console, f"Failed to {self.action} encryption key: {exc}")
            produced = False
        if not produced:
            staged.unlink(missing_ok=True)
            return False
        staged.chmod(0o400)
        staged.replace(self.key_path)
        LOGGER.debug("installed encryption key at %s", self.key_path)
        return True

    # ------------------------------------------------------------------
    def _create(self, destination: Path) -> bool:
        payload = {
            "algorithm": KEY_ALGORITHM,
            "key": base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii"),
        }
        destination.write_text(yaml.safe_dump(payload, default_flow_style=False), encoding="utf-8")
        return True

    def _fetch(self, destination: Path) -> bool:
        if not self.request.host:
            say(self.console, "Failed to fetch encryption key: no host given")
            return False
        source = f"{self.request.login}@{self.request.host}:{self.remote_key_path}"
        args = [self.scp_bin, "-o", "StrictHostKeyChecking=no", source, str(destination)]
        env: dict[str, str] | None = None
        if self.request.password:
            args = [self.sshpass_bin, "-e", *args]
            env = {"SSHPASS": self.request.password}
        self.runner.run(args, env=env)
        return destination.exists()


__all__ = ["KeyConfiguration"]

"""Spawn external commands with captured output."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence

from ..errors import CommandResultError

LOGGER = logging.getLogger(__name__)


class CommandRunner:
    """Run commands and raise :class:`CommandResultError` on failure."""

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run *args*, returning the completed process.

        ``env`` entries are added to the inherited environment, which keeps
        secrets (``PGPASSWORD``, ``SSHPASS``) off the command line.
        """
        command = [str(arg) for arg in args]
        LOGGER.debug("running %s", " ".join(command[:2]))
        merged_env = None
        if env:
            merged_env = dict(os.environ)
            merged_env.update(env)
        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                check=False,
                input=input_text,
                env=merged_env,
            )
        except FileNotFoundError as exc:
            missing = subprocess.CompletedProcess(command, returncode=127, stdout="", stderr=str(exc))
            raise CommandResultError(f"{command[0]} not found: {exc}", missing) from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            prefix = " ".join(command[:2])
            raise CommandResultError(
                f"{prefix} failed (exit {result.returncode}): {message}",
                result,
            )
        return result


def run_as(user: str, args: Sequence[str], runuser_bin: str = "runuser") -> list[str]:
    """Return *args* prefixed so that they run as the OS account *user*."""
    return [runuser_bin, "-u", user, "--", *args]


__all__ = ["CommandRunner", "run_as"]

"""Failure types surfaced to the outcome translator.

Two kinds of failure reach the top of a run:

``DOMAIN``
    Validation failures and collaborator-reported failures. They carry a
    terse, user-facing message and end the process with exit status 1.

``EXECUTION``
    A spawned command exited with a non-zero status. The captured output is
    printed before the failure propagates so the traceback stays available.
"""
from __future__ import annotations

import subprocess
from enum import Enum


class FailureKind(Enum):
    """Discriminator for :class:`ConsoleError`."""

    DOMAIN = "domain"
    EXECUTION = "execution"


class ConsoleError(Exception):
    """Failure raised by intent resolution, dispatch or a collaborator."""

    kind: FailureKind = FailureKind.DOMAIN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CommandResultError(ConsoleError):
    """Raised when a spawned command exits with a non-zero status."""

    kind = FailureKind.EXECUTION

    def __init__(self, message: str, result: subprocess.CompletedProcess[str]) -> None:
        super().__init__(message)
        self.result = result

    @property
    def output(self) -> str:
        """Return the captured standard output."""
        return getattr(self.result, "stdout", "") or ""

    @property
    def error(self) -> str:
        """Return the captured standard error."""
        return getattr(self.result, "stderr", "") or ""


class KeyFailure(Exception):
    """Raised when the encryption key could not be produced.

    The message has already been printed and logged; the run stops with
    exit status 1 without passing through the outcome translator.
    """


__all__ = ["CommandResultError", "ConsoleError", "FailureKind", "KeyFailure"]

"""Turn a failed run into console output and an exit status."""
from __future__ import annotations

from typing import assert_never

from rich.console import Console

from .errors import CommandResultError, ConsoleError, FailureKind
from .exit_codes import ExitCode


def say(console: Console, message: str = "") -> None:
    """Print *message* verbatim (no markup, no highlighting)."""
    console.print(message, markup=False, highlight=False, soft_wrap=True)


def translate_failure(exc: ConsoleError, console: Console) -> ExitCode:
    """Report *exc* and return the exit code for a domain failure.

    Execution failures print the captured stdout and stderr of the failed
    command and are then re-raised so the process ends with the traceback.
    """
    kind = exc.kind
    if kind is FailureKind.DOMAIN:
        say(console, exc.message)
        say(console)
        return ExitCode.FAILURE
    if kind is FailureKind.EXECUTION:
        output = exc.output if isinstance(exc, CommandResultError) else ""
        error = exc.error if isinstance(exc, CommandResultError) else exc.message
        say(console, output)
        say(console, error)
        say(console)
        raise exc
    assert_never(kind)


__all__ = ["say", "translate_failure"]

"""Typed task failures surfaced to the CLI boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING

from conductr_tasks.constants import CLI_INSTALL_URL

if TYPE_CHECKING:
    from collections.abc import Sequence


class ConductrTaskError(RuntimeError):
    """Base error for task failures; carries the process exit code to report."""

    exit_code: int = 1


class InvalidArgumentError(ConductrTaskError, ValueError):
    """Raised when a sub-command or flag value is malformed.

    Rejected before any external process is spawned.
    """

    exit_code = 2


class ExecutableNotFoundError(ConductrTaskError):
    """Raised when an external CLI is missing or cannot be spawned."""

    def __init__(self, executable: str, *, detail: str | None = None) -> None:
        self.executable = executable
        self.detail = detail
        message = (
            f"The conductr-cli has not been installed ({executable!r} could not be started). "
            f"Follow the instructions on {CLI_INSTALL_URL} to install the CLI."
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NonZeroExitError(ConductrTaskError):
    """Raised when an external process exits with a non-zero status."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        message: str | None = None,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        # A negative return code means the child was killed by signal -returncode.
        self.exit_code = 128 - returncode if returncode < 0 else returncode
        super().__init__(message or f"exited with {returncode}")


class ReadinessTimeoutError(ConductrTaskError, TimeoutError):
    """Raised when a readiness predicate is not satisfied before the deadline."""

    def __init__(self, *, target: str, timeout_seconds: float, elapsed_seconds: float) -> None:
        self.target = target
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"{target} has not been started within {_format_seconds(timeout_seconds)} seconds!"
        )


class InstallError(ConductrTaskError):
    """Raised when the sandbox cannot be restarted or the bundles cannot be deployed or planned."""


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


__all__ = [
    "ConductrTaskError",
    "ExecutableNotFoundError",
    "InstallError",
    "InvalidArgumentError",
    "NonZeroExitError",
    "ReadinessTimeoutError",
]

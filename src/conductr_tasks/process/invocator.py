"""Run external CLIs, stream their output to a logger, and surface exit codes."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING

from conductr_tasks.errors import ExecutableNotFoundError, NonZeroExitError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_DEFAULT_LOGGER_NAME = "conductr_tasks.process"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Outcome of one external process invocation."""

    command: tuple[str, ...]
    returncode: int
    stdout_lines: tuple[str, ...]
    stderr_lines: tuple[str, ...]
    duration_ms: float

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class ProcessInvocator:
    """Execute ``command [args...]`` on the calling thread and block until exit.

    Stdout lines are logged at INFO and stderr lines at ERROR on the supplied
    logger while the process runs. The child inherits the invoking process's
    environment, extended with ``env_overrides``.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger | None = None,
        env_overrides: Mapping[str, str] | None = None,
        cwd: Path | str | None = None,
    ) -> None:
        self._logger = logger if logger is not None else logging.getLogger(_DEFAULT_LOGGER_NAME)
        self._env_overrides = dict(env_overrides or {})
        self._cwd = Path(cwd) if cwd is not None else None

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        message: str | None = None,
        quiet: bool = False,
    ) -> ProcessResult:
        """Run ``command``; raise :class:`NonZeroExitError` on failure when ``check``."""

        argv = _normalize_command(command)
        self._logger.debug("running %s", " ".join(argv))
        started = time.perf_counter()
        try:
            process = subprocess.Popen(
                list(argv),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=self._cwd,
                env=self._build_environment(),
            )
        except FileNotFoundError as exc:
            raise ExecutableNotFoundError(argv[0]) from exc
        except OSError as exc:
            raise ExecutableNotFoundError(argv[0], detail=str(exc)) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        with process:
            assert process.stdout is not None
            assert process.stderr is not None
            stderr_pump = threading.Thread(
                target=self._pump,
                args=(process.stderr, stderr_lines, logging.ERROR, quiet),
                name=f"stderr-{argv[0]}",
                daemon=True,
            )
            stderr_pump.start()
            self._pump(process.stdout, stdout_lines, logging.INFO, quiet)
            stderr_pump.join()
            returncode = process.wait()

        result = ProcessResult(
            command=argv,
            returncode=returncode,
            stdout_lines=tuple(stdout_lines),
            stderr_lines=tuple(stderr_lines),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        self._logger.debug("%s exited with %d", argv[0], returncode)
        if check and returncode != 0:
            raise NonZeroExitError(command=argv, returncode=returncode, message=message)
        return result

    def status(self, command: Sequence[str]) -> int:
        """Run silently and return only the exit code."""

        return self.run(command, check=False, quiet=True).returncode

    def lines(self, command: Sequence[str]) -> list[str]:
        """Run silently and return stdout lines regardless of the exit code."""

        return list(self.run(command, check=False, quiet=True).stdout_lines)

    def verify_installed(self, executable: str) -> str:
        """Return the resolved executable path or raise :class:`ExecutableNotFoundError`."""

        search_path = self._build_environment().get("PATH")
        resolved = shutil.which(executable, path=search_path)
        if resolved is None:
            raise ExecutableNotFoundError(executable)
        return resolved

    def _pump(self, stream: IO[str], sink: list[str], level: int, quiet: bool) -> None:
        for raw_line in stream:
            line = raw_line.rstrip("\r\n")
            sink.append(line)
            if not quiet:
                self._logger.log(level, line)

    def _build_environment(self) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self._env_overrides)
        return merged


def _normalize_command(command: Sequence[str]) -> tuple[str, ...]:
    if isinstance(command, str) or not isinstance(command, (list, tuple)):
        raise ValueError("command must be a sequence of strings")
    normalized = tuple(str(item) for item in command)
    if not normalized or not normalized[0].strip():
        raise ValueError("command must not be empty")
    return normalized


__all__ = ["ProcessInvocator", "ProcessResult"]

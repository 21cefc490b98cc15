"""Output rendering for the conductr-tasks CLI.

Plain-text lines on stdout; status markers are colored with ANSI escapes only
when stdout is a terminal and neither ``NO_COLOR`` nor ``--no-color`` is set.
"""

from __future__ import annotations

import os
import sys
from typing import IO, Final

_GREEN: Final[str] = "\033[32m"
_RED: Final[str] = "\033[31m"
_BOLD: Final[str] = "\033[1m"
_RESET: Final[str] = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: IO[str]) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces deterministic plain-text output for task progress, diagnostics
    and completion candidates.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def heading(self, text: str) -> None:
        self._print(self._paint(text, _BOLD))

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def ok(self, label: str) -> None:
        """Print a passing diagnostic check."""

        self._print(f"  {self._paint('OK', _GREEN)}  {label}")

    def fail(self, label: str) -> None:
        """Print a failing diagnostic check."""

        self._print(f"  {self._paint('FAIL', _RED)}  {label}")

    def _paint(self, text: str, code: str) -> str:
        if not self._color:
            return text
        return f"{code}{text}{_RESET}"

    def _print(self, line: str) -> None:
        print(line, file=self._stream, flush=True)


def create_renderer(
    *,
    no_color: bool = False,
    stream: IO[str] | None = None,
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]

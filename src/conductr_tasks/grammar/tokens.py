"""Token-level rules shared by the ``sandbox`` and ``conduct`` grammars."""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable, Sequence
from typing import Final

from conductr_tasks.errors import InvalidArgumentError

PAIR_SEPARATOR: Final[str] = "="

_VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9][0-9A-Za-z.\-]*$")
_INSTANCES_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\d+)(?::(\d+))?$")


def tokenize(raw: str | Sequence[str]) -> tuple[str, ...]:
    """Split raw sub-command text with shell quoting rules; pass sequences through."""

    if isinstance(raw, str):
        try:
            return tuple(shlex.split(raw))
        except ValueError as exc:
            raise InvalidArgumentError(f"unable to tokenize {raw!r}: {exc}") from exc
    return tuple(str(item) for item in raw)


def is_flag(token: str) -> bool:
    return token.startswith("-") and len(token) > 1


def is_version_number(token: str) -> bool:
    return _VERSION_PATTERN.match(token) is not None


def split_inline(token: str) -> tuple[str, str | None]:
    """Split ``--flag=value`` into its parts; other tokens return ``(token, None)``."""

    if token.startswith("--") and PAIR_SEPARATOR in token:
        flag, _, value = token.partition(PAIR_SEPARATOR)
        return flag, value
    return token, None


def parse_pair(token: str, flag: str) -> tuple[str, str]:
    key, separator, value = token.partition(PAIR_SEPARATOR)
    if not separator or not key:
        raise InvalidArgumentError(
            f"Invalid key=value string {token!r}. Format: {flag} key=value"
        )
    return key, value


def parse_int(token: str, flag: str, *, placeholder: str = "<number>", minimum: int = 0) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Expected a number for {flag} but got {token!r}. Format: {flag} {placeholder}"
        ) from exc
    if value < minimum:
        raise InvalidArgumentError(
            f"{flag} must be >= {minimum} but got {value}. Format: {flag} {placeholder}"
        )
    return value


def parse_instances(token: str, flag: str) -> tuple[int, int | None]:
    match = _INSTANCES_PATTERN.match(token)
    if match is None:
        raise InvalidArgumentError(
            f"Invalid instance count {token!r}. "
            f"Format: {flag} <nr-of-cores>:<nr-of-agents> | <nr-of-agents>"
        )
    first, second = match.groups()
    return int(first), (int(second) if second is not None else None)


def with_flag(flag: str, values: Iterable[object]) -> list[str]:
    """Render ``values`` as flag arguments for the external CLIs.

    Values starting with ``-`` are joined as ``flag=value`` since the external
    tools parse with argparse, which rejects a dash-leading separate value.
    """

    rendered: list[str] = []
    for value in values:
        text = str(value)
        if text.startswith("-"):
            rendered.append(f"{flag}{PAIR_SEPARATOR}{text}")
        else:
            rendered.extend((flag, text))
    return rendered


class TokenStream:
    """Cursor over a token tuple for greedy left-to-right parsing."""

    def __init__(self, tokens: Sequence[str]) -> None:
        self._tokens = tuple(tokens)
        self._index = 0

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self._tokens)

    def peek(self) -> str | None:
        if self.exhausted:
            return None
        return self._tokens[self._index]

    def next(self) -> str:
        if self.exhausted:
            raise InvalidArgumentError("unexpected end of input")
        token = self._tokens[self._index]
        self._index += 1
        return token

    def value_for(self, flag: str, inline: str | None, *, placeholder: str) -> str:
        """Return the flag's value from ``--flag=value`` or the following token."""

        if inline is not None:
            if not inline:
                raise InvalidArgumentError(f"Missing value. Format: {flag} {placeholder}")
            return inline
        token = self.peek()
        if token is None or is_flag(token):
            raise InvalidArgumentError(f"Missing value. Format: {flag} {placeholder}")
        return self.next()

    def take_non_flags(self) -> list[str]:
        taken: list[str] = []
        while not self.exhausted:
            token = self.peek()
            if token is None or is_flag(token):
                break
            taken.append(self.next())
        return taken


__all__ = [
    "PAIR_SEPARATOR",
    "TokenStream",
    "is_flag",
    "is_version_number",
    "parse_instances",
    "parse_int",
    "parse_pair",
    "split_inline",
    "tokenize",
    "with_flag",
]

"""Grammar for the ``conduct`` task.

Every sub-command declares its own option set and positional slots, so the
grammar stays unambiguous. Options and positionals are consumed greedily left
to right and may appear in either order; the emitted argument list keeps the
options in their original order followed by the positionals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

from conductr_tasks.errors import InvalidArgumentError
from conductr_tasks.grammar.tokens import (
    TokenStream,
    is_flag,
    parse_int,
    split_inline,
    tokenize,
)

if TYPE_CHECKING:
    from collections.abc import Sequence


class ValueKind(str, Enum):
    """Kind of value an option consumes."""

    NONE = "none"
    NUMBER = "number"
    STRING = "string"


@dataclass(frozen=True, slots=True)
class OptionSpec:
    names: tuple[str, ...]
    kind: ValueKind = ValueKind.NONE
    placeholder: str = ""


@dataclass(frozen=True, slots=True)
class PositionalSpec:
    name: str
    required: bool = True
    choices: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    options: tuple[OptionSpec, ...]
    positionals: tuple[PositionalSpec, ...] = ()
    usage: str = ""

    def option(self, flag: str) -> OptionSpec | None:
        for spec in self.options:
            if flag in spec.names:
                return spec
        return None

    @property
    def flags(self) -> tuple[str, ...]:
        return tuple(name for spec in self.options for name in spec.names)


HELP_FLAGS: Final[frozenset[str]] = frozenset({"-h", "--help"})

COMMON_OPTIONS: Final[tuple[OptionSpec, ...]] = (
    OptionSpec(("-h", "--help")),
    OptionSpec(("-q",)),
    OptionSpec(("-v", "--verbose")),
    OptionSpec(("--long-ids",)),
    OptionSpec(("--local-connection",)),
    OptionSpec(("--api-version",), ValueKind.NUMBER, "<api-version>"),
    OptionSpec(("-i", "--ip"), ValueKind.STRING, "<ip>"),
    OptionSpec(("-p", "--port"), ValueKind.NUMBER, "<port>"),
    OptionSpec(("--settings-dir",), ValueKind.STRING, "<settings-dir>"),
    OptionSpec(("--custom-settings-file",), ValueKind.STRING, "<custom-settings-file>"),
    OptionSpec(("--custom-plugins-dir",), ValueKind.STRING, "<custom-plugins-dir>"),
)

_WAIT_OPTIONS: Final[tuple[OptionSpec, ...]] = (
    OptionSpec(("--wait-timeout",), ValueKind.NUMBER, "<wait-timeout>"),
    OptionSpec(("--no-wait",)),
)

_LOG_OPTIONS: Final[tuple[OptionSpec, ...]] = (
    OptionSpec(("--date",)),
    OptionSpec(("--utc",)),
    OptionSpec(("-n", "--lines"), ValueKind.NUMBER, "<lines>"),
)

_BUNDLE: Final[PositionalSpec] = PositionalSpec("<bundle>")
_BUNDLE_ID: Final[PositionalSpec] = PositionalSpec("<bundle-id>")

PROTOCOL_FAMILIES: Final[tuple[str, ...]] = ("http", "tcp")


def _command(
    name: str,
    *extra: OptionSpec,
    positionals: tuple[PositionalSpec, ...] = (),
    usage: str | None = None,
) -> CommandSpec:
    return CommandSpec(
        name=name,
        options=(*COMMON_OPTIONS, *extra),
        positionals=positionals,
        usage=usage or f"Usage: conduct {name} --help",
    )


COMMANDS: Final[dict[str, CommandSpec]] = {
    "version": _command("version", usage="Usage: conduct version"),
    "load": _command(
        "load",
        OptionSpec(("--resolve-cache-dir",), ValueKind.STRING, "<resolve-cache-dir>"),
        *_WAIT_OPTIONS,
        positionals=(_BUNDLE, PositionalSpec("<configuration>", required=False)),
    ),
    "run": _command(
        "run",
        *_WAIT_OPTIONS,
        OptionSpec(("--scale",), ValueKind.NUMBER, "<scale>"),
        OptionSpec(("--affinity",), ValueKind.STRING, "<bundle-id>"),
        positionals=(_BUNDLE_ID,),
        usage="Usage: conduct run (start) --help",
    ),
    "stop": _command("stop", *_WAIT_OPTIONS, positionals=(_BUNDLE_ID,)),
    "unload": _command("unload", *_WAIT_OPTIONS, positionals=(_BUNDLE_ID,)),
    "info": _command("info", positionals=(PositionalSpec("<bundle-id>", required=False),)),
    "service-names": _command("service-names", usage="Usage: conduct service-names"),
    "acls": _command(
        "acls",
        positionals=(PositionalSpec("<protocol-family>", choices=PROTOCOL_FAMILIES),),
    ),
    "events": _command("events", *_WAIT_OPTIONS, *_LOG_OPTIONS, positionals=(_BUNDLE_ID,)),
    "logs": _command("logs", *_WAIT_OPTIONS, *_LOG_OPTIONS, positionals=(_BUNDLE_ID,)),
    "deploy": _command(
        "deploy",
        *_WAIT_OPTIONS,
        OptionSpec(("--scheme",), ValueKind.STRING, "<scheme>"),
        OptionSpec(("--base-path",), ValueKind.STRING, "<base-path>"),
        positionals=(_BUNDLE_ID,),
    ),
    "members": _command("members", usage="Usage: conduct members"),
    "agents": _command("agents", usage="Usage: conduct agents"),
    "load-license": _command("load-license", usage="Usage: conduct load-license"),
}

COMMAND_ALIASES: Final[dict[str, str]] = {"start": "run"}

# A bare occurrence of these triggers ``conduct <cmd> --help``.
SUB_HELP_COMMANDS: Final[frozenset[str]] = frozenset(
    {"load", "run", "start", "stop", "unload", "events", "logs", "acls", "deploy"}
)


@dataclass(frozen=True, slots=True)
class ConductHelp:
    pass


@dataclass(frozen=True, slots=True)
class ConductSubtaskHelp:
    command: str


@dataclass(frozen=True, slots=True)
class ConductSubtaskSuccess:
    command: str
    args: tuple[str, ...]

    def argv(self) -> list[str]:
        return [self.command, *self.args]


ConductSubtask = ConductHelp | ConductSubtaskHelp | ConductSubtaskSuccess


def command_names() -> tuple[str, ...]:
    return (*COMMANDS, *COMMAND_ALIASES)


def resolve_command(word: str) -> CommandSpec | None:
    return COMMANDS.get(COMMAND_ALIASES.get(word, word))


def parse_conduct(raw: str | Sequence[str]) -> ConductSubtask:
    """Parse ``conduct`` sub-command text into a typed sub-command."""

    tokens = tokenize(raw)
    if not tokens or tokens[0] in HELP_FLAGS:
        if len(tokens) > 1:
            raise InvalidArgumentError("Usage: conduct --help")
        return ConductHelp()

    word, rest = tokens[0], tokens[1:]
    spec = resolve_command(word)
    if spec is None:
        return ConductHelp()
    if not rest and word in SUB_HELP_COMMANDS:
        return ConductSubtaskHelp(word)

    options, positionals = _parse_arguments(spec, rest)

    required = sum(1 for item in spec.positionals if item.required)
    if len(positionals) < required:
        if any(token in HELP_FLAGS for token in options):
            return ConductSubtaskHelp(word)
        missing = spec.positionals[len(positionals)].name
        raise InvalidArgumentError(f"Missing {missing}. {spec.usage}")

    return ConductSubtaskSuccess(spec.name, (*options, *positionals))


def _parse_arguments(spec: CommandSpec, tokens: Sequence[str]) -> tuple[list[str], list[str]]:
    stream = TokenStream(tokens)
    options: list[str] = []
    positionals: list[str] = []

    while not stream.exhausted:
        raw = stream.next()
        flag, inline = split_inline(raw)

        if not is_flag(flag):
            positionals.append(_positional(spec, len(positionals), raw))
            continue

        option = spec.option(flag)
        if option is None:
            raise InvalidArgumentError(f"Unknown flag {flag!r}. {spec.usage}")

        if option.kind is ValueKind.NONE:
            if inline is not None:
                raise InvalidArgumentError(f"{flag} does not take a value. {spec.usage}")
            options.append(flag)
            continue

        value = stream.value_for(flag, inline, placeholder=option.placeholder)
        if option.kind is ValueKind.NUMBER:
            value = str(parse_int(value, flag, placeholder=option.placeholder))
        options.extend((flag, value))

    return options, positionals


def _positional(spec: CommandSpec, index: int, token: str) -> str:
    if index >= len(spec.positionals):
        raise InvalidArgumentError(f"Unexpected argument {token!r}. {spec.usage}")
    slot = spec.positionals[index]
    if slot.choices and token not in slot.choices:
        allowed = ", ".join(slot.choices)
        raise InvalidArgumentError(
            f"Invalid {slot.name} {token!r}; expected one of: {allowed}. {spec.usage}"
        )
    return token


__all__ = [
    "COMMANDS",
    "COMMAND_ALIASES",
    "COMMON_OPTIONS",
    "CommandSpec",
    "ConductHelp",
    "ConductSubtask",
    "ConductSubtaskHelp",
    "ConductSubtaskSuccess",
    "OptionSpec",
    "PROTOCOL_FAMILIES",
    "PositionalSpec",
    "SUB_HELP_COMMANDS",
    "ValueKind",
    "command_names",
    "parse_conduct",
    "resolve_command",
]

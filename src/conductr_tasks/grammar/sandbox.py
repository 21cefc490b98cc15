"""Grammar for the ``sandbox`` task and reconstruction of ``sandbox run`` arguments."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Final

from conductr_tasks.errors import InvalidArgumentError
from conductr_tasks.grammar.tokens import (
    TokenStream,
    is_flag,
    is_version_number,
    parse_instances,
    parse_int,
    parse_pair,
    split_inline,
    tokenize,
    with_flag,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from typing import TypeAlias

    _FlagHandler: TypeAlias = Callable[
        ["RunArguments", TokenStream, str, str | None], "RunArguments"
    ]


class Flags:
    """Long flag names understood by ``sandbox run``."""

    IMAGE_VERSION: Final[str] = "--image-version"
    CONDUCTR_ROLE: Final[str] = "--conductr-role"
    ARG: Final[str] = "--arg"
    ARG_CORE: Final[str] = "--arg-core"
    ARG_AGENT: Final[str] = "--arg-agent"
    ENV: Final[str] = "--env"
    ENV_CORE: Final[str] = "--env-core"
    ENV_AGENT: Final[str] = "--env-agent"
    IMAGE: Final[str] = "--image"
    LOG_LEVEL: Final[str] = "--log-level"
    NR_OF_CONTAINERS: Final[str] = "--nr-of-containers"
    NR_OF_INSTANCES: Final[str] = "--nr-of-instances"
    PORT: Final[str] = "--port"
    FEATURE: Final[str] = "--feature"
    NO_DEFAULT_FEATURES: Final[str] = "--no-default-features"


SHORT_FLAGS: Final[dict[str, str]] = {
    "-r": Flags.CONDUCTR_ROLE,
    "-e": Flags.ENV,
    "-i": Flags.IMAGE,
    "-l": Flags.LOG_LEVEL,
    "-n": Flags.NR_OF_INSTANCES,
    "-p": Flags.PORT,
    "-f": Flags.FEATURE,
}

HELP_FLAGS: Final[frozenset[str]] = frozenset({"-h", "--help"})
RUN_COMMANDS: Final[frozenset[str]] = frozenset({"run", "start"})
SIMPLE_COMMANDS: Final[tuple[str, ...]] = ("logs", "ps", "stop", "version")
SUB_HELP_COMMANDS: Final[tuple[str, ...]] = (
    "version",
    "run",
    "start",
    "restart",
    "stop",
    "ps",
    "logs",
)
RUN_USAGE: Final[str] = "Usage: sandbox run (start) --help"


@dataclass(frozen=True, slots=True)
class RunArguments:
    """Accumulated ``sandbox run`` options."""

    image_version: str | None = None
    image: str | None = None
    nr_of_containers: int | None = None
    nr_of_instances: tuple[int, int | None] | None = None
    conductr_roles: tuple[tuple[str, ...], ...] = ()
    envs: Mapping[str, str] = field(default_factory=dict)
    envs_core: Mapping[str, str] = field(default_factory=dict)
    envs_agent: Mapping[str, str] = field(default_factory=dict)
    args: tuple[str, ...] = ()
    args_core: tuple[str, ...] = ()
    args_agent: tuple[str, ...] = ()
    log_level: str | None = None
    ports: tuple[int, ...] = ()
    features: tuple[tuple[str, ...], ...] = ()
    no_default_features: bool = False

    def with_ports(self, extra: Sequence[int]) -> RunArguments:
        """Return a copy whose ports also include ``extra`` (order kept, no duplicates)."""

        merged = list(self.ports)
        for port in extra:
            if port not in merged:
                merged.append(port)
        return replace(self, ports=tuple(merged))


@dataclass(frozen=True, slots=True)
class SandboxHelp:
    pass


@dataclass(frozen=True, slots=True)
class SandboxSubtaskHelp:
    command: str


@dataclass(frozen=True, slots=True)
class SandboxRunSubtask:
    args: RunArguments


@dataclass(frozen=True, slots=True)
class SandboxLogsSubtask:
    pass


@dataclass(frozen=True, slots=True)
class SandboxPsSubtask:
    pass


@dataclass(frozen=True, slots=True)
class SandboxStopSubtask:
    pass


@dataclass(frozen=True, slots=True)
class SandboxVersionSubtask:
    pass


SandboxSubtask = (
    SandboxHelp
    | SandboxSubtaskHelp
    | SandboxRunSubtask
    | SandboxLogsSubtask
    | SandboxPsSubtask
    | SandboxStopSubtask
    | SandboxVersionSubtask
)

_SIMPLE_VARIANTS: Final[dict[str, SandboxSubtask]] = {
    "logs": SandboxLogsSubtask(),
    "ps": SandboxPsSubtask(),
    "stop": SandboxStopSubtask(),
    "version": SandboxVersionSubtask(),
}


def parse_sandbox(raw: str | Sequence[str]) -> SandboxSubtask:
    """Parse ``sandbox`` sub-command text into a typed sub-command."""

    tokens = tokenize(raw)
    if not tokens or tokens[0] in HELP_FLAGS:
        if len(tokens) > 1:
            raise InvalidArgumentError("Usage: sandbox --help")
        return SandboxHelp()

    command, rest = tokens[0], tokens[1:]
    if command in SUB_HELP_COMMANDS and len(rest) == 1 and rest[0] in HELP_FLAGS:
        return SandboxSubtaskHelp(command)

    if command in RUN_COMMANDS:
        if not rest:
            return SandboxSubtaskHelp(command)
        return SandboxRunSubtask(parse_run_arguments(rest))

    if command in _SIMPLE_VARIANTS:
        if rest:
            raise InvalidArgumentError(f"Usage: sandbox {command}")
        return _SIMPLE_VARIANTS[command]

    return SandboxHelp()


def parse_run_arguments(tokens: Sequence[str]) -> RunArguments:
    """Fold ``sandbox run`` flag tokens, greedily and left to right."""

    stream = TokenStream(tokens)
    result = RunArguments()
    while not stream.exhausted:
        raw = stream.next()
        flag, inline = split_inline(raw)
        if not is_flag(flag):
            if is_version_number(raw):
                result = replace(result, image_version=raw)
                continue
            raise InvalidArgumentError(f"Unexpected argument {raw!r}. {RUN_USAGE}")

        canonical = SHORT_FLAGS.get(flag, flag)
        handler = _RUN_FLAG_HANDLERS.get(canonical)
        if handler is None:
            raise InvalidArgumentError(f"Unknown flag {flag!r}. {RUN_USAGE}")
        result = handler(result, stream, canonical, inline)
    return result


def sandbox_run_argv(args: RunArguments) -> list[str]:
    """Reconstruct the ``sandbox run`` argument list from folded arguments."""

    argv: list[str] = ["run"]
    if args.image_version is not None:
        argv.append(args.image_version)
    if args.image is not None:
        argv.extend(with_flag(Flags.IMAGE, [args.image]))
    if args.nr_of_containers is not None:
        argv.extend(with_flag(Flags.NR_OF_CONTAINERS, [args.nr_of_containers]))
    if args.nr_of_instances is not None:
        first, second = args.nr_of_instances
        instances = f"{first}:{second}" if second is not None else str(first)
        argv.extend(with_flag(Flags.NR_OF_INSTANCES, [instances]))
    if args.no_default_features:
        argv.append(Flags.NO_DEFAULT_FEATURES)
    for feature in args.features:
        argv.extend((Flags.FEATURE, *feature))
    argv.extend(with_flag(Flags.PORT, args.ports))
    if args.log_level is not None:
        argv.extend(with_flag(Flags.LOG_LEVEL, [args.log_level]))
    for roles in args.conductr_roles:
        if roles:
            argv.extend((Flags.CONDUCTR_ROLE, *roles))
    argv.extend(with_flag(Flags.ENV, _pairs(args.envs)))
    argv.extend(with_flag(Flags.ENV_CORE, _pairs(args.envs_core)))
    argv.extend(with_flag(Flags.ENV_AGENT, _pairs(args.envs_agent)))
    argv.extend(with_flag(Flags.ARG, args.args))
    argv.extend(with_flag(Flags.ARG_CORE, args.args_core))
    argv.extend(with_flag(Flags.ARG_AGENT, args.args_agent))
    return argv


def _pairs(mapping: Mapping[str, str]) -> list[str]:
    return [f"{key}={value}" for key, value in mapping.items()]


def _no_inline(flag: str, inline: str | None) -> None:
    if inline is not None:
        raise InvalidArgumentError(f"{flag} does not take a value. {RUN_USAGE}")


def _image_version(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    value = stream.value_for(flag, inline, placeholder="<conductr_version>")
    if not is_version_number(value):
        raise InvalidArgumentError(
            f"Invalid version {value!r}. Format: {flag} <conductr_version>"
        )
    return replace(current, image_version=value)


def _conductr_role(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    roles = [inline] if inline else []
    roles.extend(stream.take_non_flags())
    if not roles:
        raise InvalidArgumentError(f"Missing role. Format: {flag} role1 role2")
    unique = tuple(dict.fromkeys(roles))
    return replace(current, conductr_roles=(*current.conductr_roles, unique))


def _env_handler(attribute: str) -> _FlagHandler:
    def handle(
        current: RunArguments, stream: TokenStream, flag: str, inline: str | None
    ) -> RunArguments:
        token = stream.value_for(flag, inline, placeholder="key=value")
        key, value = parse_pair(token, flag)
        updated = {**getattr(current, attribute), key: value}
        return replace(current, **{attribute: updated})

    return handle


def _arg_handler(attribute: str) -> _FlagHandler:
    def handle(
        current: RunArguments, stream: TokenStream, flag: str, inline: str | None
    ) -> RunArguments:
        value = stream.value_for(flag, inline, placeholder="<argument>")
        return replace(current, **{attribute: (*getattr(current, attribute), value)})

    return handle


def _image(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    return replace(current, image=stream.value_for(flag, inline, placeholder="<conductr_image>"))


def _log_level(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    return replace(current, log_level=stream.value_for(flag, inline, placeholder="<log-level>"))


def _nr_of_containers(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    token = stream.value_for(flag, inline, placeholder="<nr-of-containers>")
    return replace(
        current,
        nr_of_containers=parse_int(token, flag, placeholder="<nr-of-containers>"),
    )


def _nr_of_instances(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    token = stream.value_for(
        flag, inline, placeholder="<nr-of-cores>:<nr-of-agents> | <nr-of-agents>"
    )
    return replace(current, nr_of_instances=parse_instances(token, flag))


def _port(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    token = stream.value_for(flag, inline, placeholder="<port>")
    return current.with_ports([parse_int(token, flag, placeholder="<port>")])


def _feature(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    name = stream.value_for(flag, inline, placeholder="<feature> <feature_arg>...")
    feature = (name, *stream.take_non_flags())
    return replace(current, features=(*current.features, feature))


def _no_default_features(
    current: RunArguments, stream: TokenStream, flag: str, inline: str | None
) -> RunArguments:
    _no_inline(flag, inline)
    return replace(current, no_default_features=True)


_RUN_FLAG_HANDLERS: Final[dict[str, _FlagHandler]] = {
    Flags.IMAGE_VERSION: _image_version,
    Flags.CONDUCTR_ROLE: _conductr_role,
    Flags.ENV: _env_handler("envs"),
    Flags.ENV_CORE: _env_handler("envs_core"),
    Flags.ENV_AGENT: _env_handler("envs_agent"),
    Flags.ARG: _arg_handler("args"),
    Flags.ARG_CORE: _arg_handler("args_core"),
    Flags.ARG_AGENT: _arg_handler("args_agent"),
    Flags.IMAGE: _image,
    Flags.LOG_LEVEL: _log_level,
    Flags.NR_OF_CONTAINERS: _nr_of_containers,
    Flags.NR_OF_INSTANCES: _nr_of_instances,
    Flags.PORT: _port,
    Flags.FEATURE: _feature,
    Flags.NO_DEFAULT_FEATURES: _no_default_features,
}

RUN_FLAGS: Final[tuple[str, ...]] = tuple(_RUN_FLAG_HANDLERS)


__all__ = [
    "Flags",
    "RUN_FLAGS",
    "RunArguments",
    "SandboxHelp",
    "SandboxLogsSubtask",
    "SandboxPsSubtask",
    "SandboxRunSubtask",
    "SandboxStopSubtask",
    "SandboxSubtask",
    "SandboxSubtaskHelp",
    "SandboxVersionSubtask",
    "parse_run_arguments",
    "parse_sandbox",
    "sandbox_run_argv",
]

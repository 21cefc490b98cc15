"""
conductr-tasks — unit tests for the sandbox grammar

Purpose
- Validate sub-command selection and the ``sandbox run`` flag fold.

What this test file should cover
- Help and sub-help variants, usage errors for extra tokens.
- Every run flag, including short forms and inline ``--flag=value``.
- Reconstruction keeps each flag occurrence once and in relative order.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conductr_tasks.errors import InvalidArgumentError
from conductr_tasks.grammar.sandbox import (
    RunArguments,
    SandboxHelp,
    SandboxLogsSubtask,
    SandboxPsSubtask,
    SandboxRunSubtask,
    SandboxStopSubtask,
    SandboxSubtaskHelp,
    SandboxVersionSubtask,
    parse_run_arguments,
    parse_sandbox,
    sandbox_run_argv,
)


@pytest.mark.parametrize("raw", ["", "--help", "-h", "unknown"])
def test_help_variants(raw: str) -> None:
    assert parse_sandbox(raw) == SandboxHelp()


def test_help_with_trailing_tokens_is_a_usage_error() -> None:
    with pytest.raises(InvalidArgumentError, match="Usage: sandbox --help"):
        parse_sandbox("--help run")


@pytest.mark.parametrize("command", ["run", "start", "restart", "stop", "ps", "logs", "version"])
def test_sub_help(command: str) -> None:
    assert parse_sandbox(f"{command} --help") == SandboxSubtaskHelp(command)


def test_bare_run_asks_for_sub_help() -> None:
    assert parse_sandbox("run") == SandboxSubtaskHelp("run")
    assert parse_sandbox(["start"]) == SandboxSubtaskHelp("start")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("logs", SandboxLogsSubtask()),
        ("ps", SandboxPsSubtask()),
        ("stop", SandboxStopSubtask()),
        ("version", SandboxVersionSubtask()),
    ],
)
def test_simple_commands(raw: str, expected: object) -> None:
    assert parse_sandbox(raw) == expected


def test_simple_command_with_extra_tokens_fails() -> None:
    with pytest.raises(InvalidArgumentError, match="Usage: sandbox ps"):
        parse_sandbox("ps -q")


def test_run_folds_all_flags() -> None:
    subtask = parse_sandbox(
        "run 2.0.5 --image custom/conductr -n 1:3 --nr-of-containers 2 "
        "-r web backend -r ops -e A=1 --env-core B=2 --env-agent C=3 "
        "--arg=-Dx=y --arg-core core --arg-agent agent -l debug "
        "-p 9000 -p 9000 --port=9001 -f visualization -f logging extra --no-default-features"
    )

    assert isinstance(subtask, SandboxRunSubtask)
    args = subtask.args
    assert args.image_version == "2.0.5"
    assert args.image == "custom/conductr"
    assert args.nr_of_instances == (1, 3)
    assert args.nr_of_containers == 2
    assert args.conductr_roles == (("web", "backend"), ("ops",))
    assert dict(args.envs) == {"A": "1"}
    assert dict(args.envs_core) == {"B": "2"}
    assert dict(args.envs_agent) == {"C": "3"}
    assert args.args == ("-Dx=y",)
    assert args.args_core == ("core",)
    assert args.args_agent == ("agent",)
    assert args.log_level == "debug"
    assert args.ports == (9000, 9001)
    assert args.features == (("visualization",), ("logging", "extra"))
    assert args.no_default_features is True


def test_run_argv_has_fixed_flag_order() -> None:
    args = parse_run_arguments(
        ["--arg=-Dx=y", "-e", "A=1", "-p", "80", "--image-version", "2.0.0", "-n", "3"]
    )
    assert sandbox_run_argv(args) == [
        "run",
        "2.0.0",
        "--nr-of-instances",
        "3",
        "--port",
        "80",
        "--env",
        "A=1",
        "--arg=-Dx=y",
    ]


def test_env_without_pair_is_rejected() -> None:
    with pytest.raises(InvalidArgumentError) as excinfo:
        parse_sandbox("run --env FOO")
    assert "Format: --env key=value" in str(excinfo.value)


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("run --bogus", "Unknown flag '--bogus'"),
        ("run 2.0.5 extra", "Unexpected argument 'extra'"),
        ("run --image-version latest", "Invalid version 'latest'"),
        ("run --nr-of-containers many", "Format: --nr-of-containers <nr-of-containers>"),
        ("run --port", "Missing value. Format: --port <port>"),
        ("run --conductr-role", "Missing role"),
        ("run --no-default-features=yes", "does not take a value"),
    ],
)
def test_run_errors(raw: str, message: str) -> None:
    with pytest.raises(InvalidArgumentError, match=message):
        parse_sandbox(raw)


def test_with_ports_appends_without_duplicates() -> None:
    args = RunArguments(ports=(9000, 80)).with_ports([80, 5601])
    assert args.ports == (9000, 80, 5601)


_VALUES = st.text(alphabet="abcxyz019-=.", min_size=1, max_size=8).filter(
    lambda value: value != "-"
)
_REPEATABLE = st.sampled_from(["--arg", "--arg-core", "--arg-agent"])


@settings(max_examples=75, deadline=None)
@given(st.lists(st.tuples(_REPEATABLE, _VALUES), max_size=12))
def test_reconstruction_keeps_repeatable_flags_in_order(
    occurrences: list[tuple[str, str]],
) -> None:
    tokens: list[str] = ["2.0.5"]
    for flag, value in occurrences:
        if value.startswith("-"):
            tokens.append(f"{flag}={value}")
        else:
            tokens.extend((flag, value))

    argv = sandbox_run_argv(parse_run_arguments(tokens))

    for flag in ("--arg", "--arg-core", "--arg-agent"):
        expected = [value for name, value in occurrences if name == flag]
        rendered: list[str] = []
        index = 0
        while index < len(argv):
            token = argv[index]
            if token == flag:
                rendered.append(argv[index + 1])
                index += 2
                continue
            if token.startswith(f"{flag}="):
                rendered.append(token[len(flag) + 1 :])
            index += 1
        assert rendered == expected

    assert parse_run_arguments(argv[1:]) == parse_run_arguments(tokens)

"""
conductr-tasks — unit tests for shared token rules

Purpose
- Validate pair/int/instance parsing, version detection and flag rendering.

What this test file should cover
- Error messages name the expected format.
- Dash-leading values render as ``flag=value``.
- TokenStream refuses a flag where a value is expected.
"""

from __future__ import annotations

import pytest

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


def test_tokenize_uses_shell_quoting() -> None:
    assert tokenize("run --env 'A=hello world' -n 2") == (
        "run",
        "--env",
        "A=hello world",
        "-n",
        "2",
    )
    assert tokenize(["ps", 1]) == ("ps", "1")


def test_tokenize_rejects_unbalanced_quotes() -> None:
    with pytest.raises(InvalidArgumentError, match="unable to tokenize"):
        tokenize("run --env 'A=b")


def test_parse_pair_splits_on_first_separator() -> None:
    assert parse_pair("JAVA_OPTS=-Da=b", "--env") == ("JAVA_OPTS", "-Da=b")
    assert parse_pair("EMPTY=", "--env") == ("EMPTY", "")


@pytest.mark.parametrize("token", ["FOO", "=bar"])
def test_parse_pair_rejects_missing_separator_or_key(token: str) -> None:
    with pytest.raises(InvalidArgumentError) as excinfo:
        parse_pair(token, "--env-core")
    assert "Format: --env-core key=value" in str(excinfo.value)


def test_parse_int_names_placeholder() -> None:
    assert parse_int("3", "--nr-of-containers") == 3
    with pytest.raises(InvalidArgumentError, match="Format: --port <port>"):
        parse_int("http", "--port", placeholder="<port>")
    with pytest.raises(InvalidArgumentError, match="must be >= 0"):
        parse_int("-1", "--port", placeholder="<port>")


def test_parse_instances_accepts_agents_or_cores_and_agents() -> None:
    assert parse_instances("3", "--nr-of-instances") == (3, None)
    assert parse_instances("1:2", "--nr-of-instances") == (1, 2)
    with pytest.raises(InvalidArgumentError, match="<nr-of-cores>:<nr-of-agents>"):
        parse_instances("1:", "--nr-of-instances")


@pytest.mark.parametrize(
    ("token", "expected"),
    [("2.0.5", True), ("2.1.0-alpha.1", True), ("10", True), ("v2.0", False), ("", False)],
)
def test_is_version_number(token: str, expected: bool) -> None:
    assert is_version_number(token) is expected


def test_is_flag_and_split_inline() -> None:
    assert is_flag("-n")
    assert not is_flag("-")
    assert not is_flag("ps")
    assert split_inline("--env=A=b") == ("--env", "A=b")
    assert split_inline("-e") == ("-e", None)


def test_with_flag_joins_dash_leading_values() -> None:
    assert with_flag("--arg", ["plain", "-Dfoo=bar"]) == ["--arg", "plain", "--arg=-Dfoo=bar"]
    assert with_flag("--port", []) == []


def test_token_stream_value_for() -> None:
    stream = TokenStream(["--env", "--port", "9000"])
    assert stream.next() == "--env"
    with pytest.raises(InvalidArgumentError, match="Missing value. Format: --env key=value"):
        stream.value_for("--env", None, placeholder="key=value")
    assert stream.value_for("--image", "custom", placeholder="<image>") == "custom"
    assert stream.peek() == "--port"


def test_token_stream_take_non_flags_stops_at_flag() -> None:
    stream = TokenStream(["web", "backend", "-p", "80"])
    assert stream.take_non_flags() == ["web", "backend"]
    assert stream.peek() == "-p"

"""
conductr-tasks — unit tests for config loader

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Profile selection from argument, CLI override or ``CONDUCTR_PROFILE``.
- Path normalization relative to the config file.
- Error reporting for missing files, invalid TOML and bad env values.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conductr_tasks.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_var_for,
    load_config,
)
from conductr_tasks.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")
    return path


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    empty = _write_config(tmp_path / "empty" / "conductr.toml", "")
    config_path = _write_config(
        tmp_path / "conductr.toml",
        """
[sandbox]
wait_timeout_seconds = 30
""",
    )
    env = {"CONDUCTR_SANDBOX_WAIT_TIMEOUT_SECONDS": "40"}

    assert load_config(empty, environ={})["sandbox"]["wait_timeout_seconds"] == 20.0
    assert load_config(config_path, environ={})["sandbox"]["wait_timeout_seconds"] == 30.0
    assert load_config(config_path, environ=env)["sandbox"]["wait_timeout_seconds"] == 40.0
    cli_loaded = load_config(
        config_path,
        environ=env,
        cli_overrides={"sandbox.wait_timeout_seconds": 50},
    )
    assert cli_loaded["sandbox"]["wait_timeout_seconds"] == 50.0


def test_env_mapping_coerces_types(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    loaded = load_config(
        config_path,
        environ={
            "CONDUCTR_CLI_CONDUCT": "/opt/conductr/bin/conduct",
            "CONDUCTR_SANDBOX_IMAGE_VERSION": "2.1.0",
            "CONDUCTR_SANDBOX_ENDPOINT_PORTS": "9000, 5601",
            "CONDUCTR_OBSERVABILITY_LOG_LEVEL": "DEBUG",
        },
    )
    assert loaded["cli"]["conduct"] == "/opt/conductr/bin/conduct"
    assert loaded["sandbox"]["image_version"] == "2.1.0"
    assert loaded["sandbox"]["endpoint_ports"] == [9000, 5601]
    assert loaded["observability"]["log_level"] == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("CONDUCTR_SANDBOX_WAIT_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("CONDUCTR_SANDBOX_ENDPOINT_PORTS", "80,http", "comma-separated list of integers"),
    ],
)
def test_invalid_env_values(tmp_path: Path, name: str, value: str, message: str) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    with pytest.raises(ConfigLoadError, match=message):
        load_config(config_path, environ={name: value})


def test_meta_is_not_bound_to_environment(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    loaded = load_config(config_path, environ={"CONDUCTR_META_SCHEMA_VERSION": "2"})
    assert loaded["meta"]["schema_version"] == 1


def test_invalid_env_value_fails_validation(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    with pytest.raises(ConfigValidationError, match="observability.log_format"):
        load_config(config_path, environ={"CONDUCTR_OBSERVABILITY_LOG_FORMAT": "xml"})


def test_profile_selection_order(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conductr.toml",
        """
[profiles.ci.sandbox]
wait_timeout_seconds = 90

[profiles.local.sandbox]
wait_timeout_seconds = 5
""",
    )

    from_env = load_config(config_path, environ={"CONDUCTR_PROFILE": "ci"})
    from_cli = load_config(
        config_path, environ={"CONDUCTR_PROFILE": "ci"}, cli_overrides={"profile": "local"}
    )
    from_argument = load_config(
        config_path,
        profile="ci",
        environ={"CONDUCTR_PROFILE": "local"},
        cli_overrides={"profile": "local"},
    )

    assert from_env["sandbox"]["wait_timeout_seconds"] == 90.0
    assert from_cli["sandbox"]["wait_timeout_seconds"] == 5.0
    assert from_argument["sandbox"]["wait_timeout_seconds"] == 90.0


def test_env_overrides_apply_after_profile(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conductr.toml",
        """
[profiles.ci.sandbox]
wait_timeout_seconds = 90
""",
    )
    loaded = load_config(
        config_path,
        profile="ci",
        environ={"CONDUCTR_SANDBOX_WAIT_TIMEOUT_SECONDS": "15"},
    )
    assert loaded["sandbox"]["wait_timeout_seconds"] == 15.0


def test_unknown_profile_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    with pytest.raises(ConfigValidationError, match="profile 'staging' is not defined"):
        load_config(config_path, profile="staging", environ={})


def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_dir = tmp_path / "project"
    config_path = _write_config(
        config_dir / "conductr.toml",
        """
[project]
target_dir = "build/../target"
bundle_file = "target/bundle/web.zip"

[[install.bundles]]
name = "web"
bundle = "target/bundle/web.zip"
config = "/abs/web-config.zip"

[[install.bundles]]
name = "visualizer"
ref = "visualizer"
""",
    )

    loaded = load_config(config_path, environ={})

    base = config_dir.resolve().as_posix()
    assert loaded["project"]["root"] == base
    assert loaded["project"]["target_dir"] == f"{base}/target"
    assert loaded["project"]["bundle_file"] == f"{base}/target/bundle/web.zip"
    assert loaded["install"]["bundles"] == [
        {"bundle": f"{base}/target/bundle/web.zip", "config": "/abs/web-config.zip", "name": "web"},
        {"name": "visualizer", "ref": "visualizer"},
    ]


def test_missing_default_file_uses_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    loaded = load_config(environ={})
    assert loaded["project"]["root"] == tmp_path.resolve().as_posix()
    assert loaded["install"]["bundles"] == []


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "[sandbox\nwait = ")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "conductr.toml", "")
    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))
    assert first == second
    assert json.loads(first)["cli"] == {"conduct": "conduct", "sandbox": "sandbox"}
    assert list(json.loads(first)) == sorted(json.loads(first))


def test_env_var_names_follow_dotted_keys() -> None:
    assert env_var_for("sandbox.wait_timeout_seconds") == "CONDUCTR_SANDBOX_WAIT_TIMEOUT_SECONDS"
    assert env_var_for("cli.conduct") == "CONDUCTR_CLI_CONDUCT"

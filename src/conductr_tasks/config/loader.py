"""
conductr-tasks — runtime config loader.

Layers, lowest first: built-in defaults, ``conductr.toml``, the selected
``[profiles.<name>]`` overlay, ``CONDUCTR_*`` environment variables, then
dotted CLI overrides. Relative paths resolve against the directory holding
the config file (the working directory when no file is used).
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from conductr_tasks.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "conductr.toml"
ENV_PREFIX: Final[str] = "CONDUCTR_"
PROFILE_ENV_VAR: Final[str] = f"{ENV_PREFIX}PROFILE"


class ConfigLoadError(ValueError):
    """Raised when a config file cannot be read or an override cannot be coerced."""


def _int_list(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


# Dotted config key -> (parser, expected-value wording for error messages).
_ENV_FIELDS: Final[dict[str, tuple[Callable[[str], object], str]]] = {
    "cli.conduct": (str, "a string"),
    "cli.sandbox": (str, "a string"),
    "sandbox.image_version": (str, "a string"),
    "sandbox.wait_timeout_seconds": (float, "a number"),
    "sandbox.poll_interval_seconds": (float, "a number"),
    "sandbox.endpoint_ports": (_int_list, "a comma-separated list of integers"),
    "project.root": (str, "a string"),
    "project.target_dir": (str, "a string"),
    "project.license_file": (str, "a string"),
    "project.bundle_file": (str, "a string"),
    "project.bundle_config_file": (str, "a string"),
    "install.script_name": (str, "a string"),
    "observability.log_level": (str, "a string"),
    "observability.log_format": (str, "a string"),
    "observability.log_file": (str, "a string"),
}


def env_var_for(dotted_key: str) -> str:
    """``sandbox.wait_timeout_seconds`` -> ``CONDUCTR_SANDBOX_WAIT_TIMEOUT_SECONDS``."""

    return ENV_PREFIX + dotted_key.replace(".", "_").upper()


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated, path-normalized effective config."""

    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    if config_path is None:
        source = Path.cwd() / DEFAULT_CONFIG_FILE
        document = _read_document(source) if source.is_file() else {}
    else:
        source = Path(config_path).expanduser()
        if not source.is_file():
            raise ConfigLoadError(f"config file not found: {source.resolve()}")
        document = _read_document(source)

    config = assert_valid_config(merge_config(default_config(), document))
    selected = _select_profile(profile, overrides.pop("profile", None), env)
    if selected:
        config = apply_profile_overlay(config, selected)

    layered = merge_config(config, _env_layer(env))
    layered = merge_config(layered, _cli_layer(overrides))
    validated = assert_valid_config(layered)
    return assert_valid_config(normalize_paths(validated, base_dir=source.resolve().parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Rebase every configured path, bundle tables included, onto ``base_dir``."""

    result = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = result.get(section)
        if isinstance(table, dict) and isinstance(table.get(key), str):
            table[key] = _rebase(table[key], base_dir)

    install = result.get("install")
    for bundle in install.get("bundles", []) if isinstance(install, dict) else []:
        for key in ("bundle", "config"):
            if isinstance(bundle, dict) and isinstance(bundle.get(key), str):
                bundle[key] = _rebase(bundle[key], base_dir)
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Canonical JSON (sorted keys, compact separators) of ``config``."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _read_document(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path.resolve()}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path.resolve()}: {exc}") from exc


def _select_profile(
    explicit: str | None, from_cli: object, environ: Mapping[str, str]
) -> str | None:
    if from_cli is not None and not isinstance(from_cli, str):
        raise ConfigLoadError("cli override 'profile' must be a string")
    for candidate in (explicit, from_cli, environ.get(PROFILE_ENV_VAR)):
        if candidate is not None:
            return candidate.strip() or None
    return None


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted_key, (parse, expected) in _ENV_FIELDS.items():
        name = env_var_for(dotted_key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = parse(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {dotted_key} must be {expected}") from exc
        _assign(layer, dotted_key, value)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted_key, value in sorted(overrides.items()):
        if not all(dotted_key.split(".")):
            raise ConfigLoadError(f"invalid CLI override key {dotted_key!r}")
        _assign(layer, dotted_key, value)
    return layer


def _assign(target: dict[str, Any], dotted_key: str, value: object) -> None:
    *parents, leaf = dotted_key.split(".")
    node = target
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def _rebase(raw: str, base_dir: Path) -> str:
    path = Path(os.path.expandvars(raw)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return Path(os.path.normpath(path)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV_VAR",
    "dump_effective_config",
    "env_var_for",
    "load_config",
    "normalize_paths",
]

"""
conductr-tasks — configuration schema and validation.

Authoritative defaults and strict validation for ``conductr.toml``. Validation
returns structured issues (field path + message); deep-merge and profile
overlay helpers are deterministic.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from conductr_tasks.constants import (
    CONDUCT_EXECUTABLE,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_TARGET_DIR,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    INSTALL_SCRIPT_NAME,
    POLL_INTERVAL_SECONDS,
    SANDBOX_EXECUTABLE,
    TYPESAFE_PROPERTIES_NAME,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("project", "root"),
    ("project", "target_dir"),
    ("project", "bundle_file"),
    ("project", "bundle_config_file"),
    ("observability", "log_file"),
)

_MAX_PORT: Final[int] = 65535


class MetaConfig(TypedDict):
    schema_version: int


class CliConfig(TypedDict):
    conduct: str
    sandbox: str


class SandboxConfig(TypedDict):
    wait_timeout_seconds: float
    poll_interval_seconds: float
    endpoint_ports: list[int]
    image_version: NotRequired[str]


class ProjectConfig(TypedDict):
    root: str
    target_dir: str
    license_file: str
    bundle_file: NotRequired[str]
    bundle_config_file: NotRequired[str]


class BundleConfig(TypedDict):
    name: str
    bundle: NotRequired[str]
    ref: NotRequired[str]
    config: NotRequired[str]


class InstallConfig(TypedDict):
    script_name: str
    bundles: list[BundleConfig]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["text", "json"]
    log_file: NotRequired[str]


class ProfileOverlay(TypedDict, total=False):
    cli: dict[str, object]
    sandbox: dict[str, object]
    project: dict[str, object]
    install: dict[str, object]
    observability: dict[str, object]


class TasksConfig(TypedDict):
    meta: MetaConfig
    cli: CliConfig
    sandbox: SandboxConfig
    project: ProjectConfig
    install: InstallConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[TasksConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "cli": {
        "conduct": CONDUCT_EXECUTABLE,
        "sandbox": SANDBOX_EXECUTABLE,
    },
    "sandbox": {
        "wait_timeout_seconds": DEFAULT_WAIT_TIMEOUT_SECONDS,
        "poll_interval_seconds": POLL_INTERVAL_SECONDS,
        "endpoint_ports": [],
    },
    "project": {
        "root": ".",
        "target_dir": DEFAULT_TARGET_DIR,
        "license_file": TYPESAFE_PROPERTIES_NAME,
    },
    "install": {
        "script_name": INSTALL_SCRIPT_NAME,
        "bundles": [],
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
    },
    "profiles": {},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> TasksConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade conductr.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade conductr-tasks"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``; lists are replaced."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None or not profile.strip():
        return materialized

    selected = profile.strip()
    profiles_raw = materialized.get("profiles")
    overlay_raw = profiles_raw.get(selected) if isinstance(profiles_raw, Mapping) else None
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay_raw))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "meta": _validate_meta,
        "cli": _validate_cli,
        "sandbox": _validate_sandbox,
        "project": _validate_project,
        "install": _validate_install,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, {*validators, "profiles"}, "", issues)

    out: dict[str, Any] = {}
    for key, validator in validators.items():
        raw = payload.get(key)
        if raw is None:
            issues.add(key, "missing required section")
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            out[key] = validator(section, key, issues)

    profiles = payload.get("profiles", {})
    profiles_obj = _as_object(profiles, "profiles", issues)
    if profiles_obj is not None:
        out["profiles"] = _validate_profiles(profiles_obj, validators, issues)
    return out


def _validate_meta(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    version_path = _join(path, "schema_version")
    parsed = _as_int(payload.get("schema_version"), version_path, issues, minimum=1)
    if parsed is not None:
        out["schema_version"] = parsed
        if parsed != ConfigSchemaVersion:
            issues.add(version_path, migration_guidance(parsed))
    return out


def _validate_cli(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"conduct", "sandbox"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_sandbox(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"wait_timeout_seconds", "poll_interval_seconds", "endpoint_ports", "image_version"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    for key in ("poll_interval_seconds", "wait_timeout_seconds"):
        if key in payload:
            parsed = _as_float(payload[key], _join(path, key), issues, exclusive_minimum=0.0)
            if parsed is not None:
                out[key] = parsed

    if "endpoint_ports" in payload:
        ports_path = _join(path, "endpoint_ports")
        raw_ports = payload["endpoint_ports"]
        if not isinstance(raw_ports, list):
            issues.add(ports_path, f"expected array, got {type(raw_ports).__name__}")
        else:
            ports: list[int] = []
            for index, item in enumerate(raw_ports):
                port = _as_int(item, f"{ports_path}[{index}]", issues, minimum=0)
                if port is None:
                    continue
                if port > _MAX_PORT:
                    issues.add(f"{ports_path}[{index}]", f"must be <= {_MAX_PORT}")
                    continue
                ports.append(port)
            out["endpoint_ports"] = ports

    if "image_version" in payload:
        parsed_version = _as_str(payload["image_version"], _join(path, "image_version"), issues)
        if parsed_version is not None:
            out["image_version"] = parsed_version
    return out


def _validate_project(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"root", "target_dir", "license_file", "bundle_file", "bundle_config_file"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_install(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"script_name", "bundles"}, path, issues)
    out: dict[str, Any] = {}

    if "script_name" in payload:
        script_path = _join(path, "script_name")
        parsed = _as_path_text(payload["script_name"], script_path, issues)
        if parsed is not None and ("/" in parsed or "\\" in parsed):
            issues.add(script_path, "must be a file name, not a path")
        elif parsed is not None:
            out["script_name"] = parsed

    if "bundles" in payload:
        bundles_path = _join(path, "bundles")
        raw_bundles = payload["bundles"]
        if not isinstance(raw_bundles, list):
            issues.add(bundles_path, f"expected array, got {type(raw_bundles).__name__}")
        else:
            bundles: list[dict[str, Any]] = []
            seen_names: set[str] = set()
            for index, item in enumerate(raw_bundles):
                item_path = f"{bundles_path}[{index}]"
                bundle = _as_object(item, item_path, issues)
                if bundle is None:
                    continue
                parsed_bundle = _validate_bundle(bundle, item_path, issues)
                name = parsed_bundle.get("name")
                if isinstance(name, str):
                    if name in seen_names:
                        issues.add(_join(item_path, "name"), f"duplicate bundle name {name!r}")
                    seen_names.add(name)
                bundles.append(parsed_bundle)
            out["bundles"] = bundles
    return out


def _validate_bundle(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"name", "bundle", "ref", "config"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "name" not in payload:
        issues.add(_join(path, "name"), "missing required field")
    if ("bundle" in payload) == ("ref" in payload):
        issues.add(
            path, "exactly one of 'bundle' (file path) or 'ref' (bundle reference) is required"
        )
    return out


def _validate_observability(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"log_level", "log_format", "log_file"}, path, issues)
    out: dict[str, Any] = {}

    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level

    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format

    if "log_file" in payload:
        parsed_file = _as_path_text(payload["log_file"], _join(path, "log_file"), issues)
        if parsed_file is not None:
            out["log_file"] = parsed_file
    return out


def _validate_profiles(
    payload: dict[str, object],
    validators: Mapping[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]],
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in sorted(payload):
        profile_path = _join("profiles", name)
        overlay = _as_object(payload[name], profile_path, issues)
        if overlay is None:
            continue
        _reject_unknown_keys(overlay, set(validators) - {"meta"}, profile_path, issues)
        validated: dict[str, Any] = {}
        for key in sorted(overlay):
            validator = validators.get(key)
            if validator is None or key == "meta":
                continue
            section_path = _join(profile_path, key)
            section = _as_object(overlay[key], section_path, issues)
            if section is not None:
                validated[key] = validator(section, section_path, issues)
        out[name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    exclusive_minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if exclusive_minimum is not None and parsed <= exclusive_minimum:
        issues.add(path, f"must be > {exclusive_minimum:g}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ProfileOverlay",
    "TasksConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]

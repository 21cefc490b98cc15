"""
conductr-tasks — unit tests for config schema validation

Purpose
- Validate strict schema behavior, structured issue paths and profile overlays.

What this test file should cover
- Defaults validate and are returned as independent copies.
- Unknown keys, wrong types and out-of-range values carry actionable paths.
- Bundle tables need a name and exactly one of ``bundle``/``ref``.
- Schema version mismatches produce migration guidance.
- Profile overlays merge deterministically and unknown profiles are rejected.
"""

from __future__ import annotations

from typing import Any

import pytest

from conductr_tasks.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)


def _with(overlay: dict[str, Any]) -> dict[str, Any]:
    return merge_config(default_config(), overlay)


def _issue_paths(config: dict[str, Any]) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())
    assert result.is_valid
    assert result.config is not None
    assert result.config["cli"] == {"conduct": "conduct", "sandbox": "sandbox"}
    assert result.config["sandbox"]["wait_timeout_seconds"] == 20.0
    assert result.config["install"]["script_name"] == "install.sh"


def test_default_config_returns_independent_copies() -> None:
    first = default_config()
    first["sandbox"]["endpoint_ports"].append(9000)
    assert default_config()["sandbox"]["endpoint_ports"] == []


def test_unknown_fields_are_reported_with_paths() -> None:
    config = _with({"sandbox": {"wait_timeout": 5}, "extras": {}})
    result = validate_config(config)
    assert not result.is_valid
    assert [(issue.path, issue.message) for issue in result.issues] == [
        ("extras", "unknown field"),
        ("sandbox.wait_timeout", "unknown field"),
    ]


def test_missing_section_is_reported() -> None:
    config = default_config()
    del config["install"]  # type: ignore[misc]
    assert _issue_paths(config) == ["install"]


@pytest.mark.parametrize(
    ("overlay", "path"),
    [
        ({"sandbox": {"wait_timeout_seconds": 0}}, "sandbox.wait_timeout_seconds"),
        ({"sandbox": {"poll_interval_seconds": "fast"}}, "sandbox.poll_interval_seconds"),
        ({"sandbox": {"endpoint_ports": [80, 70000]}}, "sandbox.endpoint_ports[1]"),
        ({"sandbox": {"endpoint_ports": "9000"}}, "sandbox.endpoint_ports"),
        ({"cli": {"conduct": "  "}}, "cli.conduct"),
        ({"observability": {"log_level": "TRACE"}}, "observability.log_level"),
        ({"install": {"script_name": "bin/install.sh"}}, "install.script_name"),
    ],
)
def test_invalid_values_are_reported(overlay: dict[str, Any], path: str) -> None:
    assert _issue_paths(_with(overlay)) == [path]


def test_bundle_tables_require_name_and_one_source() -> None:
    config = _with(
        {
            "install": {
                "bundles": [
                    {"name": "web", "bundle": "target/web.zip", "ref": "web"},
                    {"bundle": "target/db.zip"},
                    {"name": "cache"},
                ]
            }
        }
    )
    assert _issue_paths(config) == [
        "install.bundles[0]",
        "install.bundles[1].name",
        "install.bundles[2]",
    ]


def test_duplicate_bundle_names_are_rejected() -> None:
    config = _with(
        {"install": {"bundles": [{"name": "web", "ref": "web"}, {"name": "web", "ref": "web2"}]}}
    )
    result = validate_config(config)
    assert [(i.path, i.message) for i in result.issues] == [
        ("install.bundles[1].name", "duplicate bundle name 'web'")
    ]


def test_schema_version_mismatch_includes_migration_guidance() -> None:
    config = _with({"meta": {"schema_version": ConfigSchemaVersion + 1}})
    result = validate_config(config)
    assert len(result.issues) == 1
    assert result.issues[0].path == "meta.schema_version"
    assert "upgrade conductr-tasks" in result.issues[0].message
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_assert_valid_config_raises_with_rendered_issues() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(_with({"observability": {"log_format": "xml"}}))
    assert "observability.log_format" in str(excinfo.value)
    assert excinfo.value.issues[0].path == "observability.log_format"


def test_profile_overlay_merges_and_replaces_lists() -> None:
    config = assert_valid_config(
        _with(
            {
                "sandbox": {"endpoint_ports": [9000]},
                "profiles": {
                    "ci": {
                        "sandbox": {"wait_timeout_seconds": 60, "endpoint_ports": [5601]},
                        "observability": {"log_format": "json"},
                    }
                },
            }
        )
    )

    overlaid = apply_profile_overlay(config, "ci")

    assert overlaid["sandbox"]["wait_timeout_seconds"] == 60.0
    assert overlaid["sandbox"]["endpoint_ports"] == [5601]
    assert overlaid["observability"]["log_format"] == "json"
    assert config["sandbox"]["endpoint_ports"] == [9000]
    assert apply_profile_overlay(config, None) == config


def test_profile_with_unknown_section_is_invalid() -> None:
    config = _with({"profiles": {"ci": {"meta": {"schema_version": 1}}}})
    assert _issue_paths(config) == ["profiles.ci.meta"]


def test_unknown_profile_is_rejected() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        apply_profile_overlay(default_config(), "missing")
    assert excinfo.value.issues[0].path == "profiles"
    assert excinfo.value.issues[0].message == "profile 'missing' is not defined"


def test_merge_is_deterministic_and_non_destructive() -> None:
    base = {"b": {"y": 1}, "a": [1, 2]}
    overlay = {"b": {"z": 2}, "a": [3]}
    merged = merge_config(base, overlay)
    assert merged == {"a": [3], "b": {"y": 1, "z": 2}}
    assert base == {"b": {"y": 1}, "a": [1, 2]}
    assert list(merged) == ["a", "b"]

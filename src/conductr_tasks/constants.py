"""Stable constants shared across grammar, process and install layers."""

from __future__ import annotations

from typing import Final

# ConductR release used when the project carries an RP licence.
LATEST_CONDUCTR_VERSION: Final[str] = "2.0.5"
LATEST_CONDUCTR_DOC_VERSION: Final[str] = LATEST_CONDUCTR_VERSION[:-1] + "x"
CLI_INSTALL_URL: Final[str] = (
    f"http://conductr.lightbend.com/docs/{LATEST_CONDUCTR_DOC_VERSION}/CLI"
)

# External executables.
CONDUCT_EXECUTABLE: Final[str] = "conduct"
SANDBOX_EXECUTABLE: Final[str] = "sandbox"

# Readiness polling.
POLL_INTERVAL_SECONDS: Final[float] = 0.5
DEFAULT_WAIT_TIMEOUT_SECONDS: Final[float] = 20.0

# Project layout.
TYPESAFE_PROPERTIES_NAME: Final[str] = "typesafe.properties"
INSTALL_SCRIPT_NAME: Final[str] = "install.sh"
DEFAULT_TARGET_DIR: Final[str] = "target"

# Sandbox feature names offered as completion examples.
SANDBOX_FEATURES: Final[tuple[str, ...]] = ("visualization", "logging", "monitoring")

# `conduct info` lines scanned for bundle-name hints (header excluded).
BUNDLE_NAME_SCAN_LINES: Final[int] = 10

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "BUNDLE_NAME_SCAN_LINES",
    "CLI_INSTALL_URL",
    "CONDUCT_EXECUTABLE",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_TARGET_DIR",
    "DEFAULT_WAIT_TIMEOUT_SECONDS",
    "INSTALL_SCRIPT_NAME",
    "LATEST_CONDUCTR_DOC_VERSION",
    "LATEST_CONDUCTR_VERSION",
    "POLL_INTERVAL_SECONDS",
    "SANDBOX_EXECUTABLE",
    "SANDBOX_FEATURES",
    "TYPESAFE_PROPERTIES_NAME",
]

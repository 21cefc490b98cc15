"""Per-invocation task settings resolved from the effective config."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from conductr_tasks.constants import (
    CONDUCT_EXECUTABLE,
    DEFAULT_TARGET_DIR,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    INSTALL_SCRIPT_NAME,
    LATEST_CONDUCTR_VERSION,
    POLL_INTERVAL_SECONDS,
    SANDBOX_EXECUTABLE,
    TYPESAFE_PROPERTIES_NAME,
)
from conductr_tasks.install.planner import InstallationEntry, collect_installation_entries

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class TaskSettings:
    """Everything a task needs besides its own command-line tokens."""

    conduct_executable: str = CONDUCT_EXECUTABLE
    sandbox_executable: str = SANDBOX_EXECUTABLE
    image_version: str | None = None
    wait_timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    endpoint_ports: tuple[int, ...] = ()
    project_root: Path = field(default_factory=Path.cwd)
    target_dir: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_TARGET_DIR)
    license_file: str = TYPESAFE_PROPERTIES_NAME
    script_name: str = INSTALL_SCRIPT_NAME
    installation_entries: tuple[InstallationEntry, ...] = ()
    bundle_file: Path | None = None
    bundle_config_file: Path | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> TaskSettings:
        """Build settings from a validated, path-normalized config mapping."""

        cli = config["cli"]
        sandbox = config["sandbox"]
        project = config["project"]
        install = config["install"]
        bundle_file = project.get("bundle_file")
        bundle_config_file = project.get("bundle_config_file")
        return cls(
            conduct_executable=cli["conduct"],
            sandbox_executable=cli["sandbox"],
            image_version=sandbox.get("image_version"),
            wait_timeout_seconds=float(sandbox["wait_timeout_seconds"]),
            poll_interval_seconds=float(sandbox["poll_interval_seconds"]),
            endpoint_ports=tuple(sandbox["endpoint_ports"]),
            project_root=Path(project["root"]),
            target_dir=Path(project["target_dir"]),
            license_file=project["license_file"],
            script_name=install["script_name"],
            installation_entries=tuple(collect_installation_entries(install["bundles"])),
            bundle_file=Path(bundle_file) if bundle_file is not None else None,
            bundle_config_file=Path(bundle_config_file) if bundle_config_file is not None else None,
        )

    def license_path(self) -> Path | None:
        """Return the RP licence file in the project root or ``project/``, if any."""

        for candidate in (
            self.project_root / self.license_file,
            self.project_root / "project" / self.license_file,
        ):
            if candidate.is_file():
                return candidate
        return None

    def resolve_image_version(self) -> str | None:
        """Configured image version, else the latest release when an RP licence is present."""

        if self.image_version is not None:
            return self.image_version
        if self.license_path() is not None:
            return LATEST_CONDUCTR_VERSION
        return None


__all__ = ["TaskSettings"]

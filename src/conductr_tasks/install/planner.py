"""
conductr-tasks — installation planner.

Renders an executable shell script that loads and runs every installable
bundle through ``conduct`` and finishes with ``conduct info``.

Rendering is deterministic: entries keep their input order and paths are made
relative to the directory that holds the script, so identical input yields
identical bytes.
"""

from __future__ import annotations

import os
import re
import shlex
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined

from conductr_tasks.constants import CONDUCT_EXECUTABLE, INSTALL_SCRIPT_NAME
from conductr_tasks.errors import InstallError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_NON_WORD: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9_]")

DEPLOYED_MESSAGE: Final[str] = (
    'Your system is deployed. Running "conduct info" to observe the cluster.'
)

_SCRIPT_TEMPLATE: Final[str] = """\
#!/usr/bin/env bash
cd "$( dirname "${BASH_SOURCE[0]}" )"
{% for step in steps %}
echo {{ step.announce }}
{{ step.variable }}=$({{ conduct }} load {{ step.load_args }} --long-ids -q)
{{ conduct }} run ${{ '{' }}{{ step.variable }}{{ '}' }} --no-wait -q
{% endfor %}
echo {{ deployed }}
{{ conduct }} info
"""


@dataclass(frozen=True, slots=True)
class InstallationEntry:
    """One deployable unit.

    ``bundle`` is a file path (``Path``) or a bundle reference resolved by the
    orchestrator's repository (``str``).
    """

    name: str
    bundle: Path | str
    config: Path | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("InstallationEntry.name must not be empty")
        if isinstance(self.bundle, str) and not self.bundle.strip():
            raise ValueError("InstallationEntry.bundle must not be empty")

    def bundle_argument(self, base_dir: Path | None = None) -> str:
        return _name_or_path(self.bundle, base_dir)

    def config_argument(self, base_dir: Path | None = None) -> str | None:
        if self.config is None:
            return None
        return _name_or_path(self.config, base_dir)

    def load_arguments(self, base_dir: Path | None = None) -> list[str]:
        arguments = [self.bundle_argument(base_dir)]
        config = self.config_argument(base_dir)
        if config is not None:
            arguments.append(config)
        return arguments


@dataclass(frozen=True, slots=True)
class _ScriptStep:
    announce: str
    variable: str
    load_args: str


def bundle_id_variable(name: str) -> str:
    """Shell variable that captures the identifier returned by ``conduct load``.

    Only ASCII letters, digits and ``_`` survive; bash rejects names that
    start with a digit, so those get a leading ``_``.
    """

    variable = _NON_WORD.sub("_", name).upper()
    if variable[:1].isdigit():
        variable = f"_{variable}"
    return f"{variable}_BUNDLE_ID"


def render_installation_script(
    entries: Sequence[InstallationEntry],
    install_dir: Path | str,
    *,
    conduct_executable: str = CONDUCT_EXECUTABLE,
) -> str:
    """Render the installation script for ``entries`` placed in ``install_dir``."""

    base_dir = Path(install_dir)
    steps: list[_ScriptStep] = []
    seen_variables: dict[str, str] = {}
    for entry in entries:
        variable = bundle_id_variable(entry.name)
        previous = seen_variables.get(variable)
        if previous is not None:
            raise InstallError(
                f"bundles {previous!r} and {entry.name!r} map to the same variable {variable}"
            )
        seen_variables[variable] = entry.name
        steps.append(
            _ScriptStep(
                announce=shlex.quote(f"Deploying {entry.name}..."),
                variable=variable,
                load_args=" ".join(shlex.quote(arg) for arg in entry.load_arguments(base_dir)),
            )
        )

    environment = Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        newline_sequence="\n",
        keep_trailing_newline=True,
    )
    template = environment.from_string(_SCRIPT_TEMPLATE)
    return template.render(
        steps=steps,
        conduct=shlex.quote(conduct_executable),
        deployed=shlex.quote(DEPLOYED_MESSAGE),
    )


def write_installation_script(
    entries: Sequence[InstallationEntry],
    install_dir: Path | str,
    *,
    script_name: str = INSTALL_SCRIPT_NAME,
    conduct_executable: str = CONDUCT_EXECUTABLE,
) -> Path:
    """Write the rendered script to ``install_dir/script_name`` and mark it executable."""

    directory = Path(install_dir)
    directory.mkdir(parents=True, exist_ok=True)
    script_path = directory / script_name
    contents = render_installation_script(
        entries, directory, conduct_executable=conduct_executable
    )
    script_path.write_text(contents, encoding="utf-8", newline="\n")
    mode = script_path.stat().st_mode
    script_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script_path


def collect_installation_entries(
    bundles: Sequence[Mapping[str, object]],
) -> list[InstallationEntry]:
    """Build entries from validated ``[[install.bundles]]`` tables, keeping their order.

    A ``bundle`` key names a bundle file; a ``ref`` key names a bundle the
    orchestrator resolves from its repository.
    """

    entries: list[InstallationEntry] = []
    for table in bundles:
        name = str(table["name"])
        bundle_file = table.get("bundle")
        bundle: Path | str = (
            Path(str(bundle_file)) if bundle_file is not None else str(table["ref"])
        )
        config = table.get("config")
        entries.append(
            InstallationEntry(
                name=name,
                bundle=bundle,
                config=Path(str(config)) if config is not None else None,
            )
        )
    return entries


def _name_or_path(value: Path | str, base_dir: Path | None) -> str:
    if isinstance(value, str):
        return value
    if base_dir is None:
        return value.as_posix()
    relative = os.path.relpath(value.absolute(), base_dir.absolute())
    return Path(relative).as_posix()


__all__ = [
    "DEPLOYED_MESSAGE",
    "InstallationEntry",
    "bundle_id_variable",
    "collect_installation_entries",
    "render_installation_script",
    "write_installation_script",
]

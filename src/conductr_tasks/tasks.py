"""
conductr-tasks — task orchestration.

Each task turns its input into argument lists for the external ``sandbox``
and ``conduct`` executables and runs them one at a time on the calling
thread. A failing step aborts the task by raising a
:class:`~conductr_tasks.errors.ConductrTaskError`; a task that returns has
succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import structlog

from conductr_tasks.errors import ConductrTaskError, InstallError
from conductr_tasks.grammar.conduct import (
    ConductHelp,
    ConductSubtaskHelp,
    ConductSubtaskSuccess,
    parse_conduct,
)
from conductr_tasks.grammar.sandbox import (
    SandboxHelp,
    SandboxLogsSubtask,
    SandboxPsSubtask,
    SandboxRunSubtask,
    SandboxStopSubtask,
    SandboxSubtaskHelp,
    SandboxVersionSubtask,
    parse_sandbox,
    sandbox_run_argv,
)
from conductr_tasks.install.planner import DEPLOYED_MESSAGE, write_installation_script
from conductr_tasks.process.poller import ReadinessPoller

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from conductr_tasks.grammar.conduct import ConductSubtask
    from conductr_tasks.grammar.sandbox import RunArguments, SandboxSubtask
    from conductr_tasks.process.invocator import ProcessInvocator
    from conductr_tasks.settings import TaskSettings
    from conductr_tasks.ui.render import CLIRenderer

_LOGGER = structlog.get_logger(__name__)
_PROGRESS_LOGGER_NAME = "conductr_tasks.install"

SANDBOX_NOT_RUNNING_MESSAGE = "Please first start the sandbox using 'sandbox run'."
RESTART_FAILED_MESSAGE = "There was a problem re-starting the sandbox."
INSTALL_FAILED_MESSAGE = "There was a problem installing the project to ConductR."


def sandbox_task(
    tokens: str | Sequence[str],
    settings: TaskSettings,
    *,
    invocator: ProcessInvocator,
) -> SandboxSubtask:
    """Parse ``sandbox`` input and run the matching ``sandbox`` call."""

    invocator.verify_installed(settings.conduct_executable)
    subtask = parse_sandbox(tokens)
    argv = sandbox_command(subtask, settings)
    _LOGGER.debug("sandbox_task", subtask=type(subtask).__name__, argv=argv)
    invocator.run(argv)
    return subtask


def sandbox_command(subtask: SandboxSubtask, settings: TaskSettings) -> list[str]:
    """Full ``sandbox`` argument list for a parsed sub-command."""

    executable = settings.sandbox_executable
    match subtask:
        case SandboxHelp():
            return [executable, "--help"]
        case SandboxSubtaskHelp(command=command):
            return [executable, command, "--help"]
        case SandboxRunSubtask(args=args):
            return [executable, *sandbox_run_argv(resolve_run_arguments(args, settings))]
        case SandboxLogsSubtask():
            return [executable, "logs"]
        case SandboxPsSubtask():
            return [executable, "ps"]
        case SandboxStopSubtask():
            return [executable, "stop"]
        case SandboxVersionSubtask():
            return [executable, "version"]
    raise TypeError(f"unsupported sandbox sub-command: {subtask!r}")


def resolve_run_arguments(args: RunArguments, settings: TaskSettings) -> RunArguments:
    """Apply the project image version fallback and the configured endpoint ports."""

    resolved = args
    if resolved.image_version is None:
        fallback = settings.resolve_image_version()
        if fallback is not None:
            resolved = replace(resolved, image_version=fallback)
    return resolved.with_ports(settings.endpoint_ports)


def conduct_task(
    tokens: str | Sequence[str],
    settings: TaskSettings,
    *,
    invocator: ProcessInvocator,
) -> ConductSubtask:
    """Parse ``conduct`` input and run the matching ``conduct`` call."""

    invocator.verify_installed(settings.conduct_executable)
    subtask = parse_conduct(tokens)
    argv = conduct_command(subtask, settings)
    _LOGGER.debug("conduct_task", subtask=type(subtask).__name__, argv=argv)
    invocator.run(argv)
    return subtask


def conduct_command(subtask: ConductSubtask, settings: TaskSettings) -> list[str]:
    executable = settings.conduct_executable
    match subtask:
        case ConductHelp():
            return [executable, "--help"]
        case ConductSubtaskHelp(command=command):
            return [executable, command, "--help"]
        case ConductSubtaskSuccess():
            return [executable, *subtask.argv()]
    raise TypeError(f"unsupported conduct sub-command: {subtask!r}")


def install_task(
    settings: TaskSettings,
    *,
    invocator: ProcessInvocator,
    poller: ReadinessPoller | None = None,
    logger: logging.Logger | None = None,
) -> list[str]:
    """Restart the sandbox, then load and run every installation entry.

    Progress lines are logged to ``logger`` at INFO, alongside the child-process
    output. Returns the bundle ids reported by ``conduct load`` in entry order.
    """

    progress = logger if logger is not None else logging.getLogger(_PROGRESS_LOGGER_NAME)
    sandbox = settings.sandbox_executable
    conduct = settings.conduct_executable

    try:
        instances = [line for line in invocator.lines([sandbox, "ps", "-q"]) if line.strip()]
        if not instances:
            raise InstallError(SANDBOX_NOT_RUNNING_MESSAGE)
        progress.info("Restarting ConductR to ensure a clean state...")
        invocator.run([sandbox, "restart"])
    except ConductrTaskError as exc:
        raise InstallError(f"{RESTART_FAILED_MESSAGE} {exc}") from exc

    readiness = poller or ReadinessPoller(
        invocator,
        interval_seconds=settings.poll_interval_seconds,
        timeout_seconds=settings.wait_timeout_seconds,
    )
    bundle_ids: list[str] = []
    try:
        readiness.wait_for_conductr(
            conduct_executable=conduct,
            timeout_seconds=settings.wait_timeout_seconds,
        )
        for entry in settings.installation_entries:
            progress.info(f"Deploying {entry.name}...")
            bundle_arg = entry.bundle_argument()
            loaded = invocator.run(
                [conduct, "load", *entry.load_arguments(), "--long-ids", "-q"],
                check=False,
            )
            bundle_id = next((line.strip() for line in loaded.stdout_lines if line.strip()), None)
            if bundle_id is None:
                raise InstallError(f"Bundle {bundle_arg} could not be loaded")
            invocator.run(
                [conduct, "run", bundle_id, "--no-wait", "-q"],
                message=f"Bundle {bundle_arg} could not run",
            )
            _LOGGER.info("bundle_deployed", bundle=entry.name, bundle_id=bundle_id)
            bundle_ids.append(bundle_id)
    except ConductrTaskError as exc:
        raise InstallError(f"{INSTALL_FAILED_MESSAGE} {exc}") from exc

    progress.info("")
    progress.info(DEPLOYED_MESSAGE)
    invocator.run([conduct, "info"])
    return bundle_ids


def generate_installation_script_task(
    settings: TaskSettings,
    *,
    renderer: CLIRenderer,
) -> Path:
    """Write ``<target_dir>/<script_name>`` for the configured entries."""

    script_path = write_installation_script(
        settings.installation_entries,
        settings.target_dir,
        script_name=settings.script_name,
        conduct_executable=settings.conduct_executable,
    )
    renderer.text(f"Installation script written to {script_path.as_posix()}")
    return script_path


__all__ = [
    "INSTALL_FAILED_MESSAGE",
    "RESTART_FAILED_MESSAGE",
    "SANDBOX_NOT_RUNNING_MESSAGE",
    "conduct_command",
    "conduct_task",
    "generate_installation_script_task",
    "install_task",
    "resolve_run_arguments",
    "sandbox_command",
    "sandbox_task",
]

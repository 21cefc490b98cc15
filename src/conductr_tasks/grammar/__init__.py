"""
conductr-tasks grammar package public API.

Parses free-form ``sandbox`` and ``conduct`` sub-command text into typed
sub-command values plus ordered flag/positional argument lists.
"""

from conductr_tasks.grammar.conduct import (
    ConductHelp,
    ConductSubtask,
    ConductSubtaskHelp,
    ConductSubtaskSuccess,
    parse_conduct,
)
from conductr_tasks.grammar.sandbox import (
    RunArguments,
    SandboxHelp,
    SandboxLogsSubtask,
    SandboxPsSubtask,
    SandboxRunSubtask,
    SandboxStopSubtask,
    SandboxSubtask,
    SandboxSubtaskHelp,
    SandboxVersionSubtask,
    parse_sandbox,
    sandbox_run_argv,
)

__all__ = [
    "ConductHelp",
    "ConductSubtask",
    "ConductSubtaskHelp",
    "ConductSubtaskSuccess",
    "RunArguments",
    "SandboxHelp",
    "SandboxLogsSubtask",
    "SandboxPsSubtask",
    "SandboxRunSubtask",
    "SandboxStopSubtask",
    "SandboxSubtask",
    "SandboxSubtaskHelp",
    "SandboxVersionSubtask",
    "parse_conduct",
    "parse_sandbox",
    "sandbox_run_argv",
]

"""
conductr-tasks — package root.

Command-line tasks that drive the ConductR ``conduct`` and ``sandbox`` CLIs:
argument grammars for both tools, a process invocator, a readiness poller and
an installation-script planner.

Importing the package has no side effects (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

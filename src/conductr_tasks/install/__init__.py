"""
conductr-tasks install package public API.

Installation entries and the rendered ``install.sh`` deployment script.
"""

from conductr_tasks.install.planner import (
    DEPLOYED_MESSAGE,
    InstallationEntry,
    bundle_id_variable,
    collect_installation_entries,
    render_installation_script,
    write_installation_script,
)

__all__ = [
    "DEPLOYED_MESSAGE",
    "InstallationEntry",
    "bundle_id_variable",
    "collect_installation_entries",
    "render_installation_script",
    "write_installation_script",
]

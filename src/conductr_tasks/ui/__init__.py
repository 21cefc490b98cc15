"""User-facing surface: argparse command router and plain-text renderer."""

from conductr_tasks.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "create_renderer"]

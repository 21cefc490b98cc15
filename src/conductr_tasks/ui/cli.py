"""Command-line interface router for conductr-tasks."""

from __future__ import annotations

import argparse
import json
import shutil
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Final

from conductr_tasks.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from conductr_tasks.errors import ConductrTaskError
from conductr_tasks.grammar.completion import (
    complete_conduct,
    complete_sandbox,
    discover_bundle_names,
)
from conductr_tasks.observability import LoggingConfig, setup_logging, shutdown_logging
from conductr_tasks.process import ProcessInvocator
from conductr_tasks.settings import TaskSettings
from conductr_tasks.tasks import (
    conduct_task,
    generate_installation_script_task,
    install_task,
    sandbox_task,
)
from conductr_tasks.ui.render import CLIRenderer, create_renderer

PASSTHROUGH_COMMANDS: Final[frozenset[str]] = frozenset({"sandbox", "conduct"})


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router.

    ``sandbox`` and ``conduct`` declare no arguments of their own: every token
    after them is forwarded untouched to the sub-command grammar.
    """

    parser = argparse.ArgumentParser(
        prog="conductr",
        description=(
            "conductr-tasks — drive the ConductR sandbox and conduct CLIs.\n\n"
            "Common workflows:\n"
            "  conductr sandbox run 2.0.5 -n 3    Start a three-container sandbox\n"
            "  conductr conduct info              Show cluster state\n"
            "  conductr install                   Deploy all configured bundles\n"
            "  conductr doctor                    Check environment health\n\n"
            "Global options must precede the command."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to conductr TOML config (default: ./conductr.toml if present).",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show debug output.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default=None,
        help="Console log format (default: observability.log_format).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sandbox -------------------------------------------------------------
    sandbox_parser = subparsers.add_parser(
        "sandbox",
        add_help=False,
        help="Run a sandbox sub-command (run, ps, logs, stop, version, ...)",
        description="Forward a sub-command to the ConductR sandbox CLI.",
    )
    sandbox_parser.set_defaults(handler=_cmd_sandbox)

    # conduct -------------------------------------------------------------
    conduct_parser = subparsers.add_parser(
        "conduct",
        add_help=False,
        help="Run a conduct sub-command (info, load, run, stop, ...)",
        description="Forward a sub-command to the ConductR conduct CLI.",
    )
    conduct_parser.set_defaults(handler=_cmd_conduct)

    # install -------------------------------------------------------------
    install_parser = subparsers.add_parser(
        "install",
        help="Restart the sandbox and deploy every configured bundle",
        description=(
            "Restart a running sandbox, wait for ConductR, then load and run each\n"
            "bundle declared under [[install.bundles]].\n\n"
            "Examples:\n"
            "  conductr install\n"
            "  conductr --profile ci install\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    install_parser.set_defaults(handler=_cmd_install)

    # generate-installation-script ----------------------------------------
    script_parser = subparsers.add_parser(
        "generate-installation-script",
        help="Write an executable install script for the configured bundles",
        description=(
            "Render <project.target_dir>/<install.script_name> which loads and runs\n"
            "every configured bundle and finishes with 'conduct info'.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    script_parser.set_defaults(handler=_cmd_generate_installation_script)

    # complete ------------------------------------------------------------
    complete_parser = subparsers.add_parser(
        "complete",
        help="Print completion candidates for partial sandbox/conduct input",
        description=(
            "Print one candidate per line for the next token.\n\n"
            "Examples:\n"
            "  conductr complete sandbox 'run --ima'\n"
            "  conductr complete conduct 'stop '\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    complete_parser.add_argument("tool", choices=("sandbox", "conduct"), help="Target command")
    complete_parser.add_argument("text", nargs="?", default="", help="Partial input")
    complete_parser.set_defaults(handler=_cmd_complete)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        help="Check config, CLI installation and project layout",
        description=(
            "Check config, conduct/sandbox availability, RP licence and bundle files.\n\n"
            "Examples:\n"
            "  conductr doctor\n"
            "  conductr doctor --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    doctor_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  conductr config\n"
            "  conductr config --json\n"
            "  conductr --profile ci config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace, extras = parser.parse_known_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2
    if extras and namespace.command not in PASSTHROUGH_COMMANDS:
        parser.error(f"unrecognized arguments: {' '.join(extras)}")
    namespace.tokens = list(extras)

    try:
        return int(handler(namespace))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except ConductrTaskError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_sandbox(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    with _logging_scope(args):
        sandbox_task(args.tokens, settings, invocator=ProcessInvocator())
    return 0


def _cmd_conduct(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    with _logging_scope(args):
        conduct_task(args.tokens, settings, invocator=ProcessInvocator())
    return 0


def _cmd_install(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    if not settings.installation_entries:
        raise CLIError(
            "no bundles to install; declare them under [[install.bundles]] in conductr.toml",
            exit_code=1,
        )
    with _logging_scope(args):
        install_task(settings, invocator=ProcessInvocator())
    return 0


def _cmd_generate_installation_script(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    with _logging_scope(args):
        generate_installation_script_task(settings, renderer=_get_renderer(args))
    return 0


def _cmd_complete(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    text: str = args.text
    if args.tool == "sandbox":
        candidates = complete_sandbox(text)
    else:
        candidates = complete_conduct(
            text,
            bundle_names=discover_bundle_names(
                ProcessInvocator(), conduct_executable=settings.conduct_executable
            ),
            bundle_file=settings.bundle_file,
            config_file=settings.bundle_config_file,
        )
    for candidate in candidates:
        print(candidate)
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    settings: TaskSettings | None = None
    try:
        settings = TaskSettings.from_config(_load_effective_config(args))
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    if settings is not None:
        for label, executable in (
            ("cli:conduct", settings.conduct_executable),
            ("cli:sandbox", settings.sandbox_executable),
        ):
            resolved = shutil.which(executable)
            if resolved is not None:
                checks.append((label, True, f"found at {resolved}"))
            else:
                checks.append((label, False, f"{executable!r} not found in PATH"))

        license_path = settings.license_path()
        image_version = settings.resolve_image_version()
        if license_path is not None:
            checks.append(("license", True, f"RP licence at {license_path.as_posix()}"))
        else:
            checks.append(("license", True, "no RP licence found (optional)"))
        checks.append(("image_version", True, image_version or "(sandbox default)"))

        for entry in settings.installation_entries:
            label = f"bundle:{entry.name}"
            if isinstance(entry.bundle, str):
                checks.append((label, True, f"repository reference {entry.bundle}"))
            elif entry.bundle.is_file():
                checks.append((label, True, entry.bundle.as_posix()))
            else:
                checks.append((label, False, f"bundle file missing: {entry.bundle.as_posix()}"))
            if entry.config is not None and not entry.config.is_file():
                checks.append(
                    (label, False, f"configuration file missing: {entry.config.as_posix()}")
                )
    else:
        checks.append(("cli", False, "skipped (config failed)"))

    all_passed = all(passed for _, passed, _ in checks)
    checks_payload: list[dict[str, object]] = [
        {"name": name, "status": "ok" if passed else "fail", "detail": detail}
        for name, passed, detail in checks
    ]

    if _flag(args, "json"):
        _emit_json({"command": "doctor", "checks": checks_payload})
        return 0 if all_passed else 1

    renderer = _get_renderer(args)
    renderer.heading("conductr doctor")
    for name, passed, detail in checks:
        if passed:
            renderer.ok(f"{name}: {detail}")
        else:
            renderer.fail(f"{name}: {detail}")

    if all_passed:
        renderer.text("\nAll checks passed.")
        return 0
    renderer.text("\nSome checks failed. See details above.")
    return 1


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile: str | None = args.profile

    if _flag(args, "json"):
        print(dump_effective_config({"active_profile": profile, "config": config}))
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _logging_scope(args: argparse.Namespace) -> Iterator[None]:
    """Configure logging from the loaded config for the duration of a task."""

    observability = getattr(args, "observability", None) or {}
    setup_logging(
        LoggingConfig.from_mapping(
            observability,
            verbose=_flag(args, "verbose"),
            log_format=args.log_format,
        )
    )
    try:
        yield
    finally:
        shutdown_logging()


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _load_settings(args: argparse.Namespace) -> TaskSettings:
    config = _load_effective_config(args)
    args.observability = config["observability"]
    return TaskSettings.from_config(config)


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(args.config_path, profile=args.profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "PASSTHROUGH_COMMANDS", "build_parser", "run_cli"]

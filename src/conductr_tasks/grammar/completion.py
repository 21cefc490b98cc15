"""Completion hints for ``sandbox`` and ``conduct`` input.

Hints are cosmetic: they never influence how a command line is parsed.
"""

from __future__ import annotations

import logging
import shlex
from typing import TYPE_CHECKING, Final

from conductr_tasks.constants import (
    BUNDLE_NAME_SCAN_LINES,
    CONDUCT_EXECUTABLE,
    SANDBOX_FEATURES,
)
from conductr_tasks.errors import ConductrTaskError
from conductr_tasks.grammar import conduct as conduct_grammar
from conductr_tasks.grammar import sandbox as sandbox_grammar
from conductr_tasks.grammar.tokens import is_flag

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable
    from pathlib import Path

    from conductr_tasks.process.invocator import ProcessInvocator

_LOGGER = logging.getLogger(__name__)

_SANDBOX_COMMANDS: Final[tuple[str, ...]] = ("run", "start", "stop", "ps", "logs", "version")
_SANDBOX_VALUE_HINTS: Final[dict[str, tuple[str, ...]]] = {
    sandbox_grammar.Flags.IMAGE_VERSION: ("<conductr_version>",),
    sandbox_grammar.Flags.CONDUCTR_ROLE: ("<role>",),
    sandbox_grammar.Flags.ENV: ("key=value",),
    sandbox_grammar.Flags.ENV_CORE: ("key=value",),
    sandbox_grammar.Flags.ENV_AGENT: ("key=value",),
    sandbox_grammar.Flags.ARG: ("<argument>",),
    sandbox_grammar.Flags.ARG_CORE: ("<argument>",),
    sandbox_grammar.Flags.ARG_AGENT: ("<argument>",),
    sandbox_grammar.Flags.IMAGE: ("<conductr_image>",),
    sandbox_grammar.Flags.LOG_LEVEL: ("<log-level>",),
    sandbox_grammar.Flags.NR_OF_CONTAINERS: ("<nr-of-containers>",),
    sandbox_grammar.Flags.NR_OF_INSTANCES: ("<nr-of-cores>:<nr-of-agents> | <nr-of-agents>",),
    sandbox_grammar.Flags.PORT: ("<port>",),
    sandbox_grammar.Flags.FEATURE: SANDBOX_FEATURES,
}


def complete_sandbox(text: str) -> list[str]:
    """Return candidate next tokens for partially typed ``sandbox`` input."""

    done, prefix = _split_partial(text)
    if not done:
        return _matching(("--help", *_SANDBOX_COMMANDS), prefix)

    command = done[0]
    if command not in sandbox_grammar.RUN_COMMANDS:
        return _matching(("--help",), prefix) if len(done) == 1 else []

    previous = sandbox_grammar.SHORT_FLAGS.get(done[-1], done[-1])
    hints = _SANDBOX_VALUE_HINTS.get(previous)
    if hints is not None:
        return _matching(hints, prefix)
    return _matching(("--help", *sandbox_grammar.RUN_FLAGS), prefix)


def complete_conduct(
    text: str,
    *,
    bundle_names: Collection[str] = (),
    bundle_file: Path | None = None,
    config_file: Path | None = None,
) -> list[str]:
    """Return candidate next tokens for partially typed ``conduct`` input."""

    done, prefix = _split_partial(text)
    if not done:
        return _matching(("--help", *conduct_grammar.command_names()), prefix)

    spec = conduct_grammar.resolve_command(done[0])
    if spec is None:
        return []

    previous = spec.option(done[-1]) if len(done) > 1 else None
    if previous is not None and previous.kind is not conduct_grammar.ValueKind.NONE:
        if "--affinity" in previous.names:
            return _matching(sorted(bundle_names), prefix)
        return _matching((previous.placeholder,), prefix)

    if prefix.startswith("-"):
        return _matching(spec.flags, prefix)

    slot_index = _count_positionals(spec, done[1:])
    if slot_index >= len(spec.positionals):
        return _matching(spec.flags, prefix)

    slot = spec.positionals[slot_index]
    if slot.choices:
        return _matching(slot.choices, prefix)
    if slot.name == "<bundle>" and bundle_file is not None:
        return _matching((bundle_file.as_posix(),), prefix)
    if slot.name == "<configuration>" and config_file is not None:
        return _matching((config_file.as_posix(),), prefix)
    if slot.name == "<bundle-id>" and bundle_names:
        return _matching(sorted(bundle_names), prefix)
    return _matching((slot.name, *spec.flags), prefix)


def discover_bundle_names(
    invocator: ProcessInvocator,
    *,
    conduct_executable: str = CONDUCT_EXECUTABLE,
) -> frozenset[str]:
    """Best-effort bundle names scraped from the ``conduct info`` table.

    Reads the second column of the first rows after the header. This depends
    on the external tool's text layout; any failure yields an empty set.
    """

    try:
        lines = invocator.lines([conduct_executable, "info"])
    except ConductrTaskError as exc:
        _LOGGER.debug("bundle name discovery skipped: %s", exc)
        return frozenset()

    names: set[str] = set()
    for line in lines[1 : BUNDLE_NAME_SCAN_LINES + 1]:
        columns = line.split()
        if len(columns) > 1:
            names.add(columns[1])
    return frozenset(names)


def _split_partial(text: str) -> tuple[list[str], str]:
    try:
        tokens = shlex.split(text)
    except ValueError:
        tokens = text.split()
    if not text or text[-1].isspace():
        return tokens, ""
    if not tokens:
        return [], ""
    return tokens[:-1], tokens[-1]


def _count_positionals(spec: conduct_grammar.CommandSpec, tokens: Iterable[str]) -> int:
    count = 0
    expecting_value = False
    for token in tokens:
        if expecting_value:
            expecting_value = False
            continue
        if is_flag(token):
            flag, _, inline = token.partition("=")
            option = spec.option(flag)
            expecting_value = (
                option is not None
                and option.kind is not conduct_grammar.ValueKind.NONE
                and not inline
            )
            continue
        count += 1
    return count


def _matching(candidates: Iterable[str], prefix: str) -> list[str]:
    return [candidate for candidate in dict.fromkeys(candidates) if candidate.startswith(prefix)]


__all__ = ["complete_conduct", "complete_sandbox", "discover_bundle_names"]

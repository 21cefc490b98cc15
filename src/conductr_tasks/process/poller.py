"""
Readiness polling over external status commands.

Polls a probe on the calling thread at a fixed interval until a predicate over
its value holds or an overall wall-clock deadline elapses. The deadline is
checked between polls only; an in-flight probe is never interrupted. Probe
errors propagate immediately.

Decisions are emitted through ``structlog`` as machine-parseable events.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from conductr_tasks.constants import (
    CONDUCT_EXECUTABLE,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
)
from conductr_tasks.errors import ReadinessTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from conductr_tasks.process.invocator import ProcessInvocator

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PollOutcome(Generic[T]):
    """Successful poll: number of probes, elapsed seconds and the matching value."""

    attempts: int
    elapsed_seconds: float
    value: T


class ReadinessPoller:
    """Sequential fixed-interval retry loop around a status probe."""

    def __init__(
        self,
        invocator: ProcessInvocator | None = None,
        *,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Callable[[int], None] | None = None,
        logger: Any | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._invocator = invocator
        self._interval_seconds = float(interval_seconds)
        self._timeout_seconds = float(timeout_seconds)
        self._clock = clock
        self._sleep = sleep
        self._on_attempt = on_attempt
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def poll(
        self,
        probe: Callable[[], T],
        predicate: Callable[[T], bool],
        *,
        timeout_seconds: float | None = None,
        target: str = "status",
    ) -> PollOutcome[T]:
        timeout = self._timeout_seconds if timeout_seconds is None else float(timeout_seconds)
        if timeout <= 0:
            raise ValueError("timeout_seconds must be > 0")

        started = self._clock()
        attempts = 0
        while True:
            elapsed = self._clock() - started
            if elapsed >= timeout:
                self._logger.warning(
                    "readiness_poll_timeout",
                    target=target,
                    attempts=attempts,
                    elapsed_seconds=round(elapsed, 3),
                    timeout_seconds=timeout,
                )
                raise ReadinessTimeoutError(
                    target=target,
                    timeout_seconds=timeout,
                    elapsed_seconds=elapsed,
                )

            attempts += 1
            if self._on_attempt is not None:
                self._on_attempt(attempts)
            value = probe()
            if predicate(value):
                elapsed = self._clock() - started
                self._logger.debug(
                    "readiness_poll_ready",
                    target=target,
                    attempts=attempts,
                    elapsed_seconds=round(elapsed, 3),
                )
                return PollOutcome(attempts=attempts, elapsed_seconds=elapsed, value=value)

            remaining = timeout - (self._clock() - started)
            self._logger.debug(
                "readiness_poll_retry",
                target=target,
                attempts=attempts,
                remaining_seconds=round(max(remaining, 0.0), 3),
            )
            if remaining > 0:
                self._sleep(min(self._interval_seconds, remaining))

    def wait_for_output(
        self,
        command: Sequence[str],
        predicate: Callable[[str], bool],
        *,
        timeout_seconds: float | None = None,
        target: str | None = None,
    ) -> PollOutcome[str]:
        """Poll ``command`` until ``predicate`` holds for its trimmed stdout."""

        invocator = self._require_invocator()

        def probe() -> str:
            return "\n".join(invocator.lines(command)).strip()

        return self.poll(
            probe,
            predicate,
            timeout_seconds=timeout_seconds,
            target=target or " ".join(command),
        )

    def wait_for_conductr(
        self,
        *,
        conduct_executable: str = CONDUCT_EXECUTABLE,
        timeout_seconds: float | None = None,
    ) -> PollOutcome[int]:
        """Wait until ``conduct info`` exits successfully."""

        invocator = self._require_invocator()
        return self.poll(
            lambda: invocator.status([conduct_executable, "info"]),
            lambda returncode: returncode == 0,
            timeout_seconds=timeout_seconds,
            target="ConductR",
        )

    def _require_invocator(self) -> ProcessInvocator:
        if self._invocator is None:
            raise RuntimeError("ReadinessPoller was created without a ProcessInvocator")
        return self._invocator


__all__ = ["PollOutcome", "ReadinessPoller"]

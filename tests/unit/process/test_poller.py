"""
conductr-tasks — unit tests for the readiness poller

Purpose
- Validate the fixed-interval retry loop and its wall-clock deadline.

What this test file should cover
- Success after N probes, with a fake clock and once against the real clock.
- Timeout reporting: bound, awaited entity, elapsed time.
- Sleep truncation to the remaining budget; probe errors propagate.
- ``conduct info`` readiness and stdout-based readiness through an invocator.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Any

import pytest

from conductr_tasks.errors import ReadinessTimeoutError
from conductr_tasks.process.poller import ReadinessPoller


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def debug(self, event: str, **fields: Any) -> None:
        self.events.append(("debug", event, fields))

    def warning(self, event: str, **fields: Any) -> None:
        self.events.append(("warning", event, fields))


class _FakeInvocator:
    def __init__(
        self,
        *,
        statuses: list[int] | None = None,
        outputs: list[list[str]] | None = None,
    ) -> None:
        self._statuses: Iterator[int] = iter(statuses or [])
        self._outputs: Iterator[list[str]] = iter(outputs or [])
        self.commands: list[list[str]] = []

    def status(self, command: list[str]) -> int:
        self.commands.append(list(command))
        return next(self._statuses)

    def lines(self, command: list[str]) -> list[str]:
        self.commands.append(list(command))
        return next(self._outputs)


def _poller(clock: _FakeClock, **kwargs: Any) -> ReadinessPoller:
    return ReadinessPoller(clock=clock, sleep=clock.sleep, logger=_RecordingLogger(), **kwargs)


def _growing() -> Iterator[str]:
    value = ""
    for digit in "101":
        value += digit
        yield value


def test_poll_succeeds_on_third_probe_with_fake_clock() -> None:
    clock = _FakeClock()
    values = _growing()
    attempts: list[int] = []
    poller = _poller(clock, on_attempt=attempts.append)

    outcome = poller.poll(lambda: next(values), lambda value: value == "101")

    assert outcome.attempts == 3
    assert outcome.value == "101"
    assert outcome.elapsed_seconds == pytest.approx(1.0)
    assert clock.sleeps == [0.5, 0.5]
    assert attempts == [1, 2, 3]


def test_poll_succeeds_once_status_changes_after_three_polls() -> None:
    clock = _FakeClock()
    values = iter(["100", "100", "100", "101"])

    outcome = _poller(clock).poll(lambda: next(values), lambda value: value == "101")

    assert outcome.attempts == 4
    assert outcome.value == "101"
    assert outcome.elapsed_seconds == pytest.approx(1.5)
    assert clock.sleeps == [0.5, 0.5, 0.5]


def test_poll_timeout_reports_bound_and_target() -> None:
    clock = _FakeClock()
    logger = _RecordingLogger()
    poller = ReadinessPoller(clock=clock, sleep=clock.sleep, logger=logger)

    with pytest.raises(ReadinessTimeoutError) as excinfo:
        poller.poll(lambda: "0", lambda value: value == "1", timeout_seconds=1.0, target="ConductR")

    error = excinfo.value
    assert str(error) == "ConductR has not been started within 1 seconds!"
    assert error.elapsed_seconds == pytest.approx(1.0)
    assert error.timeout_seconds == 1.0
    assert error.exit_code == 1
    assert isinstance(error, TimeoutError)
    assert logger.events[-1][:2] == ("warning", "readiness_poll_timeout")
    assert logger.events[-1][2]["attempts"] == 2


def test_sleep_is_truncated_to_remaining_budget() -> None:
    clock = _FakeClock()
    poller = _poller(clock)

    with pytest.raises(ReadinessTimeoutError):
        poller.poll(lambda: 0, lambda value: False, timeout_seconds=0.7)

    assert clock.sleeps == [0.5, pytest.approx(0.2)]


def test_probe_errors_propagate_immediately() -> None:
    clock = _FakeClock()
    poller = _poller(clock)

    def probe() -> str:
        raise RuntimeError("probe exploded")

    with pytest.raises(RuntimeError, match="probe exploded"):
        poller.poll(probe, lambda value: True)
    assert clock.sleeps == []


def test_wait_for_conductr_polls_conduct_info_exit_status() -> None:
    clock = _FakeClock()
    invocator = _FakeInvocator(statuses=[1, 1, 0])
    poller = _poller(clock, invocator=invocator)

    outcome = poller.wait_for_conductr(conduct_executable="conduct")

    assert outcome.attempts == 3
    assert outcome.value == 0
    assert invocator.commands == [["conduct", "info"]] * 3


def test_wait_for_output_uses_trimmed_stdout() -> None:
    clock = _FakeClock()
    invocator = _FakeInvocator(outputs=[[""], ["  ready  ", ""]])
    poller = _poller(clock, invocator=invocator)

    outcome = poller.wait_for_output(["sandbox", "ps", "-q"], lambda value: value == "ready")

    assert outcome.value == "ready"
    assert outcome.attempts == 2


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError, match="interval_seconds"):
        ReadinessPoller(interval_seconds=0)
    with pytest.raises(ValueError, match="timeout_seconds"):
        ReadinessPoller(timeout_seconds=-1)
    with pytest.raises(RuntimeError, match="without a ProcessInvocator"):
        ReadinessPoller().wait_for_conductr()


@pytest.mark.slow
def test_wall_clock_success_within_three_intervals() -> None:
    values = _growing()
    poller = ReadinessPoller(logger=_RecordingLogger())

    started = time.monotonic()
    outcome = poller.poll(lambda: next(values), lambda value: value == "101")
    elapsed = time.monotonic() - started

    assert outcome.attempts >= 3
    assert elapsed <= 3 * 0.5 + 0.5


@pytest.mark.slow
def test_wall_clock_timeout_after_one_second() -> None:
    poller = ReadinessPoller(logger=_RecordingLogger())

    started = time.monotonic()
    with pytest.raises(ReadinessTimeoutError):
        poller.poll(lambda: "x", lambda value: False, timeout_seconds=1.0)
    elapsed = time.monotonic() - started

    assert 1.0 <= elapsed <= 1.5

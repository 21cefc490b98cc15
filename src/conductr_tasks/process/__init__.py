"""
conductr-tasks process package public API.

External process invocation and readiness polling.
"""

from conductr_tasks.process.invocator import ProcessInvocator, ProcessResult
from conductr_tasks.process.poller import PollOutcome, ReadinessPoller

__all__ = ["PollOutcome", "ProcessInvocator", "ProcessResult", "ReadinessPoller"]

"""Cadence execution — record processing, retry and recovery.

ARCHITECTURE
────────────
::

    RecordExecutor (one batch per workflow run)
      ├── RetryPolicy      ─ backoff table + dead-letter cutoff
      └── state_machine    ─ conditional transitions via RecordStore

    RecoverySweeper (independent periodic pass)
      └── processing → pending for records stuck past the threshold

MODULE MAP
──────────
  retry.py      ─ RetryPolicy
  executor.py   ─ RecordExecutor, ExecutionResult
  recovery.py   ─ RecoverySweeper, SweepResult
"""

from cadence.execution.executor import ExecutionResult, Processor, RecordExecutor
from cadence.execution.recovery import RecoverySweeper, SweepResult, SweeperStats
from cadence.execution.retry import RetryPolicy

__all__ = [
    "RecordExecutor",
    "ExecutionResult",
    "Processor",
    "RecoverySweeper",
    "SweepResult",
    "SweeperStats",
    "RetryPolicy",
]

"""
Cadence - time-triggered workflow execution engine.

Workflows fire on a fixed interval; each run claims the pending records
ingested since the workflow's starting time and hands them to a processor,
with bounded retries, dead-lettering and stuck-record recovery.
"""

__version__ = "0.3.0"

"""Minimal observability: JSON logging and in-process metrics.

No external collector is required; metrics can be read with
`metrics.get_metrics()` at the end of a run.
"""
import uuid
from typing import Optional

from . import logging as logging_module
from . import metrics


def generate_run_id() -> str:
    """Generate a new run ID for a reminder run."""
    return str(uuid.uuid4())


def start_run(run_id: Optional[str] = None) -> str:
    """Set or generate the run ID for the current thread and return it."""
    if not run_id:
        run_id = generate_run_id()
    logging_module.set_run_id(run_id)
    return run_id

"""Run cancellation — in-process registry keyed by job id.

Each running execution owns one ``asyncio.Event``.  The cancel API endpoint
sets it; the graph scheduler waits on it alongside its in-flight node tasks,
so a signal stops new nodes from being scheduled immediately.

Usage:
    # When a run starts:
    event = register(job_id)

    # In the API cancel endpoint:
    mark_cancelled(job_id)

    # In the scheduler finally block:
    deregister(job_id)
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("actionflow.run_cancel")

_events: dict[str, asyncio.Event] = {}


def register(job_id: str) -> asyncio.Event:
    """Create a fresh (unset) cancellation event for *job_id* and return it."""
    event = asyncio.Event()
    _events[job_id] = event
    logger.debug("Cancel registry: registered run %s", job_id)
    return event


def mark_cancelled(job_id: str) -> bool:
    """Signal cancellation for *job_id*.  Returns False if the run is not registered."""
    event = _events.get(job_id)
    if event is None:
        logger.debug("Cancel registry: run %s not in registry (already finished?)", job_id)
        return False
    event.set()
    logger.info("Cancel registry: signalled run %s", job_id)
    return True


def deregister(job_id: str) -> None:
    """Remove the event for *job_id* (call in the finally block of a run)."""
    _events.pop(job_id, None)
    logger.debug("Cancel registry: deregistered run %s", job_id)

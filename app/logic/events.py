"""Background job constants and the fire-and-forget enqueue seam.

Side effects that follow a saved response (gamification, notifications)
belong to an external worker with its own retry policy. This module only
hands jobs over: `enqueue` never blocks on the work and never raises into
the response path. Until a deployment installs its queue client with
`set_dispatcher`, `log_dispatcher` records each hand-off in the log.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

RESPONSE_SAVED = "response.saved"
SURVEY_COMPLETED = "survey.completed"

EVENT_BUFFER_SIZE = 256

JobDispatcher = Callable[[str, Dict[str, Any]], None]

_DISPATCHER: Optional[JobDispatcher] = None

# Most recent enqueued jobs (test-only visibility); older entries fall off
EVENT_BUFFER: Deque[Dict[str, Any]] = deque(maxlen=EVENT_BUFFER_SIZE)


def log_dispatcher(job_type: str, payload: Dict[str, Any]) -> None:
    logger.info("job_dispatched type=%s payload=%s", job_type, payload)


def set_dispatcher(dispatcher: Optional[JobDispatcher]) -> None:
    """Install the callable that forwards jobs to the background queue."""
    global _DISPATCHER
    _DISPATCHER = dispatcher


def get_dispatcher() -> Optional[JobDispatcher]:
    return _DISPATCHER


def enqueue(job_type: str, payload: Dict[str, Any]) -> None:
    """Hand a job to the background queue; failures are logged, not raised."""
    logger.debug("job_enqueue type=%s payload=%s", job_type, payload)
    EVENT_BUFFER.append({"type": job_type, "payload": dict(payload)})
    if _DISPATCHER is None:
        logger.warning("job_dropped_no_dispatcher type=%s", job_type)
        return
    try:
        _DISPATCHER(job_type, payload)
    except Exception:
        logger.error("job_dispatch_failed type=%s", job_type, exc_info=True)


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered jobs; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


__all__ = [
    "RESPONSE_SAVED",
    "SURVEY_COMPLETED",
    "EVENT_BUFFER_SIZE",
    "JobDispatcher",
    "log_dispatcher",
    "set_dispatcher",
    "get_dispatcher",
    "enqueue",
    "get_buffered_events",
    "EVENT_BUFFER",
]

"""Deadline racing for work that may outlive its Lambda invocation.

Lambda kills an invocation when its execution budget runs out.  Work that
may take longer (watching a stack for minutes) runs under
``run_with_deadline``.  The work runs as its own task and receives a
cancellation event.  If the deadline arrives first, the event is set, the
task is given a short grace period to notice, and the caller learns that
the work timed out.  It then re-dispatches the original event to a fresh
invocation, which resumes from the remote state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()

DEADLINE_RATIO = 0.9


class WatchCancelled(Exception):
    """Work stopped because its cancel event was set.

    Not a failure: the remote operation is still running and a later
    invocation picks it up.
    """


class Outcome(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


def deadline_for(budget_seconds: float, ratio: float = DEADLINE_RATIO) -> float:
    """Seconds of *budget_seconds* the work may use, e.g. 270 of 300."""
    return max(budget_seconds * ratio, 0.0)


def remaining_budget(lambda_context: Any, default: float) -> float:
    """Seconds left in the invocation, from the Lambda context when present."""
    remaining_ms = getattr(lambda_context, "get_remaining_time_in_millis", None)
    if callable(remaining_ms):
        return remaining_ms() / 1000.0
    return default


async def run_with_deadline(
    work: Callable[[asyncio.Event], Awaitable[Any]],
    deadline: float,
    grace: float = 2.0,
) -> Outcome:
    """Run ``work(cancel)`` and race it against *deadline* seconds.

    Returns ``Outcome.COMPLETED`` when the work finishes, even if it only
    finishes during the grace period after the deadline.  Returns
    ``Outcome.TIMED_OUT`` when the work stops on the cancel event (raising
    ``WatchCancelled``) or has to be cancelled outright.  Any other
    exception from the work propagates, before or after the deadline.
    """
    cancel = asyncio.Event()
    task = asyncio.ensure_future(work(cancel))

    done, _ = await asyncio.wait({task}, timeout=deadline)
    if task in done:
        task.result()
        return Outcome.COMPLETED

    logger.info("deadline_reached", deadline=deadline)
    cancel.set()
    done, _ = await asyncio.wait({task}, timeout=grace)
    if task not in done:
        logger.warning("work_ignored_cancellation", grace=grace)
        task.cancel()
        await asyncio.wait({task})
    if task.cancelled():
        return Outcome.TIMED_OUT

    exc = task.exception()
    if exc is None:
        logger.info("work_finished_in_grace")
        return Outcome.COMPLETED
    if isinstance(exc, WatchCancelled):
        logger.info("work_stopped", reason=repr(exc))
        return Outcome.TIMED_OUT
    raise exc

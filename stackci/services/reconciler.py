"""Pipeline stack reconciliation and status watching.

``reconcile`` drives a stack towards the pushed revision:

1. Query the stack's current status.
2. Branch deleted: delete the stack if it exists (fire-and-forget).
3. Stack missing: create it.  CloudFormation starts the new pipeline.
4. Stack settled: update it.  Stack busy: leave it alone and adopt the
   operation already in flight.
5. Watch until the stack reaches a terminal status.
6. Start the pipeline when the stack was updated rather than created, or
   when nothing changed and the pipeline has not built the pushed revision.

Step 4 is what makes a reconciliation safe to repeat.  A retry or a
timeout-continuation that lands while a create/update is still running sees
a busy stack and only watches it.  The busy check is not atomic with the
update that follows it, so two invocations racing on a settled stack can
both update it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog

from stackci.schemas.webhooks import PushEvent
from stackci.services.context import BuildContext
from stackci.services.continuation import WatchCancelled
from stackci.services.stack_manager import NoChangesError, StackManager
from stackci.services.stack_status import StackState, classify_status, is_mutable

logger = structlog.get_logger()

POLL_INTERVAL = 1.0


class TerminalStackError(Exception):
    """The stack operation failed or rolled back."""

    def __init__(self, stack: str, raw_status: str) -> None:
        super().__init__(f"stack {stack} ended in {raw_status}")
        self.stack = stack
        self.raw_status = raw_status


class StackMissingError(Exception):
    """The watched stack no longer exists."""


class Action(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ADOPTED = "adopted"
    DELETED = "deleted"
    NOTHING_TO_DELETE = "nothing_to_delete"


@dataclass(frozen=True)
class ReconcileResult:
    stack: str
    action: Action
    build_started: bool = False


async def wait_or_cancel(cancel: asyncio.Event, interval: float) -> None:
    """Sleep for *interval*, waking early if *cancel* is set."""
    try:
        await asyncio.wait_for(cancel.wait(), timeout=interval)
    except asyncio.TimeoutError:
        pass


async def watch(
    stack: str,
    cancel: asyncio.Event,
    manager: StackManager,
    poll_interval: float = POLL_INTERVAL,
) -> str:
    """Poll *stack* until it completes, fails, or the watch is cancelled.

    Returns the final ``*_COMPLETE`` status.

    Raises:
        WatchCancelled: *cancel* was set before the stack settled.
        TerminalStackError: The stack failed or rolled back.
        StackMissingError: The stack disappeared while being watched.
    """
    log = logger.bind(stack=stack)
    while True:
        if cancel.is_set():
            log.info("stack_watch_cancelled")
            raise WatchCancelled(stack)

        exists, raw = await manager.status(stack)
        if not exists:
            raise StackMissingError(f"stack {stack} does not exist")

        state = classify_status(raw)
        log.info("stack_status", status=raw)
        if state.is_error:
            raise TerminalStackError(stack, raw)
        if state is StackState.COMPLETE:
            return raw

        await wait_or_cancel(cancel, poll_interval)


async def _should_start_build(
    stack: str,
    event: PushEvent,
    action: Action,
    baseline: datetime | None,
    manager: StackManager,
) -> bool:
    if action is Action.CREATED:
        return False
    if action is Action.UNCHANGED:
        # a replayed delivery finds its revision already built
        return await manager.latest_revision(stack) != event.after

    updated = await manager.last_updated(stack)
    if updated is None:
        # never updated: the adopted operation was a create, which starts itself
        return False
    if action is Action.ADOPTED:
        return True
    return baseline is None or updated > baseline


async def reconcile(
    stack: str,
    event: PushEvent,
    context: BuildContext | None,
    manager: StackManager,
    cancel: asyncio.Event,
    poll_interval: float = POLL_INTERVAL,
) -> ReconcileResult:
    """Create, update or delete *stack* to match *event*, then watch it.

    *context* may be None only for deletion events.  Provisioning errors
    propagate unchanged; there is no retry at this level.
    """
    log = logger.bind(stack=stack)
    exists, raw = await manager.status(stack)

    if event.branch_deleted:
        if not exists:
            log.warning("stack_delete_skipped_missing")
            return ReconcileResult(stack, Action.NOTHING_TO_DELETE)
        log.info("stack_delete")
        await manager.delete(stack)
        return ReconcileResult(stack, Action.DELETED)

    if context is None:
        raise ValueError("a build context is required unless the branch was deleted")

    baseline: datetime | None = None
    if not exists:
        log.info("stack_create")
        await manager.create(stack, context.parameters, context.pipeline_template)
        action = Action.CREATED
    elif is_mutable(raw):
        baseline = await manager.last_updated(stack)
        log.info("stack_update", previous_status=raw)
        try:
            await manager.update(stack, context.parameters, context.pipeline_template)
            action = Action.UPDATED
        except NoChangesError:
            log.info("stack_unchanged")
            action = Action.UNCHANGED
    else:
        log.info("stack_busy_adopting", status=raw)
        action = Action.ADOPTED

    if action is not Action.UNCHANGED:
        await watch(stack, cancel, manager, poll_interval)

    build_started = await _should_start_build(stack, event, action, baseline, manager)
    if build_started:
        log.info("start_build")
        await manager.start_build(stack)

    return ReconcileResult(stack, action, build_started)

"""Stack cleaner: a CloudFormation custom resource that deletes a named stack.

Deployment stacks create resources (buckets, services) through the pipeline
stack's own pipeline, outside the pipeline stack itself.  Declaring a
``Custom::StackCleaner`` resource with a ``Stack`` property in the pipeline
template ties that deployment stack's lifetime to the pipeline stack: when
the pipeline stack is deleted, the cleaner deletes the deployment stack and
waits for it to disappear before answering CloudFormation.

Waiting can outlast one Lambda invocation.  On deadline the cleaner
re-invokes itself with the original request and sends no response; the
next invocation finds the delete in progress and keeps waiting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from stackci.config import settings
from stackci.schemas.custom_resource import CustomResourceEvent, CustomResourceResponse
from stackci.services.continuation import (
    Outcome,
    deadline_for,
    remaining_budget,
    run_with_deadline,
)
from stackci.services.invoker import SelfInvoker
from stackci.services.reconciler import (
    POLL_INTERVAL,
    TerminalStackError,
    WatchCancelled,
    wait_or_cancel,
)
from stackci.services.stack_manager import StackManager
from stackci.services.stack_status import classify_status, is_busy

logger = structlog.get_logger()

STACK_PROPERTY = "Stack"
_GONE = "DELETE_COMPLETE"


async def remove_stack(
    stack: str,
    manager: StackManager,
    cancel: asyncio.Event,
    poll_interval: float = POLL_INTERVAL,
) -> None:
    """Delete *stack* (unless a delete is already running) and wait until it is gone.

    Raises:
        WatchCancelled: *cancel* was set before the stack disappeared.
        TerminalStackError: The delete failed.
    """
    log = logger.bind(stack=stack)
    exists, raw = await manager.status(stack)
    if not exists:
        log.info("stack_already_removed")
        return

    if not is_busy(raw):
        await manager.delete(stack)

    while True:
        if cancel.is_set():
            log.info("stack_watch_cancelled")
            raise WatchCancelled(stack)

        exists, raw = await manager.status(stack)
        if not exists or raw == _GONE:
            log.info("stack_removed")
            return

        log.info("stack_status", status=raw)
        if classify_status(raw).is_error:
            raise TerminalStackError(stack, raw)

        await wait_or_cancel(cancel, poll_interval)


async def send_response(
    client: httpx.AsyncClient,
    url: str,
    response: CustomResourceResponse,
) -> None:
    """PUT *response* to the pre-signed S3 URL CloudFormation is waiting on.

    The URL is signed without a content type, so none may be sent.
    """
    resp = await client.put(
        url,
        content=response.model_dump_json(by_alias=True, exclude_none=True),
        headers={"Content-Type": ""},
    )
    resp.raise_for_status()


class StackCleaner:
    """Handles custom resource requests for ``Custom::StackCleaner``."""

    def __init__(
        self,
        *,
        stack_manager: StackManager,
        invoker: SelfInvoker,
        http_client: httpx.AsyncClient,
        function_name: str = settings.app_name,
        execution_timeout: float = settings.execution_timeout,
        deadline_ratio: float = settings.deadline_ratio,
        poll_interval: float = settings.poll_interval,
        cancel_grace: float = settings.cancel_grace,
    ) -> None:
        self.stack_manager = stack_manager
        self.invoker = invoker
        self.http_client = http_client
        self.function_name = function_name
        self.execution_timeout = execution_timeout
        self.deadline_ratio = deadline_ratio
        self.poll_interval = poll_interval
        self.cancel_grace = cancel_grace

    async def handle(self, raw_event: Mapping[str, Any], lambda_context: Any = None) -> Outcome:
        """Answer one custom resource request, or hand it to a continuation."""
        event = CustomResourceEvent.model_validate(raw_event)
        log_location = "/".join(
            part
            for part in (
                getattr(lambda_context, "log_group_name", ""),
                getattr(lambda_context, "log_stream_name", ""),
            )
            if part
        ) or self.function_name
        physical_id = event.physical_resource_id or log_location
        log = logger.bind(stack_id=event.stack_id, request_type=event.request_type)

        if event.request_type != "Delete":
            log.info("request_ignored")
            await self._respond(event, "SUCCESS", log_location)
            return Outcome.COMPLETED

        stack = event.resource_properties.get(STACK_PROPERTY)
        if not stack:
            log.error("stack_property_missing")
            await self._respond(
                event, "FAILED", physical_id, reason=f"missing {STACK_PROPERTY} property",
            )
            return Outcome.COMPLETED

        budget = remaining_budget(lambda_context, self.execution_timeout)

        async def work(cancel: asyncio.Event) -> None:
            await remove_stack(str(stack), self.stack_manager, cancel, self.poll_interval)

        try:
            outcome = await run_with_deadline(
                work, deadline_for(budget, self.deadline_ratio), self.cancel_grace,
            )
        except Exception as exc:
            log.error("stack_removal_failed", stack=stack, error=str(exc))
            await self._respond(event, "FAILED", physical_id, reason=f"{exc} ({log_location})")
            return Outcome.COMPLETED

        if outcome is Outcome.TIMED_OUT:
            function_name = getattr(lambda_context, "function_name", None) or self.function_name
            log.info("execution_timeout_restarting", stack=stack, function_name=function_name)
            await self.invoker.invoke(function_name, dict(raw_event))
            return outcome

        await self._respond(event, "SUCCESS", physical_id)
        return outcome

    async def _respond(
        self,
        event: CustomResourceEvent,
        status: str,
        physical_id: str,
        reason: str | None = None,
    ) -> None:
        response = CustomResourceResponse(
            status=status,
            stack_id=event.stack_id,
            request_id=event.request_id,
            logical_resource_id=event.logical_resource_id,
            physical_resource_id=physical_id,
            reason=reason,
        )
        logger.info("custom_resource_response", status=status, physical_id=physical_id)
        await send_response(self.http_client, event.response_url, response)
